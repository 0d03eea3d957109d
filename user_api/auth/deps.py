from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from user_api.config import Config
from user_api.errors import InvalidTokenError, Unauthenticated
from user_api.users.store import UserStore

from .security import decode_access_token


# auto_error=False: a missing header, a non-Bearer scheme and an empty token
# all arrive here as None and are rejected the same way.
_bearer = HTTPBearer(auto_error=False)


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def get_config(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise HTTPException(status_code=500, detail="server_config_missing")
    return cfg


def get_user_store(request: Request) -> UserStore:
    store = getattr(request.app.state, "users", None)
    if store is None:
        raise HTTPException(status_code=500, detail="user_store_missing")
    return store


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    cfg: Config = Depends(get_config),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    """Authenticate a request from its ``Authorization: Bearer <jwt>`` header.

    Every failure raises Unauthenticated with the same public detail; the
    cause is only logged.
    """

    token = credentials.credentials if credentials is not None else ""
    if not token:
        raise Unauthenticated(reason="missing_token")

    try:
        user_id = decode_access_token(token=token, secret=cfg.AUTH_JWT_SECRET)
    except InvalidTokenError as e:
        _debug(f"rejected token: {e.reason}")
        raise Unauthenticated(reason=e.reason) from e

    user = users.find_by_id(user_id)
    if user is None:
        _debug(f"rejected token: user_id={user_id} not found")
        raise Unauthenticated(reason="user_not_found")
    return user

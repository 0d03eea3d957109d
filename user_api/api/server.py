from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, model_validator

from user_api import __version__
from user_api.auth import PasswordHasher, create_access_token
from user_api.auth.deps import get_config, get_current_user, get_user_store
from user_api.config import Config, load_config
from user_api.db import init_db
from user_api.errors import Forbidden, NotFound, Unauthenticated, UserApiError, ValidationError
from user_api.users.store import UserStore


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


router = APIRouter()


# -----------------------------
# Request bodies
# -----------------------------


class _UserBody(BaseModel):
    """Accepts either a bare object or one wrapped as ``{"user": {...}}``."""

    @model_validator(mode="before")
    @classmethod
    def _unwrap_user(cls, data: Any) -> Any:
        if isinstance(data, dict) and set(data) == {"user"} and isinstance(data["user"], dict):
            return data["user"]
        return data


class SignupRequest(_UserBody):
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(_UserBody):
    username: Optional[str] = None
    password: Optional[str] = None


class UpdateUserRequest(_UserBody):
    # Passwords change only through PUT /v1/users/{id}/password.
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    username: Optional[str] = None


class PasswordChangeRequest(_UserBody):
    password: Optional[str] = None


def _token_response(response: Response, *, cfg: Config, user: Dict[str, Any]) -> Dict[str, Any]:
    token = create_access_token(
        secret=cfg.AUTH_JWT_SECRET,
        user_id=int(user["id"]),
        expires_minutes=int(cfg.AUTH_TOKEN_EXPIRE_MINUTES),
    )
    response.headers["Authorization"] = f"Bearer {token}"
    return {"user": user, "token": token, "access_token": token, "token_type": "bearer"}


# -----------------------------
# Health
# -----------------------------


@router.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "ok"}


# -----------------------------
# Auth
# -----------------------------


@router.post("/v1/users", status_code=201)
def create_user(
    payload: SignupRequest,
    response: Response,
    cfg: Config = Depends(get_config),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    """Sign up. Returns the new account and a bearer token for it."""
    u = users.create(name=payload.name, username=payload.username or "", password=payload.password or "")
    return _token_response(response, cfg=cfg, user=u)


@router.post("/v1/auth")
def login(
    payload: LoginRequest,
    response: Response,
    cfg: Config = Depends(get_config),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    u = users.verify_credentials(payload.username or "", payload.password or "")
    if u is None:
        # Same response whether the username is unknown or the password is wrong.
        raise Unauthenticated(reason="invalid_credentials")
    return _token_response(response, cfg=cfg, user=u)


# -----------------------------
# Users
# -----------------------------


@router.get("/v1/users")
def list_users(
    _user: Dict[str, Any] = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    return {"users": users.list_users()}


@router.get("/v1/users/me")
def read_me(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return {"user": user}


@router.get("/v1/users/{user_id}")
def get_user(
    user_id: int,
    _user: Dict[str, Any] = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    u = users.find_by_id(user_id)
    if u is None:
        raise NotFound("user_not_found")
    return {"user": u}


@router.put("/v1/users/{user_id}")
def update_user(
    user_id: int,
    payload: UpdateUserRequest,
    _user: Dict[str, Any] = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    fields = {k: getattr(payload, k) for k in payload.model_fields_set}
    u = users.update_by_id(user_id, fields)
    if u is None:
        raise NotFound("user_not_found")
    return {"user": u}


@router.put("/v1/users/{user_id}/password")
def change_password(
    user_id: int,
    payload: PasswordChangeRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    if int(user["id"]) != int(user_id):
        raise Forbidden("forbidden")
    if not payload.password:
        raise ValidationError("password_blank")
    if not users.set_password(user_id, payload.password):
        raise NotFound("user_not_found")
    return {"success": True}


@router.delete("/v1/users/{user_id}")
def delete_user(
    user_id: int,
    _user: Dict[str, Any] = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    if not users.delete_by_id(user_id):
        raise NotFound("user_not_found")
    return {"success": True}


# -----------------------------
# App factory
# -----------------------------


def _handle_user_api_error(request: Request, exc: UserApiError) -> JSONResponse:
    if exc.status_code >= 500 or exc.reason != exc.response_detail:
        _debug(f"{request.method} {request.url.path} -> {exc.status_code} ({exc.reason})")
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.response_detail}, headers=headers)


def create_app(cfg: Optional[Config] = None) -> FastAPI:
    """Build the API with its collaborators wired explicitly from ``cfg``."""
    cfg = cfg or load_config()

    app = FastAPI(title="User API", version=__version__)

    # Ensure schema exists.
    init_db(cfg.DB_DSN)

    app.state.cfg = cfg
    app.state.users = UserStore(cfg.DB_DSN, PasswordHasher(cfg.AUTH_PASSWORD_ROUNDS))

    # CORS is mainly needed for local development (browser app on another port).
    origins = cfg.cors_origins()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["Authorization"],
        )

    app.add_exception_handler(UserApiError, _handle_user_api_error)
    app.include_router(router)
    return app

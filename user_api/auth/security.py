from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from user_api.errors import HashingError, InvalidTokenError, ValidationError


_JWT_ALG = "HS256"
_SCHEME = "pbkdf2_sha256"

DEFAULT_ROUNDS = 29000


class PasswordHasher:
    """Salted, work-factor based password hashing (pbkdf2_sha256).

    The salt and round count are embedded in every hash, so raising
    ``rounds`` later never invalidates hashes that are already stored.
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS):
        self.rounds = max(1, int(rounds))
        self._pwd = CryptContext(
            schemes=[_SCHEME],
            deprecated="auto",
            pbkdf2_sha256__default_rounds=self.rounds,
            pbkdf2_sha256__min_rounds=self.rounds,
        )

    def hash(self, password: str) -> str:
        if not password:
            raise ValidationError("password_blank")
        try:
            return self._pwd.hash(password)
        except Exception as e:
            raise HashingError("hashing_failed", reason=f"{type(e).__name__}: {e}") from e

    def verify(self, password: str, password_hash: str) -> bool:
        if not password or not password_hash:
            return False
        try:
            return bool(self._pwd.verify(password, password_hash))
        except Exception:
            # Unknown scheme or corrupt hash.
            return False

    def needs_update(self, password_hash: str) -> bool:
        if not password_hash:
            return False
        try:
            return bool(self._pwd.needs_update(password_hash))
        except Exception:
            return False


def create_access_token(
    *,
    secret: str,
    user_id: int,
    expires_minutes: int = 0,
) -> str:
    if not secret:
        raise ValueError("jwt_secret_blank")

    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": str(int(user_id)),
        "iat": int(now.timestamp()),
    }
    if expires_minutes and int(expires_minutes) > 0:
        exp = now + timedelta(minutes=int(expires_minutes))
        payload["exp"] = int(exp.timestamp())
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def decode_access_token(*, token: str, secret: str) -> int:
    """Verify a token and return the account id it was issued for.

    Raises InvalidTokenError for anything that is not a well-formed token
    signed with ``secret``.
    """
    if not secret:
        raise ValueError("jwt_secret_blank")
    if not token or not isinstance(token, str):
        raise InvalidTokenError("token_blank")

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[_JWT_ALG],
            options={"require": ["sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidTokenError("token_expired")
    except jwt.InvalidTokenError as e:
        raise InvalidTokenError("token_invalid", reason=f"token_invalid: {type(e).__name__}")

    sub = payload.get("sub")
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise InvalidTokenError("token_sub_not_int")
    if user_id <= 0:
        raise InvalidTokenError("token_sub_not_positive")
    return user_id

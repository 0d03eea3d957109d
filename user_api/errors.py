"""Error kinds surfaced by the service.

Every kind carries a short machine-readable ``detail`` code (the same
snake_case strings the API returns). Kinds whose cause must not reach the
caller (auth failures, hashing failures) use a fixed public detail and keep
the real reason in ``reason`` for server-side logs only.
"""

from __future__ import annotations


class UserApiError(Exception):
    status_code = 500
    public_detail: str | None = None

    def __init__(self, detail: str = "error", *, reason: str | None = None):
        super().__init__(detail)
        self.detail = detail
        self.reason = reason or detail

    @property
    def response_detail(self) -> str:
        return self.public_detail or self.detail


class ValidationError(UserApiError):
    status_code = 422


class ConflictError(UserApiError):
    status_code = 409


class Unauthenticated(UserApiError):
    status_code = 401
    public_detail = "unauthorized"


class Forbidden(UserApiError):
    status_code = 403


class NotFound(UserApiError):
    status_code = 404


class HashingError(UserApiError):
    status_code = 500
    public_detail = "internal_error"


class InvalidTokenError(UserApiError):
    """Token verification failed. Never surfaced directly; the authenticator maps it to Unauthenticated."""

    status_code = 401
    public_detail = "unauthorized"

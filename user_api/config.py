import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, default)


def _env_int(name: str, default: int) -> int:
    """Parse an integer environment variable, falling back to default when unset or blank."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw.strip())


def _default_dsn() -> str:
    # Preferred: USER_API_DATABASE_URL (or DATABASE_URL) for Postgres.
    # Fallback: USER_API_DB_PATH for SQLite.
    return (
        os.environ.get("USER_API_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("USER_API_DB_PATH", "./user_api.sqlite")
    )


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    Values are read from the environment when the instance is built (not at
    import time), so tests can construct a Config directly with overrides.

    IMPORTANT: Provide the JWT secret via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    DB_DSN: str = field(default_factory=_default_dsn)

    # -----------------
    # Auth (JWT)
    # -----------------
    # NOTE: In dev, this defaults to a fixed string so you can get started.
    # In production, you MUST set AUTH_JWT_SECRET to a strong random value.
    AUTH_JWT_SECRET: str = field(default_factory=lambda: _env_str("AUTH_JWT_SECRET", "dev_change_me"))

    # 0 means tokens carry no exp claim and stay valid until the secret rotates.
    AUTH_TOKEN_EXPIRE_MINUTES: int = field(default_factory=lambda: _env_int("AUTH_TOKEN_EXPIRE_MINUTES", 0))

    # pbkdf2_sha256 work factor. Raising it upgrades stored hashes on next login.
    AUTH_PASSWORD_ROUNDS: int = field(default_factory=lambda: _env_int("AUTH_PASSWORD_ROUNDS", 29000))

    # -----------------
    # CORS (development)
    # -----------------
    # Comma-separated list. Empty disables the CORS middleware entirely.
    CORS_ALLOW_ORIGINS: str = field(
        default_factory=lambda: _env_str("CORS_ALLOW_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    )

    def cors_origins(self) -> list[str]:
        return [o.strip() for o in (self.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]


def load_config(env_file: Optional[str] = None) -> Config:
    """Load a local .env (if present) and build the process-wide Config."""
    load_dotenv(env_file)
    return Config()

"""
Shared pytest fixtures for user_api tests.

This module provides:
- A Config pointing at a throwaway SQLite file with a cheap work factor
- The app built through create_app() and a FastAPI TestClient for it
- Small helpers for signing up and building auth headers
"""

import os
import sys
from typing import Any, Callable, Dict

import pytest
from fastapi.testclient import TestClient

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from user_api.api.server import create_app
from user_api.auth.security import PasswordHasher
from user_api.config import Config
from user_api.db import init_db
from user_api.users.store import UserStore


TEST_SECRET = "test-secret-do-not-use-0123456789abcdef"
TEST_ROUNDS = 1000


@pytest.fixture
def cfg(tmp_path) -> Config:
    return Config(
        DB_DSN=str(tmp_path / "users.sqlite"),
        AUTH_JWT_SECRET=TEST_SECRET,
        AUTH_TOKEN_EXPIRE_MINUTES=0,
        AUTH_PASSWORD_ROUNDS=TEST_ROUNDS,
        CORS_ALLOW_ORIGINS="",
    )


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=TEST_ROUNDS)


@pytest.fixture
def store(cfg: Config, hasher: PasswordHasher) -> UserStore:
    init_db(cfg.DB_DSN)
    return UserStore(cfg.DB_DSN, hasher)


@pytest.fixture
def app(cfg: Config):
    return create_app(cfg)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def signup(client: TestClient) -> Callable[..., Dict[str, Any]]:
    """Sign up an account and return the response body (user + token)."""

    def _signup(username: str, password: str = "s3cret!", name: str | None = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"username": username, "password": password}
        if name is not None:
            body["name"] = name
        resp = client.post("/v1/users", json=body)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _signup

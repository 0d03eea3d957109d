"""Database schema for the user API.

SQLite is the default engine; Postgres is supported through psycopg2.
Timestamps are ISO-8601 TEXT (UTC, with 'Z') so both engines store and sort
them the same way.

The username UNIQUE constraint is what arbitrates concurrent signups racing
on the same name; application-level existence checks are only a fast path.
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Accounts
-- Only the password hash is stored; it never appears in API responses.
CREATE TABLE IF NOT EXISTS users (
    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
    type TEXT NOT NULL DEFAULT 'User',
    name TEXT,
    username TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_users_created ON users (created_at);
"""


def _to_postgres(ddl: str) -> str:
    out = ddl.replace("PRAGMA foreign_keys = ON;", "")
    out = re.sub(
        r"INTEGER PRIMARY KEY AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
    )
    return out


SCHEMA_POSTGRES = _to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE

from __future__ import annotations

import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence
from urllib.parse import urlparse

from user_api.schema import get_schema_sql


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


def detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'."""
    s = (dsn or "").strip()
    if not s:
        return "sqlite"
    scheme = urlparse(s).scheme.lower()
    if scheme in ("postgres", "postgresql"):
        return "postgres"
    return "sqlite"


# Single- or double-quoted literals (with doubled-quote escapes), or a bare placeholder.
_QMARK_RE = re.compile(r"""('(?:[^']|'')*'|"(?:[^"]|"")*"|\?)""")


def qmark_to_pct(sql: str) -> str:
    """Rewrite SQLite ``?`` placeholders as psycopg2 ``%s``, leaving quoted literals alone."""
    return _QMARK_RE.sub(lambda m: "%s" if m.group(0) == "?" else m.group(0), sql)


class PGConnection:
    """Makes a psycopg2 connection answer the small sqlite3 API this project uses."""

    dialect = "postgres"

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        cur = self._conn.cursor()
        cur.execute(qmark_to_pct(sql), tuple(params or ()))
        return cur

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


def _sqlite_path(dsn: str) -> str:
    # Support sqlite:///path style
    if dsn.lower().startswith("sqlite:///"):
        return dsn[len("sqlite:///"):]
    return dsn


@contextmanager
def connect(db_dsn: str) -> Iterator[Any]:
    """Open a connection for one unit of work.

    Commits when the block exits cleanly and rolls back when it raises.

    - SQLite: WAL + NORMAL sync, rows are sqlite3.Row.
    - Postgres: psycopg2 with RealDictCursor so rows behave like dicts.
    """
    dsn = (db_dsn or "").strip()

    if detect_dialect(dsn) == "postgres":
        try:
            import psycopg2
            import psycopg2.extras
        except ImportError as e:
            raise RuntimeError(
                "Postgres selected but psycopg2 is not installed. "
                "Install psycopg2-binary and try again."
            ) from e

        conn: Any = PGConnection(psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor))
    else:
        path = _sqlite_path(dsn)
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
        conn.execute("PRAGMA foreign_keys = ON;")

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def is_integrity_error(exc: BaseException) -> bool:
    """True for a constraint violation from either engine (e.g. duplicate username)."""
    if isinstance(exc, sqlite3.IntegrityError):
        return True
    try:
        import psycopg2
    except ImportError:
        return False
    return isinstance(exc, psycopg2.IntegrityError)


def init_db(db_dsn: str) -> None:
    """Create all tables. Safe to call on every startup."""
    dialect = detect_dialect(db_dsn)
    _debug(f"Initializing DB ({dialect})")
    ddl = get_schema_sql(dialect)
    with connect(db_dsn) as conn:
        if dialect == "postgres":
            # Naive split is fine for this schema (no semicolons inside literals).
            for stmt in (s.strip() for s in ddl.split(";")):
                if stmt:
                    conn.execute(stmt)
        else:
            conn.executescript(ddl)

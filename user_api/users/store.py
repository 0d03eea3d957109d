from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from user_api.db import connect, is_integrity_error
from user_api.errors import ConflictError, HashingError, ValidationError

if TYPE_CHECKING:
    from user_api.auth.security import PasswordHasher


def _debug(msg: str) -> None:
    print(f"[users] {msg}")


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


# Columns that may leave the backend. password_hash is deliberately absent.
_PUBLIC_FIELDS = ("type", "name", "username", "created_at", "updated_at")

_UPDATABLE_FIELDS = ("name", "username")

# Both engines store ids as signed 64-bit integers.
_MAX_ID = 2**63 - 1


def _id_in_range(user_id: int) -> bool:
    return 1 <= int(user_id) <= _MAX_ID


def normalize_username(username: Optional[str]) -> str:
    return (username or "").strip()


def public_user(row: Any) -> Dict[str, Any]:
    d = dict(row)
    out: Dict[str, Any] = {"id": int(d["user_id"])}
    for k in _PUBLIC_FIELDS:
        out[k] = d.get(k)
    return out


class UserStore:
    """Accounts table access.

    Every method opens its own unit of work. Only ``create`` and
    ``set_password`` write ``password_hash``, and both take the plaintext
    and run it through the hasher.
    """

    def __init__(self, db_dsn: str, hasher: PasswordHasher):
        self.db_dsn = db_dsn
        self.hasher = hasher
        # Built up front so the first unknown-username login costs one hash, like every other.
        self._dummy_hash = hasher.hash("timing-parity-placeholder")

    # -----------------
    # Reads
    # -----------------

    def _row_by_id(self, conn: Any, user_id: int) -> Optional[Any]:
        if not _id_in_range(user_id):
            return None
        return conn.execute("SELECT * FROM users WHERE user_id=?", (int(user_id),)).fetchone()

    def _row_by_username(self, conn: Any, username: str) -> Optional[Any]:
        u = normalize_username(username)
        if not u:
            return None
        return conn.execute("SELECT * FROM users WHERE username=?", (u,)).fetchone()

    def find_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        with connect(self.db_dsn) as conn:
            row = self._row_by_id(conn, user_id)
        return public_user(row) if row is not None else None

    def find_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        with connect(self.db_dsn) as conn:
            row = self._row_by_username(conn, username)
        return public_user(row) if row is not None else None

    def list_users(self) -> List[Dict[str, Any]]:
        with connect(self.db_dsn) as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY user_id").fetchall()
        return [public_user(r) for r in rows]

    # -----------------
    # Writes
    # -----------------

    def create(self, *, username: str, password: str, name: Optional[str] = None) -> Dict[str, Any]:
        u = normalize_username(username)
        if not u:
            raise ValidationError("username_blank")
        # Hash before opening the transaction; it is the slow part.
        password_hash = self.hasher.hash(password)

        now = utcnow_iso()
        try:
            with connect(self.db_dsn) as conn:
                if self._row_by_username(conn, u) is not None:
                    raise ConflictError("username_exists")
                conn.execute(
                    """
                    INSERT INTO users (name, username, password_hash, created_at, updated_at)
                    VALUES (?,?,?,?,?)
                    """,
                    (name, u, password_hash, now, now),
                )
                row = self._row_by_username(conn, u)
        except Exception as e:
            # A concurrent signup won the race on the UNIQUE constraint.
            if is_integrity_error(e):
                raise ConflictError("username_exists") from e
            raise

        assert row is not None
        _debug(f"created user_id={row['user_id']}")
        return public_user(row)

    def update_by_id(self, user_id: int, fields: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply a partial update of name/username. Returns None when the account does not exist."""
        unknown = [k for k in fields if k not in _UPDATABLE_FIELDS]
        if unknown:
            raise ValidationError(f"field_not_updatable:{unknown[0]}")
        if not fields:
            raise ValidationError("no_fields")

        updates: list[tuple[str, Any]] = []
        if "name" in fields:
            updates.append(("name", fields["name"]))
        if "username" in fields:
            u = normalize_username(fields["username"])
            if not u:
                raise ValidationError("username_blank")
            updates.append(("username", u))
        updates.append(("updated_at", utcnow_iso()))

        sets = ", ".join(f"{k}=?" for k, _ in updates)
        params = [v for _, v in updates] + [int(user_id)]
        try:
            with connect(self.db_dsn) as conn:
                current = self._row_by_id(conn, user_id)
                if current is None:
                    return None
                new_username = dict(updates).get("username")
                if new_username is not None and new_username != current["username"]:
                    if self._row_by_username(conn, new_username) is not None:
                        raise ConflictError("username_exists")
                conn.execute(f"UPDATE users SET {sets} WHERE user_id=?", params)
                row = self._row_by_id(conn, user_id)
        except Exception as e:
            if is_integrity_error(e):
                raise ConflictError("username_exists") from e
            raise
        return public_user(row)

    def set_password(self, user_id: int, password: str) -> bool:
        """Re-hash and store a new password. Returns False when the account does not exist."""
        if not _id_in_range(user_id):
            return False
        password_hash = self.hasher.hash(password)
        with connect(self.db_dsn) as conn:
            cur = conn.execute(
                "UPDATE users SET password_hash=?, updated_at=? WHERE user_id=?",
                (password_hash, utcnow_iso(), int(user_id)),
            )
            return int(cur.rowcount or 0) > 0

    def delete_by_id(self, user_id: int) -> bool:
        if not _id_in_range(user_id):
            return False
        with connect(self.db_dsn) as conn:
            cur = conn.execute("DELETE FROM users WHERE user_id=?", (int(user_id),))
            deleted = int(cur.rowcount or 0) > 0
        if deleted:
            _debug(f"deleted user_id={int(user_id)}")
        return deleted

    # -----------------
    # Credentials
    # -----------------

    def verify_credentials(self, username: str, password: str) -> Optional[Dict[str, Any]]:
        """Return the public account when username/password match, else None.

        Unknown usernames still pay for one hash verification so the two
        failure paths take comparable time.
        """
        with connect(self.db_dsn) as conn:
            row = self._row_by_username(conn, username)

        if row is None:
            self.hasher.verify(password, self._dummy_hash)
            return None

        stored = str(row["password_hash"] or "")
        if not self.hasher.verify(password, stored):
            return None

        if self.hasher.needs_update(stored):
            _debug(f"upgrading password hash for user_id={row['user_id']}")
            try:
                self.set_password(int(row["user_id"]), password)
            except HashingError as e:
                # The upgrade is opportunistic; the credentials already checked out.
                _debug(f"hash upgrade failed for user_id={row['user_id']}: {e.reason}")

        return public_user(row)

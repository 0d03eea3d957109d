"""
Tests for UserStore (the accounts table) against a temporary SQLite file.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from user_api.auth.security import PasswordHasher
from user_api.db import connect, init_db
from user_api.errors import ConflictError, HashingError, ValidationError
from user_api.users.store import UserStore


def _raw_hash(store: UserStore, user_id: int) -> str:
    with connect(store.db_dsn) as conn:
        row = conn.execute("SELECT password_hash FROM users WHERE user_id=?", (user_id,)).fetchone()
    return str(row["password_hash"])


class TestCreate:
    def test_create_returns_public_account(self, store):
        u = store.create(name="Alice", username="alice", password="s3cret!")

        assert u["id"] >= 1
        assert u["username"] == "alice"
        assert u["name"] == "Alice"
        assert u["type"] == "User"
        assert "password" not in u
        assert "password_hash" not in u

    def test_stored_credential_is_a_hash(self, store, hasher):
        u = store.create(username="alice", password="s3cret!")
        stored = _raw_hash(store, u["id"])

        assert stored != "s3cret!"
        assert hasher.verify("s3cret!", stored)

    def test_username_is_stripped(self, store):
        u = store.create(username="  alice ", password="s3cret!")
        assert u["username"] == "alice"
        assert store.find_by_username("alice")["id"] == u["id"]

    def test_duplicate_username_conflicts_and_creates_nothing(self, store):
        store.create(username="alice", password="s3cret!")

        with pytest.raises(ConflictError) as exc:
            store.create(username="alice", password="different")
        assert exc.value.detail == "username_exists"
        assert len(store.list_users()) == 1

    def test_constraint_violation_from_racing_insert_maps_to_conflict(self, store, monkeypatch):
        store.create(username="alice", password="s3cret!")
        # Simulate the other request passing the existence check first.
        monkeypatch.setattr(store, "_row_by_username", lambda conn, username: None)

        with pytest.raises(ConflictError):
            store.create(username="alice", password="s3cret!")
        monkeypatch.undo()
        assert len(store.list_users()) == 1

    @pytest.mark.parametrize("username", ["", "   ", None])
    def test_blank_username_rejected(self, store, username):
        with pytest.raises(ValidationError) as exc:
            store.create(username=username, password="s3cret!")
        assert exc.value.detail == "username_blank"

    def test_blank_password_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create(username="alice", password="")
        assert store.list_users() == []

    def test_hashing_failure_persists_nothing(self, store, monkeypatch):
        def boom(password):
            raise HashingError("hashing_failed")

        monkeypatch.setattr(store.hasher, "hash", boom)

        with pytest.raises(HashingError):
            store.create(username="alice", password="s3cret!")
        monkeypatch.undo()
        assert store.list_users() == []


class TestReads:
    def test_find_by_id_and_username(self, store):
        u = store.create(username="alice", password="s3cret!")

        assert store.find_by_id(u["id"]) == u
        assert store.find_by_username("alice") == u
        assert store.find_by_id(u["id"] + 100) is None
        assert store.find_by_username("bob") is None
        assert store.find_by_username("") is None

    def test_list_users_in_creation_order_without_credentials(self, store):
        store.create(username="alice", password="s3cret!")
        store.create(username="bob", password="hunter22")

        users = store.list_users()
        assert [u["username"] for u in users] == ["alice", "bob"]
        assert all("password_hash" not in u and "password" not in u for u in users)


class TestUpdate:
    def test_update_name(self, store):
        u = store.create(username="alice", password="s3cret!")

        updated = store.update_by_id(u["id"], {"name": "Alice Liddell"})
        assert updated["name"] == "Alice Liddell"
        assert updated["username"] == "alice"
        assert updated["id"] == u["id"]

    def test_update_username_to_taken_name_conflicts(self, store):
        store.create(username="alice", password="s3cret!")
        bob = store.create(username="bob", password="hunter22")

        with pytest.raises(ConflictError):
            store.update_by_id(bob["id"], {"username": "alice"})
        assert store.find_by_id(bob["id"])["username"] == "bob"

    def test_update_username_to_own_name_is_fine(self, store):
        u = store.create(username="alice", password="s3cret!")
        assert store.update_by_id(u["id"], {"username": "alice"})["username"] == "alice"

    def test_update_does_not_touch_credential(self, store):
        u = store.create(username="alice", password="s3cret!")
        before = _raw_hash(store, u["id"])

        store.update_by_id(u["id"], {"name": "A"})
        assert _raw_hash(store, u["id"]) == before

    @pytest.mark.parametrize("fields", [{"password": "x"}, {"password_hash": "x"}, {"user_id": 9}, {"type": "Admin"}])
    def test_update_rejects_non_updatable_fields(self, store, fields):
        u = store.create(username="alice", password="s3cret!")
        with pytest.raises(ValidationError):
            store.update_by_id(u["id"], fields)

    def test_update_requires_fields(self, store):
        u = store.create(username="alice", password="s3cret!")
        with pytest.raises(ValidationError) as exc:
            store.update_by_id(u["id"], {})
        assert exc.value.detail == "no_fields"

    def test_update_missing_account_returns_none(self, store):
        assert store.update_by_id(999, {"name": "ghost"}) is None


class TestPasswordAndDelete:
    def test_set_password_rehashes(self, store, hasher):
        u = store.create(username="alice", password="s3cret!")

        assert store.set_password(u["id"], "n3w-pass") is True
        stored = _raw_hash(store, u["id"])
        assert hasher.verify("n3w-pass", stored)
        assert not hasher.verify("s3cret!", stored)

    def test_set_password_for_missing_account(self, store):
        assert store.set_password(999, "n3w-pass") is False

    def test_delete(self, store):
        u = store.create(username="alice", password="s3cret!")

        assert store.delete_by_id(u["id"]) is True
        assert store.find_by_id(u["id"]) is None
        assert store.delete_by_id(u["id"]) is False


class TestVerifyCredentials:
    def test_matching_credentials(self, store):
        u = store.create(username="alice", password="s3cret!")
        assert store.verify_credentials("alice", "s3cret!") == u

    def test_wrong_password_and_unknown_username_look_the_same(self, store):
        store.create(username="alice", password="s3cret!")

        assert store.verify_credentials("alice", "wrong") is None
        assert store.verify_credentials("nobody", "s3cret!") is None
        assert store.verify_credentials("", "") is None

    def test_login_upgrades_weak_hash(self, cfg, store):
        u = store.create(username="alice", password="s3cret!")
        assert _raw_hash(store, u["id"]).startswith("$pbkdf2-sha256$1000$")

        stronger = UserStore(cfg.DB_DSN, PasswordHasher(rounds=2000))
        assert stronger.verify_credentials("alice", "s3cret!") is not None

        upgraded = _raw_hash(store, u["id"])
        assert upgraded.startswith("$pbkdf2-sha256$2000$")
        assert stronger.verify_credentials("alice", "s3cret!") is not None


class TestOutOfRangeIds:
    @pytest.mark.parametrize("user_id", [0, -1, 2**63, 10**20])
    def test_ids_outside_storage_range_find_nothing(self, store, user_id):
        store.create(username="alice", password="s3cret!")

        assert store.find_by_id(user_id) is None
        assert store.update_by_id(user_id, {"name": "x"}) is None
        assert store.set_password(user_id, "n3w-pass") is False
        assert store.delete_by_id(user_id) is False
        assert len(store.list_users()) == 1


class TestHashUpgradeFailure:
    def test_login_succeeds_when_upgrade_cannot_hash(self, cfg, store, monkeypatch):
        u = store.create(username="alice", password="s3cret!")
        stronger = UserStore(cfg.DB_DSN, PasswordHasher(rounds=2000))
        before = _raw_hash(store, u["id"])

        def boom(password):
            raise HashingError("hashing_failed")

        monkeypatch.setattr(stronger.hasher, "hash", boom)

        assert stronger.verify_credentials("alice", "s3cret!") == u
        assert _raw_hash(store, u["id"]) == before


def test_timing_placeholder_hash_is_built_at_construction(cfg, monkeypatch):
    calls = []
    hasher = PasswordHasher(rounds=1000)
    original = hasher.hash
    monkeypatch.setattr(hasher, "hash", lambda password: calls.append(password) or original(password))
    init_db(cfg.DB_DSN)

    users = UserStore(cfg.DB_DSN, hasher)
    assert len(calls) == 1

    assert users.verify_credentials("nobody", "s3cret!") is None
    assert len(calls) == 1

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from chatroom.database import Database, resolve_database_path
from chatroom.errors import ConflictError

from conftest import PASSWORD


def test_create_user_normalises_fields(database: Database) -> None:
    user = database.create_user("  Carol@Example.COM ", " Carol ", "Stone ", PASSWORD)

    assert user.email == "carol@example.com"
    assert user.first_name == "carol"
    assert user.last_name == "stone"
    assert database.get_user(user.id) == user
    assert database.get_user_by_email("CAROL@example.com") == user


def test_password_is_stored_hashed(database: Database) -> None:
    user = database.create_user("dave@example.com", "Dave", "Brown", PASSWORD)

    with sqlite3.connect(database.path) as conn:
        (stored,) = conn.execute("SELECT password_hash FROM users WHERE id = ?", (user.id,)).fetchone()

    assert stored != PASSWORD
    assert stored.startswith("$pbkdf2-sha256$")


def test_authenticate_user(database: Database) -> None:
    user = database.create_user("erin@example.com", "Erin", "White", PASSWORD)

    assert database.authenticate_user(" ERIN@example.com", PASSWORD) == user
    assert database.authenticate_user("erin@example.com", "wrong-password") is None
    assert database.authenticate_user("nobody@example.com", PASSWORD) is None


def test_duplicate_email_is_a_conflict(database: Database) -> None:
    database.create_user("frank@example.com", "Frank", "Green", PASSWORD)

    with pytest.raises(ConflictError):
        database.create_user("FRANK@example.com", "Other", "Person", PASSWORD)
    assert database.count_users_with_email("frank@example.com") == 1


def test_create_user_requires_password(database: Database) -> None:
    with pytest.raises(ValueError):
        database.create_user("gina@example.com", "Gina", "Black", "")


def test_update_and_delete_require_owner(database: Database, alice, bob) -> None:
    message = database.create_message(alice.id, "hello")

    assert database.update_message_content(message.id, bob.id, "nope") is None
    assert database.soft_delete_message(message.id, bob.id) is False

    updated = database.update_message_content(message.id, alice.id, "hello again")
    assert updated is not None
    assert updated.content == "hello again"
    assert updated.is_edited

    assert database.soft_delete_message(message.id, alice.id) is True
    assert database.soft_delete_message(message.id, alice.id) is False
    assert database.get_message(message.id) is None
    assert database.get_message(message.id, include_deleted=True).is_deleted


def test_last_message_change_includes_deleted_rows(database: Database, alice) -> None:
    assert database.last_message_change() is None

    first = database.create_message(alice.id, "first")
    second = database.create_message(alice.id, "second")
    assert database.last_message_change() == second.created_at

    database.update_message_content(first.id, alice.id, "first, edited")
    edited = database.get_message(first.id)
    assert database.last_message_change() == edited.updated_at

    database.soft_delete_message(second.id, alice.id)
    deleted = database.get_message(second.id, include_deleted=True)
    assert database.last_message_change() == deleted.deleted_at
    assert [message.id for message in database.list_messages()] == [first.id]


def test_search_escapes_like_wildcards(database: Database, alice) -> None:
    database.create_message(alice.id, "snake_case name")
    database.create_message(alice.id, "snakeXcase name")

    assert [m.content for m in database.list_messages(query="e_c")] == ["snake_case name"]
    assert len(database.list_messages(query="CASE")) == 2


def test_resolve_database_path(tmp_path: Path) -> None:
    assert resolve_database_path(str(tmp_path / "db.sqlite3")) == (tmp_path / "db.sqlite3").resolve()
    assert resolve_database_path(None).name == "chatroom.sqlite3"

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from chatroom.models import User
from chatroom.sessions import SessionManager


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _user() -> User:
    return User(
        id=7,
        email="alice@example.com",
        first_name="alice",
        last_name="smith",
        created_at=datetime(2025, 12, 31, tzinfo=timezone.utc),
    )


def test_session_resolves_until_idle_timeout() -> None:
    clock = _Clock()
    sessions = SessionManager(ttl=timedelta(minutes=10), clock=clock)
    token = sessions.create(_user())

    record = sessions.resolve(token)
    assert record is not None
    assert record.user_id == 7
    assert record.user_first_name == "alice"

    # Each resolve slides the expiry forward.
    clock.now += timedelta(minutes=9)
    assert sessions.resolve(token) is not None
    clock.now += timedelta(minutes=9)
    assert sessions.resolve(token) is not None

    clock.now += timedelta(minutes=10)
    assert sessions.resolve(token) is None
    assert sessions.resolve(token) is None


def test_destroy_and_unknown_tokens() -> None:
    sessions = SessionManager()
    token = sessions.create(_user())

    assert sessions.resolve("unknown") is None
    assert sessions.resolve(None) is None
    sessions.destroy(None)
    sessions.destroy(token)
    assert sessions.resolve(token) is None
    assert sessions.cookie_max_age == 86400

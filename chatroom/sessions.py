"""Server-side session store for authenticated chatroom users."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from .models import User

SESSION_COOKIE_NAME = "chatroom_session"


@dataclass
class SessionRecord:
    """Principal attached to a session token."""

    user_id: int
    user_email: str
    user_first_name: str
    expires_at: datetime


class SessionManager:
    """Generate, resolve and destroy login sessions."""

    def __init__(
        self,
        *,
        ttl: timedelta = timedelta(days=1),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def cookie_max_age(self) -> int:
        return int(self._ttl.total_seconds())

    def create(self, user: User) -> str:
        token = secrets.token_urlsafe(32)
        record = SessionRecord(
            user_id=user.id,
            user_email=user.email,
            user_first_name=user.first_name,
            expires_at=self._clock() + self._ttl,
        )
        with self._lock:
            self._sessions[token] = record
        return token

    def resolve(self, token: Optional[str]) -> Optional[SessionRecord]:
        if not token:
            return None
        now = self._clock()
        with self._lock:
            record = self._sessions.get(token)
            if record is None:
                return None
            if record.expires_at <= now:
                self._sessions.pop(token, None)
                return None
            record.expires_at = now + self._ttl
            return record

    def destroy(self, token: Optional[str]) -> None:
        if not token:
            return
        with self._lock:
            self._sessions.pop(token, None)


__all__ = ["SESSION_COOKIE_NAME", "SessionManager", "SessionRecord"]

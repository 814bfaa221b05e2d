"""Two-step registration carried in short-lived, sealed cookies.

Step one stages the identity fields (email, first and last name) in the
``reg_data`` cookie together with an issue time in ``reg_timestamp``. Step
two supplies the password and creates the user. Nothing is written to the
store until step two succeeds, and the staged data is only trusted while the
issue time is inside the registration window, so abandoned registrations need
no cleanup.

The email uniqueness check in both steps is a fast path only. Two browsers
completing step two for the same email at the same time are arbitrated by the
UNIQUE constraint on ``users.email``; the loser has its cookies cleared and is
asked to start over.
"""
from __future__ import annotations

import base64
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Mapping, Optional

from cryptography.fernet import Fernet, InvalidToken

from .database import Database
from .errors import ConflictError, InvalidSessionError, SessionExpiredError
from .models import User
from .validators import (
    ERRORS,
    normalize_email,
    validate_email,
    validate_name,
    validate_password_pair,
)

REG_DATA_COOKIE = "reg_data"
REG_TIMESTAMP_COOKIE = "reg_timestamp"
REGISTRATION_COOKIES = (REG_DATA_COOKIE, REG_TIMESTAMP_COOKIE)

DEFAULT_REGISTER_TIMEOUT = timedelta(seconds=30)

RACE_LOST_MESSAGE = "This email was registered by another user. Please start over."

logger = logging.getLogger("chatroom.registration")


@dataclass(frozen=True)
class StagedRegistration:
    """Identity fields captured by step one."""

    email: str
    first_name: str
    last_name: str

    def to_dict(self) -> Dict[str, str]:
        return {"email": self.email, "firstName": self.first_name, "lastName": self.last_name}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str) -> "StagedRegistration":
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Staged registration must be a JSON object")
        fields = (data.get("email"), data.get("firstName"), data.get("lastName"))
        if not all(isinstance(value, str) and value for value in fields):
            raise ValueError("Staged registration is missing required fields")
        email, first_name, last_name = fields
        return cls(email=email, first_name=first_name, last_name=last_name)


def build_cookie_cipher(secret: str) -> Fernet:
    if not secret:
        raise ValueError("A secret is required to seal registration cookies")
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def is_within_window(issued_at_ms: int, now_ms: int, timeout_ms: int) -> bool:
    return now_ms - issued_at_ms <= timeout_ms


class RegistrationFlow:
    """State machine for the cookie-carried registration wizard."""

    def __init__(
        self,
        database: Database,
        *,
        secret: str,
        timeout: timedelta = DEFAULT_REGISTER_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._database = database
        self._cipher = build_cookie_cipher(secret)
        self._timeout_ms = int(timeout.total_seconds() * 1000)
        self._clock = clock

    @property
    def cookie_max_age(self) -> int:
        return self._timeout_ms // 1000

    @property
    def timeout_seconds(self) -> int:
        return self._timeout_ms // 1000

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def seal(self, value: str) -> str:
        return self._cipher.encrypt(value.encode("utf-8")).decode("ascii")

    def _unseal(self, token: str) -> Optional[str]:
        try:
            return self._cipher.decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError):
            return None

    # ------------------------------------------------------------------
    # Cookie guards
    # ------------------------------------------------------------------
    def _issued_at(self, cookies: Mapping[str, str]) -> Optional[int]:
        token = cookies.get(REG_TIMESTAMP_COOKIE)
        if not token:
            return None
        raw = self._unseal(token)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    def _require_window(self, cookies: Mapping[str, str]) -> str:
        """Return the sealed staged blob, or raise if the window has closed."""

        sealed_data = cookies.get(REG_DATA_COOKIE)
        issued_at = self._issued_at(cookies)
        if not sealed_data or issued_at is None:
            raise SessionExpiredError()
        if not is_within_window(issued_at, self._now_ms(), self._timeout_ms):
            raise SessionExpiredError()
        return sealed_data

    def _decode(self, sealed_data: str) -> StagedRegistration:
        raw = self._unseal(sealed_data)
        if raw is None:
            raise InvalidSessionError()
        try:
            return StagedRegistration.from_json(raw)
        except ValueError as exc:
            raise InvalidSessionError() from exc

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def submit_step1(self, email: object, first_name: object, last_name: object) -> Dict[str, str]:
        """Validate identity fields and return the cookie values to stage them."""

        validate_email(email)
        cleaned_first = validate_name(first_name, label="First name")
        cleaned_last = validate_name(last_name, label="Last name")

        normalized = normalize_email(email)
        if self._database.get_user_by_email(normalized) is not None:
            raise ConflictError(ERRORS["EMAIL_EXISTS"], code="EMAIL_EXISTS")

        staged = StagedRegistration(
            email=normalized,
            first_name=cleaned_first.lower(),
            last_name=cleaned_last.lower(),
        )
        return {
            REG_DATA_COOKIE: self.seal(staged.to_json()),
            REG_TIMESTAMP_COOKIE: self.seal(str(self._now_ms())),
        }

    def resume(self, cookies: Mapping[str, str]) -> Optional[StagedRegistration]:
        """Return staged data when the cookies are usable, ``None`` otherwise."""

        try:
            return self.require_staged(cookies)
        except (SessionExpiredError, InvalidSessionError):
            return None

    def require_staged(self, cookies: Mapping[str, str]) -> StagedRegistration:
        return self._decode(self._require_window(cookies))

    def complete(self, cookies: Mapping[str, str], password: object, confirm_password: object) -> User:
        sealed_data = self._require_window(cookies)
        cleaned_password = validate_password_pair(password, confirm_password)
        staged = self._decode(sealed_data)

        if self._database.get_user_by_email(staged.email) is not None:
            raise ConflictError(RACE_LOST_MESSAGE, code="EMAIL_TAKEN")

        try:
            user = self._database.create_user(
                staged.email,
                staged.first_name,
                staged.last_name,
                cleaned_password,
            )
        except ConflictError as exc:
            logger.warning("Registration for %s lost a uniqueness race", staged.email)
            raise ConflictError(RACE_LOST_MESSAGE, code="EMAIL_TAKEN") from exc

        logger.info("Registered user %s", user.id)
        return user


__all__ = [
    "DEFAULT_REGISTER_TIMEOUT",
    "RACE_LOST_MESSAGE",
    "REGISTRATION_COOKIES",
    "REG_DATA_COOKIE",
    "REG_TIMESTAMP_COOKIE",
    "RegistrationFlow",
    "StagedRegistration",
    "build_cookie_cipher",
    "is_within_window",
]

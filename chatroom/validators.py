"""Field validation for registration, login and message content.

Every validator trims its input first and either returns the cleaned value or
raises :class:`~chatroom.errors.ValidationError` carrying a human readable
message and a machine readable ``code``.
"""
from __future__ import annotations

import re
from typing import Optional

from .errors import MismatchError, ValidationError

FIELD_MIN_LENGTH = 3
FIELD_MAX_LENGTH = 32
MESSAGE_MAX_LENGTH = 1000
# Largest value an SQLite INTEGER column can hold.
MESSAGE_ID_MAX = 2**63 - 1

NAME_PATTERN = re.compile(r"^[a-zA-Z]+$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

ERRORS = {
    "EMAIL_REQUIRED": "Email is required",
    "EMAIL_INVALID": "Invalid email format",
    "EMAIL_TOO_SHORT": f"Email must be at least {FIELD_MIN_LENGTH} characters",
    "EMAIL_TOO_LONG": f"Email must be at most {FIELD_MAX_LENGTH} characters",
    "EMAIL_EXISTS": "This email is already in use, please choose another one",
    "NAME_REQUIRED": "Name is required",
    "NAME_TOO_SHORT": f"Name must be at least {FIELD_MIN_LENGTH} characters",
    "NAME_TOO_LONG": f"Name must be at most {FIELD_MAX_LENGTH} characters",
    "NAME_INVALID": "Name must contain only letters (a-z)",
    "PASSWORD_REQUIRED": "Password is required",
    "PASSWORD_TOO_SHORT": f"Password must be at least {FIELD_MIN_LENGTH} characters",
    "PASSWORD_TOO_LONG": f"Password must be at most {FIELD_MAX_LENGTH} characters",
    "PASSWORDS_MISMATCH": "Passwords do not match",
    "MESSAGE_REQUIRED": "Message content is required",
    "MESSAGE_EMPTY": "Message content cannot be empty",
    "MESSAGE_TOO_LONG": f"Message content must be at most {MESSAGE_MAX_LENGTH} characters",
    "SEARCH_QUERY_REQUIRED": "Search query is required",
}


def _fail(code: str, *, prefix: str = "") -> ValidationError:
    return ValidationError(f"{prefix}{ERRORS[code]}", code=code)


def sanitize_string(value: object) -> str:
    """Return ``value`` stripped of surrounding whitespace, or ``""`` for non-strings."""

    if not isinstance(value, str):
        return ""
    return value.strip()


def normalize_email(value: object) -> str:
    return sanitize_string(value).lower()


def validate_email(value: object) -> str:
    email = sanitize_string(value)
    if not email:
        raise _fail("EMAIL_REQUIRED")
    if len(email) < FIELD_MIN_LENGTH:
        raise _fail("EMAIL_TOO_SHORT")
    if len(email) > FIELD_MAX_LENGTH:
        raise _fail("EMAIL_TOO_LONG")
    if not EMAIL_PATTERN.match(email):
        raise _fail("EMAIL_INVALID")
    return email


def validate_name(value: object, *, label: Optional[str] = None) -> str:
    """Validate a first or last name; ``label`` prefixes the error message."""

    prefix = f"{label}: " if label else ""
    name = sanitize_string(value)
    if not name:
        raise _fail("NAME_REQUIRED", prefix=prefix)
    if len(name) < FIELD_MIN_LENGTH:
        raise _fail("NAME_TOO_SHORT", prefix=prefix)
    if len(name) > FIELD_MAX_LENGTH:
        raise _fail("NAME_TOO_LONG", prefix=prefix)
    if not NAME_PATTERN.match(name):
        raise _fail("NAME_INVALID", prefix=prefix)
    return name


def validate_password(value: object) -> str:
    password = sanitize_string(value)
    if not password:
        raise _fail("PASSWORD_REQUIRED")
    if len(password) < FIELD_MIN_LENGTH:
        raise _fail("PASSWORD_TOO_SHORT")
    if len(password) > FIELD_MAX_LENGTH:
        raise _fail("PASSWORD_TOO_LONG")
    return password


def validate_password_pair(password: object, confirm_password: object) -> str:
    cleaned = validate_password(password)
    if cleaned != sanitize_string(confirm_password):
        raise MismatchError(ERRORS["PASSWORDS_MISMATCH"], code="PASSWORDS_MISMATCH")
    return cleaned


def validate_message_content(value: object) -> str:
    if not isinstance(value, str) or not value:
        raise _fail("MESSAGE_REQUIRED")
    content = value.strip()
    if not content:
        raise _fail("MESSAGE_EMPTY")
    if len(content) > MESSAGE_MAX_LENGTH:
        raise _fail("MESSAGE_TOO_LONG")
    return content


def validate_search_query(value: object) -> str:
    query = sanitize_string(value)
    if not query:
        raise _fail("SEARCH_QUERY_REQUIRED")
    return query


def parse_message_id(value: object) -> int:
    try:
        message_id = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("Invalid message ID", code="MESSAGE_ID_INVALID") from None
    if message_id <= 0 or message_id > MESSAGE_ID_MAX:
        raise ValidationError("Invalid message ID", code="MESSAGE_ID_INVALID")
    return message_id


__all__ = [
    "ERRORS",
    "FIELD_MAX_LENGTH",
    "FIELD_MIN_LENGTH",
    "MESSAGE_MAX_LENGTH",
    "normalize_email",
    "parse_message_id",
    "sanitize_string",
    "validate_email",
    "validate_message_content",
    "validate_name",
    "validate_password",
    "validate_password_pair",
    "validate_search_query",
]

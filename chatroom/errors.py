"""Error taxonomy shared by the chatroom services and HTTP handlers."""
from __future__ import annotations

from typing import Dict, Optional

from fastapi import status


class ChatroomError(RuntimeError):
    """Base class for errors that map onto a JSON error payload."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"success": False, "error": self.message}
        if self.code:
            payload["code"] = self.code
        return payload


class ValidationError(ChatroomError):
    """Raised when a field fails a shape, length or pattern check."""

    status_code = status.HTTP_400_BAD_REQUEST


class MismatchError(ValidationError):
    """Raised when a password and its confirmation differ."""


class ConflictError(ChatroomError):
    """Raised when an email address is already registered."""

    status_code = status.HTTP_409_CONFLICT


class AuthRequiredError(ChatroomError):
    """Raised when a protected operation is attempted without a session."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication required", *, code: Optional[str] = None) -> None:
        super().__init__(message, code=code)


class InvalidCredentialsError(ChatroomError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Invalid email or password", *, code: Optional[str] = None) -> None:
        super().__init__(message, code=code)


class ForbiddenError(ChatroomError):
    """Raised when a user touches a message they do not own."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ChatroomError):
    status_code = status.HTTP_404_NOT_FOUND


class SessionExpiredError(ChatroomError):
    """Raised when the staged registration cookies are missing or stale."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Registration session expired", *, code: Optional[str] = None) -> None:
        super().__init__(message, code=code or "SESSION_EXPIRED")

    def to_payload(self) -> Dict[str, object]:
        payload = super().to_payload()
        payload["expired"] = True
        return payload


class InvalidSessionError(ChatroomError):
    """Raised when the staged registration blob cannot be decoded."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Invalid session data", *, code: Optional[str] = None) -> None:
        super().__init__(message, code=code)


class ServerError(ChatroomError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Server error occurred", *, code: Optional[str] = None) -> None:
        super().__init__(message, code=code)


__all__ = [
    "AuthRequiredError",
    "ChatroomError",
    "ConflictError",
    "ForbiddenError",
    "InvalidCredentialsError",
    "InvalidSessionError",
    "MismatchError",
    "NotFoundError",
    "ServerError",
    "SessionExpiredError",
    "ValidationError",
]

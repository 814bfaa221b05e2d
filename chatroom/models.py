"""Domain records returned by the chatroom store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


@dataclass(frozen=True)
class User:
    """Represents a registered chatroom account."""

    id: int
    email: str
    first_name: str
    last_name: str
    created_at: datetime

    def to_public_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
        }


@dataclass(frozen=True)
class MessageAuthor:
    """Public fields of a message author; never includes email or password."""

    id: int
    first_name: str
    last_name: str

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.id, "firstName": self.first_name, "lastName": self.last_name}


@dataclass(frozen=True)
class Message:
    id: int
    content: str
    user_id: int
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None
    author: Optional[MessageAuthor] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_edited(self) -> bool:
        return self.updated_at != self.created_at

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "id": self.id,
            "content": self.content,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }
        if self.author is not None:
            payload["user"] = self.author.to_dict()
        return payload


__all__ = ["Message", "MessageAuthor", "User", "format_timestamp"]

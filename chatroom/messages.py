"""Message board operations with ownership checks and change tracking."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from .database import Database
from .errors import AuthRequiredError, ForbiddenError, NotFoundError
from .models import Message, format_timestamp
from .validators import parse_message_id, validate_message_content, validate_search_query

logger = logging.getLogger("chatroom.messages")


@dataclass(frozen=True)
class MessageListing:
    """A page of live messages and the board watermark observed with it."""

    messages: List[Message]
    last_update_at: Optional[datetime]

    def to_payload(self) -> Dict[str, object]:
        return {
            "success": True,
            "lastUpdateAt": format_timestamp(self.last_update_at),
            "messages": [message.to_dict() for message in self.messages],
        }


def _require_user(user_id: Optional[int]) -> int:
    if not user_id:
        raise AuthRequiredError()
    return user_id


class MessageBoard:
    """Applies ownership rules on top of the message store.

    The owner of a message is always the authenticated user passed in by the
    caller. Edits and deletes re-read the row at operation time and the store
    conditions the write on the same owner, so a stale client view can never
    mutate someone else's message.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def last_update_at(self) -> Optional[datetime]:
        return self._database.last_message_change()

    def list_messages(self) -> MessageListing:
        messages = self._database.list_messages()
        return MessageListing(messages=messages, last_update_at=self.last_update_at())

    def search(self, query: object) -> MessageListing:
        cleaned = validate_search_query(query)
        messages = self._database.list_messages(query=cleaned)
        return MessageListing(messages=messages, last_update_at=self.last_update_at())

    def create(self, user_id: Optional[int], content: object) -> Message:
        owner_id = _require_user(user_id)
        cleaned = validate_message_content(content)
        message = self._database.create_message(owner_id, cleaned)
        logger.info("User %s posted message %s", owner_id, message.id)
        return message

    def _load_owned(self, user_id: int, message_id: int, *, action: str) -> Message:
        message = self._database.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        if message.user_id != user_id:
            logger.warning(
                "User %s attempted to %s message %s owned by %s",
                user_id,
                action,
                message_id,
                message.user_id,
            )
            raise ForbiddenError(f"You can only {action} your own messages")
        return message

    def update(self, user_id: Optional[int], message_id: object, content: object) -> Message:
        owner_id = _require_user(user_id)
        numeric_id = parse_message_id(message_id)
        cleaned = validate_message_content(content)
        self._load_owned(owner_id, numeric_id, action="edit")

        updated = self._database.update_message_content(numeric_id, owner_id, cleaned)
        if updated is None:
            # Deleted between the ownership check and the write.
            raise NotFoundError("Message not found")
        logger.info("User %s edited message %s", owner_id, numeric_id)
        return updated

    def delete(self, user_id: Optional[int], message_id: object) -> None:
        owner_id = _require_user(user_id)
        numeric_id = parse_message_id(message_id)
        self._load_owned(owner_id, numeric_id, action="delete")

        if not self._database.soft_delete_message(numeric_id, owner_id):
            raise NotFoundError("Message not found")
        logger.info("User %s deleted message %s", owner_id, numeric_id)

    def get_owned(self, user_id: Optional[int], message_id: object) -> Message:
        """Return a live message only if ``user_id`` owns it."""

        owner_id = _require_user(user_id)
        return self._load_owned(owner_id, parse_message_id(message_id), action="delete")


__all__ = ["MessageBoard", "MessageListing"]

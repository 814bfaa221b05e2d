"""Client-side polling loop that keeps a message list fresh.

The poller asks the cheap ``/api/messages/last-update`` endpoint whether the
board changed since the watermark it holds. Only when the server watermark is
strictly newer does it re-fetch the list, and it then adopts the watermark
returned *with the list* rather than the one from the check, so the local
watermark never runs ahead of the data actually rendered.

Polling is paused while an edit is open and stops entirely while a search is
active; clearing the search restarts it immediately.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

import httpx

logger = logging.getLogger("chatroom.poller")

DEFAULT_POLL_INTERVAL = 10.0


class PollerError(RuntimeError):
    """Raised when the chatroom API returns an unexpected response."""


def _parse_watermark(value: object) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _extract_error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("error", "detail", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return default


@dataclass
class PollerState:
    """Mutable state of one poller, changed only through :class:`ChatPoller`."""

    watermark: Optional[datetime] = None
    messages: List[Dict[str, object]] = field(default_factory=list)
    editing_message_id: Optional[int] = None
    search_query: Optional[str] = None
    authenticated: bool = True
    task: Optional["asyncio.Task[None]"] = None

    @property
    def is_search_mode(self) -> bool:
        return self.search_query is not None

    @property
    def is_polling(self) -> bool:
        return self.task is not None and not self.task.done()

    @property
    def suspended(self) -> bool:
        return (
            self.editing_message_id is not None
            or self.is_search_mode
            or not self.authenticated
        )


class ChatPoller:
    """Poll the chatroom API and re-fetch messages only when they changed."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        on_messages: Optional[Callable[[List[Dict[str, object]]], None]] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("Polling interval must be positive")
        self._client = client
        self._interval = interval
        self._on_messages = on_messages
        self._state = PollerState()

    @property
    def state(self) -> PollerState:
        return self._state

    # ------------------------------------------------------------------
    # Network round trips
    # ------------------------------------------------------------------
    def _read_payload(self, response: httpx.Response, action: str) -> Dict[str, object]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise PollerError(f"Chatroom API returned an invalid response while trying to {action}") from exc

        if response.status_code >= 400 or not isinstance(payload, dict) or not payload.get("success"):
            default = f"Chatroom API request to {action} failed with status {response.status_code}"
            raise PollerError(_extract_error_message(payload, default))
        return payload

    def _handle_unauthorized(self) -> None:
        logger.info("Chatroom session is no longer valid; polling stopped")
        self._state.authenticated = False
        task = self._state.task
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def load_messages(self) -> bool:
        """Fetch the current view and adopt its watermark.

        Returns ``False`` when the response was discarded because the view
        changed while the request was in flight, or the session ended.
        """

        query = self._state.search_query
        if query is not None:
            response = await self._client.get("/api/messages/search", params={"q": query})
        else:
            response = await self._client.get("/api/messages")

        if response.status_code == 401:
            self._handle_unauthorized()
            return False

        payload = self._read_payload(response, "load messages")
        if self._state.search_query != query:
            logger.debug("Discarding stale message list for query %r", query)
            return False

        messages = payload.get("messages")
        self._state.messages = list(messages) if isinstance(messages, list) else []
        watermark = _parse_watermark(payload.get("lastUpdateAt"))
        if watermark is not None:
            self._state.watermark = watermark

        if self._on_messages is not None:
            self._on_messages(self._state.messages)
        return True

    async def has_server_updates(self) -> bool:
        response = await self._client.get("/api/messages/last-update")
        if response.status_code == 401:
            self._handle_unauthorized()
            return False

        payload = self._read_payload(response, "check for updates")
        server_watermark = _parse_watermark(payload.get("lastUpdateAt"))
        if server_watermark is None:
            return False
        if self._state.watermark is None:
            return True
        return server_watermark > self._state.watermark

    async def poll_once(self) -> bool:
        """Run a single update check; returns ``True`` when the list was re-fetched."""

        if self._state.suspended:
            return False
        if not await self.has_server_updates():
            return False
        return await self.load_messages()

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------
    async def _run(self) -> None:
        while self._state.authenticated:
            await asyncio.sleep(self._interval)
            if self._state.editing_message_id is not None:
                continue
            try:
                await self.poll_once()
            except (httpx.HTTPError, PollerError) as exc:
                logger.warning("Failed to check for message updates: %s", exc)
            except Exception:
                logger.exception("Message poll failed; will retry on the next tick")

    def start(self) -> None:
        """(Re)start the background timer."""

        task = self._state.task
        if task is not None and not task.done():
            task.cancel()
        self._state.task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task = self._state.task
        self._state.task = None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def begin(self) -> None:
        """Load the initial list and start polling."""

        await self.load_messages()
        if self._state.authenticated:
            self.start()

    # ------------------------------------------------------------------
    # Named transitions
    # ------------------------------------------------------------------
    def open_edit(self, message_id: int) -> None:
        self._state.editing_message_id = message_id

    def close_edit(self) -> None:
        self._state.editing_message_id = None

    async def _write(self, method: str, url: str, action: str, **kwargs) -> Optional[Dict[str, object]]:
        response = await self._client.request(method, url, **kwargs)
        if response.status_code == 401:
            self._handle_unauthorized()
            return None
        return self._read_payload(response, action)

    async def send_message(self, content: str) -> Optional[Dict[str, object]]:
        """Post a new message and reload the current view.

        Returns the created message, or ``None`` when the session has ended.
        """

        cleaned = (content or "").strip()
        if not cleaned:
            raise PollerError("Message content cannot be empty")
        payload = await self._write("POST", "/api/messages", "send message", json={"content": cleaned})
        if payload is None:
            return None
        await self.load_messages()
        return payload.get("message")

    async def save_edit(self, content: str) -> Optional[Dict[str, object]]:
        """Save the open edit, close it and reload the list.

        On a rejected update the edit stays open so the user can retry.
        """

        message_id = self._state.editing_message_id
        if message_id is None:
            raise PollerError("No message is being edited")
        cleaned = (content or "").strip()
        if not cleaned:
            raise PollerError("Message content cannot be empty")

        payload = await self._write(
            "PUT",
            f"/api/messages/{message_id}",
            "update message",
            json={"content": cleaned},
        )
        if payload is None:
            return None
        self.close_edit()
        await self.load_messages()
        return payload.get("message")

    async def delete_message(self, message_id: int) -> bool:
        payload = await self._write("DELETE", f"/api/messages/{message_id}", "delete message")
        if payload is None:
            return False
        if self._state.editing_message_id == message_id:
            self.close_edit()
        await self.load_messages()
        return True

    async def start_search(self, query: str) -> bool:
        cleaned = (query or "").strip()
        if not cleaned:
            return False
        self._state.search_query = cleaned
        await self.stop()
        return await self.load_messages()

    async def clear_search(self) -> bool:
        self._state.search_query = None
        if self._state.authenticated:
            self.start()
        return await self.load_messages()

    async def logout(self) -> None:
        await self.stop()
        self._state.authenticated = False
        await self._client.post("/api/auth/logout")


__all__ = ["ChatPoller", "DEFAULT_POLL_INTERVAL", "PollerError", "PollerState"]

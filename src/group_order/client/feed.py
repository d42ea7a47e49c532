"""Realtime feed of session events over WebSocket."""

import json
import logging
from dataclasses import dataclass
from typing import Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

logger = logging.getLogger(__name__)


class FeedDisconnected(Exception):
    """The realtime feed dropped or could not be opened."""


class FeedConnection(Protocol):
    """One open subscription to a session's events."""

    async def receive(self) -> dict[str, object]:
        """Wait for the next event; raises FeedDisconnected when the link drops."""

    async def send(self, message: dict[str, object]) -> None:
        """Send a control message such as ``ping``."""

    async def close(self) -> None:
        """Close the subscription."""


class SessionFeed(Protocol):
    async def connect(self, session_id: str) -> FeedConnection:
        """Open a subscription; raises FeedDisconnected on failure."""


@dataclass
class WebSocketFeedConnection(FeedConnection):
    websocket: ClientConnection

    async def receive(self) -> dict[str, object]:
        try:
            raw = await self.websocket.recv()
        except ConnectionClosed as exc:
            raise FeedDisconnected(f"Feed closed: {exc}") from exc
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed feed message")
            return {"type": "error", "data": {"message": "Malformed message"}}
        if not isinstance(message, dict):
            return {"type": "error", "data": {"message": "Malformed message"}}
        return message

    async def send(self, message: dict[str, object]) -> None:
        try:
            await self.websocket.send(json.dumps(message))
        except ConnectionClosed as exc:
            raise FeedDisconnected(f"Feed closed: {exc}") from exc

    async def close(self) -> None:
        await self.websocket.close()


@dataclass
class WebSocketSessionFeed(SessionFeed):
    """Subscribes to ``/ws/sessions/{id}`` on the session server."""

    base_url: str
    open_timeout_seconds: float = 10.0

    async def connect(self, session_id: str) -> WebSocketFeedConnection:
        url = f"{self.base_url.rstrip('/')}/ws/sessions/{session_id}"
        try:
            websocket = await connect(url, open_timeout=self.open_timeout_seconds)
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise FeedDisconnected(f"Could not open feed: {exc}") from exc
        return WebSocketFeedConnection(websocket)

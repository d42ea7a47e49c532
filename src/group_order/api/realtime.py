"""WebSocket push channel for session events."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from group_order.domain.errors import GroupOrderError, NotFound
from group_order.domain.events import EventKind
from group_order.services.serialization import settled_session_payload

if TYPE_CHECKING:
    from group_order.containers import AppContainer
    from group_order.services.broadcaster import Broadcaster

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSE_INTERNAL = 1011
CLOSE_NOT_FOUND = 4404
PRUNE_INTERVAL_SECONDS = 60.0
CHANNEL_IDLE_SECONDS = 180.0


@dataclass(eq=False)
class WebSocketChannel:
    """Broadcaster channel backed by a Starlette WebSocket."""

    websocket: WebSocket

    async def send(self, message: dict[str, object]) -> None:
        await self.websocket.send_json(message)

    async def close(self, code: int) -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        with contextlib.suppress(RuntimeError, WebSocketDisconnect):
            await self.websocket.close(code=code)


@router.websocket("/ws/sessions/{session_id}")
async def session_socket(websocket: WebSocket, session_id: str) -> None:
    """Subscribe to one session's ``updated`` and ``closed`` events."""
    container: AppContainer = websocket.app.state.container
    await websocket.accept()
    try:
        await container.session_service.get_session(session_id)
    except GroupOrderError as exc:
        await websocket.send_json({"type": "error", "data": exc.to_dict()})
        code = CLOSE_NOT_FOUND if isinstance(exc, NotFound) else CLOSE_INTERNAL
        await websocket.close(code=code)
        return

    channel = WebSocketChannel(websocket)
    broadcaster = container.broadcaster
    await broadcaster.join(session_id, channel)
    try:
        # Snapshot taken after joining, so nothing committed in between is lost.
        settled = await container.session_service.get_session(session_id)
        await channel.send(
            {"type": EventKind.UPDATED.value, "data": settled_session_payload(settled)}
        )
        # The broadcaster closes the socket when it evicts this channel.
        while websocket.application_state == WebSocketState.CONNECTED:
            raw = await websocket.receive_text()
            await _handle_client_message(broadcaster, channel, session_id, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.disconnect(channel)


async def _handle_client_message(
    broadcaster: Broadcaster, channel: WebSocketChannel, session_id: str, raw: str
) -> None:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        await channel.send(
            {"type": "error", "data": {"message": "Payload must be JSON"}}
        )
        return
    message_type = payload.get("type") if isinstance(payload, dict) else None
    if message_type == "ping":
        await broadcaster.touch(channel)
        await channel.send({"type": "pong", "data": {}})
    elif message_type == "join":
        await broadcaster.join(session_id, channel)
    else:
        await channel.send(
            {"type": "error", "data": {"message": f"Unknown message: {message_type}"}}
        )


async def prune_idle_channels(
    broadcaster: Broadcaster,
    interval_seconds: float = PRUNE_INTERVAL_SECONDS,
    max_idle_seconds: float = CHANNEL_IDLE_SECONDS,
) -> None:
    """Periodically drop and close channels that stopped pinging."""
    while True:
        await asyncio.sleep(interval_seconds)
        stale = await broadcaster.prune_stale(max_idle_seconds)
        if stale:
            logger.info("Pruned idle subscribers", extra={"count": len(stale)})

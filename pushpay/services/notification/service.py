"""Push transport for terminal payment events.

Clients hold a WebSocket open while they wait for a payment; each connection
gets a server-assigned channel id. Delivery is fire-and-forget: a failed send
is logged and counted, never raised to the webhook path.
"""

import asyncio
from typing import Any, Protocol
from uuid import uuid4

from fastapi import WebSocket

from pushpay.common.logging import logger
from pushpay.common.metrics import notifications_total


class Notifier(Protocol):
    async def notify(self, channel_id: str, event: dict[str, Any]) -> None: ...


class WebSocketHub:
    """Open WebSocket connections keyed by channel id."""

    def __init__(self) -> None:
        self._connections: dict[str, WebSocket] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        channel_id = str(uuid4())
        async with self._lock:
            self._connections[channel_id] = websocket
        logger.info("ws_connected channel_id=%s", channel_id)
        return channel_id

    async def disconnect(self, channel_id: str) -> None:
        async with self._lock:
            self._connections.pop(channel_id, None)
        logger.info("ws_disconnected channel_id=%s", channel_id)

    async def notify(self, channel_id: str, event: dict[str, Any]) -> None:
        async with self._lock:
            websocket = self._connections.get(channel_id)
        if websocket is None:
            notifications_total.labels(outcome="dropped").inc()
            logger.info("notification_dropped channel_id=%s reason=channel_closed", channel_id)
            return
        try:
            await websocket.send_json(event)
        except Exception as exc:
            notifications_total.labels(outcome="failed").inc()
            logger.warning("notification_send_failed channel_id=%s error=%s", channel_id, exc)
            return
        notifications_total.labels(outcome="pushed").inc()
        logger.info("notification_pushed channel_id=%s", channel_id)

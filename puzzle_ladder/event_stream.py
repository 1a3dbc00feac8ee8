from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from puzzle_ladder.core.event_bus import EventBus
from puzzle_ladder.core.events import INTENT_EVENTS, EventName, to_wire

logger = logging.getLogger(__name__)

OUTBOUND_EVENTS: tuple[EventName, ...] = tuple(e for e in EventName if e not in INTENT_EVENTS)


class EventStreamHub:
    """Fans outbound bus events out to connected WebSocket clients.

    Contract:
      - bus handlers only enqueue (`put_nowait`), so publishing never waits on a socket.
      - each connection drains its own queue in `serve`.
      - a lagging connection loses its oldest queued message, the bus never waits.
    """

    def __init__(self, *, max_queue: int = 256) -> None:
        self._queues: set[asyncio.Queue[dict[str, Any]]] = set()
        self._max_queue = max_queue
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(self, bus: EventBus) -> None:
        for event in OUTBOUND_EVENTS:
            self._unsubscribers.append(bus.subscribe(event, self._make_forwarder(event)))

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    @property
    def connection_count(self) -> int:
        return len(self._queues)

    def _make_forwarder(self, event: EventName) -> Callable[[Any], None]:
        def _forward(payload: Any) -> None:
            self.broadcast(to_wire(event, payload))

        return _forward

    def open_queue(self) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._max_queue)
        self._queues.add(queue)
        return queue

    def close_queue(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        self._queues.discard(queue)

    def broadcast(self, message: dict[str, Any]) -> None:
        for queue in self._queues:
            if queue.full():
                # Slow consumer: lose its oldest message rather than block the bus.
                queue.get_nowait()
                logger.warning("Event stream consumer lagging; dropped oldest message")
            queue.put_nowait(message)

    async def serve(self, websocket: WebSocket) -> None:
        """Stream events to `websocket` until the client disconnects."""

        # Register before accepting so nothing published after the handshake is missed.
        queue = self.open_queue()
        try:
            await websocket.accept()
            logger.info("Event stream client connected (%d open)", self.connection_count)
            sender = asyncio.create_task(self._pump(queue, websocket))
            try:
                # Clients may send pings; reading is how a disconnect is noticed.
                while True:
                    await websocket.receive_text()
            except WebSocketDisconnect:
                pass
            finally:
                sender.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sender
        finally:
            self.close_queue(queue)

    async def _pump(self, queue: asyncio.Queue[dict[str, Any]], websocket: WebSocket) -> None:
        while True:
            message = await queue.get()
            try:
                await websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                logger.debug("Event stream client went away")
                return

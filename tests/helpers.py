from __future__ import annotations

import asyncio
from collections import deque
from datetime import UTC, datetime, timedelta
from typing import Any

import redis

from puzzle_ladder.core.event_bus import EventBus
from puzzle_ladder.core.events import EventName, Puzzle


class ScriptedProvider:
    """Puzzle provider for tests.

    - default: returns queued items in order (a queued exception is raised), then
      generated puzzles `img-<n>` with solution `n % 10`.
    - `manual = True`: every fetch waits on a future the test resolves via `pending`.
    """

    def __init__(self, items: list[Puzzle | Exception] | None = None) -> None:
        self.calls = 0
        self.manual = False
        self.pending: list[asyncio.Future[Puzzle]] = []
        self._items: deque[Puzzle | Exception] = deque(items or [])

    def queue(self, *items: Puzzle | Exception) -> None:
        self._items.extend(items)

    async def fetch_puzzle(self) -> Puzzle:
        self.calls += 1
        if self.manual:
            fut: asyncio.Future[Puzzle] = asyncio.get_running_loop().create_future()
            self.pending.append(fut)
            return await fut
        if self._items:
            item = self._items.popleft()
            if isinstance(item, Exception):
                raise item
            return item
        return Puzzle(image_ref=f"img-{self.calls}", solution=self.calls % 10)


class EventRecorder:
    def __init__(self, bus: EventBus) -> None:
        self.events: list[tuple[EventName, Any]] = []
        for event in EventName:
            bus.subscribe(event, self._make(event))

    def _make(self, event: EventName):  # type: ignore[no-untyped-def]
        def _record(payload: Any) -> None:
            self.events.append((event, payload))

        return _record

    def of(self, event: EventName) -> list[Any]:
        return [p for e, p in self.events if e == event]

    def names(self) -> list[EventName]:
        return [e for e, _ in self.events]

    def clear(self) -> None:
        self.events.clear()


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class BrokenStore:
    """KeyValueStore whose backend is down."""

    def get(self, key: str) -> str | None:
        raise redis.ConnectionError("redis is down")

    def set(self, key: str, value: str) -> None:
        raise redis.ConnectionError("redis is down")

    def delete(self, key: str) -> None:
        raise redis.ConnectionError("redis is down")


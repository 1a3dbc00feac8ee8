from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from puzzle_ladder.core.events import EventName

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


@dataclass(eq=False, slots=True)
class _Registration:
    handler: Handler


class EventBus:
    """Synchronous named-event publish/subscribe dispatcher.

    Contract:
      - handlers run in registration order, on the publisher's stack, before `publish` returns.
      - a handler may publish further events; those run to completion first (re-entrant).
      - a failing handler is logged and skipped; remaining handlers still run and the
        publisher never sees the exception.

    Handlers that mutate state should only republish state-derived data, otherwise two
    handlers can ping-pong forever. The bus does not enforce a depth limit.
    """

    def __init__(self) -> None:
        self._registrations: dict[str, list[_Registration]] = {}

    def subscribe(self, event: EventName | str, handler: Handler) -> Callable[[], None]:
        """Register `handler` and return a callable that removes exactly this registration."""

        key = str(event)
        reg = _Registration(handler=handler)
        self._registrations.setdefault(key, []).append(reg)

        def _unsubscribe() -> None:
            regs = self._registrations.get(key)
            if not regs:
                return
            for idx, existing in enumerate(regs):
                if existing is reg:
                    del regs[idx]
                    break

        return _unsubscribe

    def unsubscribe(self, event: EventName | str, handler: Handler) -> None:
        regs = self._registrations.get(str(event))
        if not regs:
            return
        for idx, existing in enumerate(regs):
            if existing.handler == handler:
                del regs[idx]
                return

    def publish(self, event: EventName | str, payload: Any = None) -> None:
        key = str(event)
        regs = self._registrations.get(key)
        if not regs:
            return

        # Snapshot: subscribe/unsubscribe during dispatch affects the next publish only.
        for reg in tuple(regs):
            try:
                reg.handler(payload)
            except Exception:
                logger.exception("Error in event handler for %s", key)

    def clear(self, event: EventName | str | None = None) -> None:
        if event is None:
            self._registrations.clear()
        else:
            self._registrations.pop(str(event), None)

    def handler_count(self, event: EventName | str) -> int:
        return len(self._registrations.get(str(event), ()))

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from puzzle_ladder.api.models import Achievement
from puzzle_ladder.config import GameSettings
from puzzle_ladder.core.event_bus import EventBus
from puzzle_ladder.core.events import EventName
from puzzle_ladder.engine import SessionEngine
from puzzle_ladder.event_stream import EventStreamHub
from puzzle_ladder.infra.storage import KeyValueStore
from puzzle_ladder.profiles import ProfileStore
from puzzle_ladder.providers.base import PuzzleProvider

logger = logging.getLogger(__name__)

DEBUG_EVENTS: tuple[EventName, ...] = (
    EventName.SESSION_STARTED,
    EventName.PUZZLE_REQUESTED,
    EventName.PUZZLE_READY,
    EventName.PUZZLE_FAILED,
    EventName.ANSWER_SUBMITTED,
    EventName.ANSWER_CORRECT,
    EventName.ANSWER_INCORRECT,
    EventName.POSITION_CHANGED,
    EventName.GAME_WON,
    EventName.STATS_UPDATED,
)


@dataclass(slots=True)
class GameRuntime:
    """Composition root: owns the bus and every component wired to it."""

    settings: GameSettings
    bus: EventBus
    profiles: ProfileStore
    engine: SessionEngine
    hub: EventStreamHub
    provider: PuzzleProvider

    def restore(self) -> None:
        """Startup: restore the previous player and show the leaderboard."""

        logger.info("Loaded %d player profiles", len(self.profiles.profiles))
        current = self.profiles.load_current()
        if current is not None:
            logger.info("Welcome back, %s", current.name)
        self.engine.publish_leaderboard()

    async def aclose(self) -> None:
        self.engine.reset()
        await self.engine.aclose()
        self.hub.detach()
        close = getattr(self.provider, "aclose", None)
        if close is not None:
            await close()


def _log_achievement(achievement: Achievement) -> None:
    logger.info("Achievement unlocked: %s", achievement.name)


def install_debug_logging(bus: EventBus) -> None:
    for event in DEBUG_EVENTS:

        def _log(payload: Any, event: EventName = event) -> None:
            logger.debug("[EVENT] %s %r", event.value, payload)

        bus.subscribe(event, _log)


def build_runtime(
    *,
    store: KeyValueStore,
    provider: PuzzleProvider,
    settings: GameSettings | None = None,
    debug_events: bool = False,
) -> GameRuntime:
    settings = settings or GameSettings()
    bus = EventBus()

    profiles = ProfileStore(bus=bus, store=store, settings=settings)
    engine = SessionEngine(bus=bus, profiles=profiles, provider=provider, settings=settings)

    hub = EventStreamHub()
    hub.attach(bus)

    bus.subscribe(EventName.ACHIEVEMENT_UNLOCKED, _log_achievement)
    if debug_events:
        install_debug_logging(bus)

    return GameRuntime(settings=settings, bus=bus, profiles=profiles, engine=engine, hub=hub, provider=provider)

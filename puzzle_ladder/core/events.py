from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic_core import to_jsonable_python

from puzzle_ladder.api.models import LeaderboardEntry


class EventName(StrEnum):
    # Presentation -> engine
    SESSION_START_REQUESTED = "session-start-requested"
    ANSWER_SUBMITTED = "answer-submitted"
    PUZZLE_RETRY_REQUESTED = "puzzle-retry-requested"
    PLAY_AGAIN_REQUESTED = "play-again-requested"
    NEW_PLAYER_REQUESTED = "new-player-requested"

    # Provider <-> engine
    PUZZLE_REQUESTED = "puzzle-requested"
    PUZZLE_READY = "puzzle-ready"
    PUZZLE_FAILED = "puzzle-failed"

    # Engine -> presentation/store
    SESSION_STARTED = "session-started"
    PUZZLE_DISPLAYED = "puzzle-displayed"
    ANSWER_CORRECT = "answer-correct"
    ANSWER_INCORRECT = "answer-incorrect"
    POSITION_CHANGED = "position-changed"
    STATS_UPDATED = "stats-updated"
    GAME_WON = "game-won"

    # Store -> presentation
    PROFILE_CREATED = "profile-created"
    PROFILE_LOADED = "profile-loaded"
    PROFILE_RESET = "profile-reset"
    PROFILE_STATS_UPDATED = "profile-stats-updated"
    ACHIEVEMENT_UNLOCKED = "achievement-unlocked"
    LEADERBOARD_UPDATED = "leaderboard-updated"


# Events raised by presentation; everything else flows outwards.
INTENT_EVENTS: frozenset[EventName] = frozenset(
    {
        EventName.SESSION_START_REQUESTED,
        EventName.ANSWER_SUBMITTED,
        EventName.PUZZLE_RETRY_REQUESTED,
        EventName.PLAY_AGAIN_REQUESTED,
        EventName.NEW_PLAYER_REQUESTED,
    }
)


@dataclass(frozen=True, slots=True)
class Puzzle:
    image_ref: str
    solution: int


@dataclass(frozen=True, slots=True)
class SessionStartRequested:
    name: str


@dataclass(frozen=True, slots=True)
class SessionStarted:
    name: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class PuzzleRequested:
    session_id: str


@dataclass(frozen=True, slots=True)
class PuzzleReady:
    image_ref: str
    solution: int
    # None means "for whichever session is waiting".
    session_id: str | None = None

    @property
    def puzzle(self) -> Puzzle:
        return Puzzle(image_ref=self.image_ref, solution=self.solution)


@dataclass(frozen=True, slots=True)
class PuzzleFailed:
    session_id: str | None = None
    reason: str = ""


@dataclass(frozen=True, slots=True)
class PuzzleDisplayed:
    image_ref: str
    solution: int
    sequence_number: int


@dataclass(frozen=True, slots=True)
class AnswerSubmitted:
    value: int


@dataclass(frozen=True, slots=True)
class AnswerCorrect:
    position: int
    score: int


@dataclass(frozen=True, slots=True)
class AnswerIncorrect:
    correct_answer: int
    position: int
    fell_down: bool


@dataclass(frozen=True, slots=True)
class PositionChanged:
    position: int
    direction: Literal["up", "down"]


@dataclass(frozen=True, slots=True)
class StatsUpdated:
    score: int
    position: int
    accuracy: int
    correct: int
    incorrect: int
    total_puzzles: int


@dataclass(frozen=True, slots=True)
class LeaderboardUpdated:
    entries: tuple[LeaderboardEntry, ...]


def to_wire(event: EventName | str, payload: Any) -> dict[str, Any]:
    """Render an event as a JSON-serializable dict for presentation clients."""

    return {"type": str(event), "payload": to_jsonable_python(payload)}

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from puzzle_ladder.api.models import PuzzleView, SessionPhase, SessionSummary, SessionView
from puzzle_ladder.config import GameSettings
from puzzle_ladder.core.event_bus import EventBus
from puzzle_ladder.core.events import (
    AnswerCorrect,
    AnswerIncorrect,
    AnswerSubmitted,
    EventName,
    LeaderboardUpdated,
    PositionChanged,
    Puzzle,
    PuzzleDisplayed,
    PuzzleFailed,
    PuzzleReady,
    PuzzleRequested,
    SessionStarted,
    SessionStartRequested,
    StatsUpdated,
)
from puzzle_ladder.fsm import SessionFSM
from puzzle_ladder.profiles import ProfileStore
from puzzle_ladder.providers.base import PuzzleFetchError, PuzzleProvider
from puzzle_ladder.scoring import points_for_correct_answer, session_accuracy

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class SessionState:
    session_id: str
    started_at: datetime
    is_active: bool = True
    position: int = 0
    score: int = 0
    puzzles_seen: int = 0
    correct: int = 0
    incorrect: int = 0
    current_puzzle: Puzzle | None = None
    fetching: bool = False

    @staticmethod
    def new(*, started_at: datetime) -> "SessionState":
        return SessionState(session_id=uuid4().hex, started_at=started_at)

    @property
    def accuracy(self) -> int:
        return session_accuracy(correct=self.correct, incorrect=self.incorrect)


class SessionEngine:
    """Game state machine for one player climbing the ladder.

    Consumes intent events from the bus, asks the puzzle provider for puzzles and
    publishes outcome events. Provider calls and the pause before the next puzzle run
    as tasks on the running event loop; every result is checked against the session it
    was requested for, so a reply that outlives its session is dropped.
    """

    def __init__(
        self,
        *,
        bus: EventBus,
        profiles: ProfileStore,
        provider: PuzzleProvider,
        settings: GameSettings | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._bus = bus
        self._profiles = profiles
        self._provider = provider
        self._settings = settings or GameSettings()
        self._clock = clock

        self._fsm = SessionFSM()
        self._state: SessionState | None = None
        self._tasks: set[asyncio.Task[None]] = set()

        self._unsubscribers = [
            bus.subscribe(EventName.SESSION_START_REQUESTED, self._on_start_requested),
            bus.subscribe(EventName.ANSWER_SUBMITTED, self._on_answer_submitted),
            bus.subscribe(EventName.PUZZLE_READY, self._on_puzzle_ready),
            bus.subscribe(EventName.PUZZLE_FAILED, self._on_puzzle_failed),
            bus.subscribe(EventName.PUZZLE_RETRY_REQUESTED, lambda _: self.request_puzzle()),
            bus.subscribe(EventName.PLAY_AGAIN_REQUESTED, lambda _: self.restart()),
            bus.subscribe(EventName.NEW_PLAYER_REQUESTED, lambda _: self.new_player()),
        ]

    @property
    def phase(self) -> SessionPhase:
        return self._fsm.phase

    @property
    def state(self) -> SessionState | None:
        return self._state

    # Intent handlers

    def _on_start_requested(self, payload: SessionStartRequested) -> None:
        self.start(payload.name)

    def _on_answer_submitted(self, payload: AnswerSubmitted) -> None:
        self.submit_answer(payload.value)

    def start(self, name: str | None) -> None:
        if self._state is not None and self._state.is_active:
            logger.info("Abandoning session %s for a new game", self._state.session_id)

        profile = self._profiles.create_profile(name)
        state = SessionState.new(started_at=self._clock())
        self._state = state
        self._fsm.begin()
        logger.info("Session %s started for %s", state.session_id, profile.name)

        self._publish_stats()
        self._bus.publish(EventName.SESSION_STARTED, SessionStarted(name=profile.name, timestamp=state.started_at))
        self.request_puzzle()
        self.publish_leaderboard()

    def restart(self) -> None:
        """Play again as the current player."""

        current = self._profiles.current
        if current is None:
            logger.info("Play again requested without a current player; ignoring")
            return
        self.start(current.name)

    def new_player(self) -> None:
        self._abandon()
        self._profiles.reset_current()
        self.publish_leaderboard()

    def reset(self) -> None:
        self._abandon()

    def _abandon(self) -> None:
        # Abandoned sessions are not recorded anywhere.
        if self._state is not None and self._state.is_active:
            logger.info("Session %s abandoned", self._state.session_id)
        self._state = None
        self._fsm.abandon()

    # Puzzles

    def request_puzzle(self) -> None:
        state = self._state
        if state is None or not state.is_active or not self._fsm.accepts_puzzles:
            logger.debug("Puzzle request ignored in phase %s", self.phase.value)
            return
        if state.fetching:
            logger.debug("Puzzle request ignored; a fetch is already in flight")
            return

        state.fetching = True
        self._bus.publish(EventName.PUZZLE_REQUESTED, PuzzleRequested(session_id=state.session_id))
        self._spawn(self._fetch_puzzle(state))

    async def _fetch_puzzle(self, state: SessionState) -> None:
        session_id = state.session_id
        try:
            puzzle = await self._provider.fetch_puzzle()
        except PuzzleFetchError as e:
            logger.warning("Puzzle fetch failed: %s", e)
            self._fetch_failed(state, reason=str(e))
            return
        except Exception as e:
            logger.exception("Puzzle provider raised unexpectedly")
            self._fetch_failed(state, reason=str(e))
            return

        state.fetching = False
        if self._is_stale(session_id):
            logger.debug("Dropping puzzle for finished session %s", session_id)
            return

        self._bus.publish(
            EventName.PUZZLE_READY,
            PuzzleReady(image_ref=puzzle.image_ref, solution=puzzle.solution, session_id=session_id),
        )

    def _fetch_failed(self, state: SessionState, *, reason: str) -> None:
        state.fetching = False
        if self._is_stale(state.session_id):
            logger.debug("Dropping puzzle failure for finished session %s", state.session_id)
            return
        self._bus.publish(EventName.PUZZLE_FAILED, PuzzleFailed(session_id=state.session_id, reason=reason))

    def _on_puzzle_ready(self, payload: PuzzleReady) -> None:
        state = self._state
        if payload.session_id is not None and self._is_stale(payload.session_id):
            logger.debug("Dropping stale puzzle for session %s", payload.session_id)
            return
        if state is None or not state.is_active or not self._fsm.accepts_puzzles:
            logger.debug("Puzzle ignored in phase %s", self.phase.value)
            return

        state.current_puzzle = payload.puzzle
        state.puzzles_seen += 1
        self._fsm.present_puzzle()

        self._bus.publish(
            EventName.PUZZLE_DISPLAYED,
            PuzzleDisplayed(
                image_ref=payload.image_ref,
                solution=payload.solution,
                sequence_number=state.puzzles_seen,
            ),
        )

    def _on_puzzle_failed(self, payload: PuzzleFailed) -> None:
        if payload.session_id is not None and self._is_stale(payload.session_id):
            return
        if not self._fsm.accepts_puzzles:
            return
        # No automatic retry; presentation offers one via puzzle-retry-requested.
        self._fsm.puzzle_unavailable()

    def _is_stale(self, session_id: str) -> bool:
        state = self._state
        return state is None or not state.is_active or state.session_id != session_id

    # Answers

    def submit_answer(self, value: int) -> None:
        state = self._state
        if state is None or not state.is_active or not self._fsm.accepts_answers or state.current_puzzle is None:
            logger.debug("Answer ignored in phase %s", self.phase.value)
            return

        puzzle = state.current_puzzle
        state.current_puzzle = None

        if value == puzzle.solution:
            self._apply_correct(state)
        else:
            self._apply_incorrect(state, correct_answer=puzzle.solution)

        self._publish_stats()

        if state.position >= self._settings.max_position:
            self._fsm.finish()
            self._finish_won(state)
        else:
            self._fsm.resolve_answer()
            self._spawn(self._next_puzzle_after_delay(state.session_id))

    def _apply_correct(self, state: SessionState) -> None:
        state.correct += 1
        old_position = state.position
        state.position = min(state.position + 1, self._settings.max_position)

        # Post-move position, cumulative accuracy including this answer.
        state.score += points_for_correct_answer(
            position=state.position,
            accuracy=state.accuracy,
            settings=self._settings,
        )

        self._bus.publish(EventName.ANSWER_CORRECT, AnswerCorrect(position=state.position, score=state.score))
        if state.position != old_position:
            self._bus.publish(EventName.POSITION_CHANGED, PositionChanged(position=state.position, direction="up"))

    def _apply_incorrect(self, state: SessionState, *, correct_answer: int) -> None:
        state.incorrect += 1
        old_position = state.position
        state.position = max(state.position - 1, 0)
        fell_down = state.position < old_position

        self._bus.publish(
            EventName.ANSWER_INCORRECT,
            AnswerIncorrect(correct_answer=correct_answer, position=state.position, fell_down=fell_down),
        )
        if fell_down:
            self._bus.publish(EventName.POSITION_CHANGED, PositionChanged(position=state.position, direction="down"))

    async def _next_puzzle_after_delay(self, session_id: str) -> None:
        await asyncio.sleep(self._settings.next_puzzle_delay_s)
        if self._is_stale(session_id):
            return
        self.request_puzzle()

    def _finish_won(self, state: SessionState) -> None:
        state.is_active = False
        elapsed = self._clock() - state.started_at

        summary = SessionSummary(
            won=True,
            score=state.score,
            total_puzzles=state.puzzles_seen,
            correct_answers=state.correct,
            incorrect_answers=state.incorrect,
            accuracy=state.accuracy,
            play_time_ms=max(int(elapsed.total_seconds() * 1000), 0),
        )
        logger.info("Session %s won with score %d", state.session_id, state.score)

        self._profiles.record_session(summary)
        self._bus.publish(EventName.GAME_WON, summary)
        self.publish_leaderboard()

    # Aggregates

    def _publish_stats(self) -> None:
        state = self._state
        if state is None:
            return
        self._bus.publish(
            EventName.STATS_UPDATED,
            StatsUpdated(
                score=state.score,
                position=state.position,
                accuracy=state.accuracy,
                correct=state.correct,
                incorrect=state.incorrect,
                total_puzzles=state.puzzles_seen,
            ),
        )

    def publish_leaderboard(self) -> None:
        entries = self._profiles.get_leaderboard(self._settings.leaderboard_limit)
        self._bus.publish(EventName.LEADERBOARD_UPDATED, LeaderboardUpdated(entries=tuple(entries)))

    def snapshot(self) -> SessionView:
        state = self._state
        if state is None:
            return SessionView(phase=self.phase, max_position=self._settings.max_position)

        puzzle = None
        if state.current_puzzle is not None:
            puzzle = PuzzleView(image_ref=state.current_puzzle.image_ref, sequence_number=state.puzzles_seen)

        return SessionView(
            phase=self.phase,
            session_id=state.session_id,
            is_active=state.is_active,
            position=state.position,
            max_position=self._settings.max_position,
            score=state.score,
            puzzles_seen=state.puzzles_seen,
            correct=state.correct,
            incorrect=state.incorrect,
            accuracy=state.accuracy,
            started_at=state.started_at,
            puzzle=puzzle,
        )

    # Task bookkeeping

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        # Needs a running loop: the engine is driven from async code (routes, tests).
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until no puzzle fetch or next-puzzle delay is outstanding."""

        while self._tasks:
            await asyncio.gather(*tuple(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in tuple(self._tasks):
            task.cancel()
        await asyncio.gather(*tuple(self._tasks), return_exceptions=True)
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

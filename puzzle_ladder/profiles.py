from __future__ import annotations

import logging
import random
import string
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import TypeAdapter, ValidationError

from puzzle_ladder.achievements import ACHIEVEMENTS, evaluate_achievements
from puzzle_ladder.api.models import (
    HistoryEntry,
    LeaderboardEntry,
    PlayerProfile,
    SessionSummary,
    Stats,
    StatsSummary,
)
from puzzle_ladder.config import GameSettings
from puzzle_ladder.core.event_bus import EventBus
from puzzle_ladder.core.events import EventName
from puzzle_ladder.infra.storage import KeyValueStore
from puzzle_ladder.scoring import percent

logger = logging.getLogger(__name__)

PROFILES_KEY = "puzzle_ladder:profiles"
CURRENT_PLAYER_KEY = "puzzle_ladder:current_player"

DEFAULT_PLAYER_NAME = "Guest"

_PROFILES = TypeAdapter(list[PlayerProfile])
_ID_ALPHABET = string.ascii_lowercase + string.digits


def _now() -> datetime:
    return datetime.now(tz=UTC)


def generate_player_id(*, now: datetime, rng: random.Random | None = None) -> str:
    rng = rng or random.SystemRandom()
    suffix = "".join(rng.choice(_ID_ALPHABET) for _ in range(9))
    return f"player_{int(now.timestamp() * 1000)}_{suffix}"


class ProfileStore:
    """Player identity, lifetime statistics, achievements and leaderboard.

    Owns the in-memory profile collection and mirrors it into the key-value store after
    every change. Storage failures never escape this class: unreadable data loads as
    empty, failed writes are logged and dropped.
    """

    def __init__(
        self,
        *,
        bus: EventBus,
        store: KeyValueStore,
        settings: GameSettings | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._bus = bus
        self._store = store
        self._settings = settings or GameSettings()
        self._clock = clock
        self._current: PlayerProfile | None = None
        self._profiles: list[PlayerProfile] = self._load_profiles()

    @property
    def current(self) -> PlayerProfile | None:
        return self._current

    @property
    def profiles(self) -> tuple[PlayerProfile, ...]:
        return tuple(self._profiles)

    def get_profile(self, profile_id: str) -> PlayerProfile | None:
        return next((p for p in self._profiles if p.id == profile_id), None)

    def create_profile(self, name: str | None) -> PlayerProfile:
        now = self._clock()
        profile = PlayerProfile(
            id=generate_player_id(now=now),
            name=(name or "").strip() or DEFAULT_PLAYER_NAME,
            created_at=now,
        )

        self._profiles.append(profile)
        self._save_profiles()
        self.set_current(profile)

        logger.info("Created profile %s (%s)", profile.id, profile.name)
        self._bus.publish(EventName.PROFILE_CREATED, profile)
        return profile

    def set_current(self, profile: PlayerProfile) -> None:
        self._current = profile
        self._write(CURRENT_PLAYER_KEY, profile.model_dump_json())
        self._bus.publish(EventName.PROFILE_LOADED, profile)

    def load_current(self) -> PlayerProfile | None:
        """Restore the current player from storage.

        The collection's instance wins over the stored snapshot so later updates land in both.
        A snapshot whose id is missing from the collection is adopted into it.
        """

        raw = self._read(CURRENT_PLAYER_KEY)
        if raw is None:
            return None
        try:
            snapshot = PlayerProfile.model_validate_json(raw)
        except ValidationError:
            logger.exception("Failed to load current player")
            return None

        profile = self.get_profile(snapshot.id)
        if profile is None:
            profile = snapshot
            self._profiles.append(profile)
            self._save_profiles()

        self._current = profile
        return profile

    def reset_current(self) -> None:
        """Forget the current player without deleting its profile."""

        self._current = None
        try:
            self._store.delete(CURRENT_PLAYER_KEY)
        except Exception:
            logger.exception("Failed to clear current player")
        self._bus.publish(EventName.PROFILE_RESET, None)

    def delete_profile(self, profile_id: str) -> bool:
        before = len(self._profiles)
        self._profiles = [p for p in self._profiles if p.id != profile_id]
        if len(self._profiles) == before:
            return False

        self._save_profiles()
        if self._current is not None and self._current.id == profile_id:
            self.reset_current()
        return True

    def record_session(self, summary: SessionSummary) -> None:
        profile = self._current
        if profile is None:
            logger.warning("Session finished without a current player; not recorded")
            return

        stats = profile.stats
        stats.games_played += 1
        if summary.won:
            stats.games_won += 1

        stats.total_puzzles += summary.total_puzzles
        stats.correct_answers += summary.correct_answers
        stats.incorrect_answers += summary.incorrect_answers

        if summary.score > stats.high_score:
            stats.high_score = summary.score

        stats.average_accuracy = percent(stats.correct_answers, stats.correct_answers + stats.incorrect_answers)

        if summary.won and summary.play_time_ms > 0:
            if stats.fastest_win_ms is None or summary.play_time_ms < stats.fastest_win_ms:
                stats.fastest_win_ms = summary.play_time_ms

        if summary.play_time_ms > 0:
            stats.total_play_time_ms += summary.play_time_ms

        self._add_history(profile, summary)
        self._award_achievements(profile, summary)

        self._save_profiles()
        self.set_current(profile)
        self._bus.publish(EventName.PROFILE_STATS_UPDATED, stats)

    def _add_history(self, profile: PlayerProfile, summary: SessionSummary) -> None:
        entry = HistoryEntry(
            timestamp=self._clock(),
            won=summary.won,
            score=summary.score,
            total_puzzles=summary.total_puzzles,
            correct_answers=summary.correct_answers,
            accuracy=summary.accuracy,
            play_time_ms=summary.play_time_ms,
        )
        profile.history.insert(0, entry)
        del profile.history[self._settings.history_limit :]

    def _award_achievements(self, profile: PlayerProfile, summary: SessionSummary) -> None:
        for achievement_id in evaluate_achievements(stats=profile.stats, summary=summary):
            if profile.has_achievement(achievement_id):
                continue
            achievement = ACHIEVEMENTS[achievement_id].unlock(at=self._clock())
            profile.achievements.append(achievement)
            logger.info("Achievement %s unlocked for %s", achievement_id.value, profile.id)
            self._bus.publish(EventName.ACHIEVEMENT_UNLOCKED, achievement)

    def get_leaderboard(self, limit: int = 10) -> list[LeaderboardEntry]:
        if limit <= 0:
            return []

        played = [p for p in self._profiles if p.stats.games_played > 0]
        # sorted() is stable, so equal high scores keep collection order.
        ranked = sorted(played, key=lambda p: p.stats.high_score, reverse=True)[:limit]
        return [
            LeaderboardEntry(
                rank=idx + 1,
                name=p.name,
                high_score=p.stats.high_score,
                games_won=p.stats.games_won,
                accuracy=p.stats.average_accuracy,
            )
            for idx, p in enumerate(ranked)
        ]

    def export_current(self) -> str | None:
        if self._current is None:
            return None
        return self._current.model_dump_json(indent=2)

    def stats_summary(self) -> StatsSummary | None:
        profile = self._current
        if profile is None:
            return None
        stats: Stats = profile.stats
        return StatsSummary(
            player_name=profile.name,
            win_rate=percent(stats.games_won, stats.games_played),
            accuracy=stats.average_accuracy,
            high_score=stats.high_score,
            total_games=stats.games_played,
            achievements=len(profile.achievements),
        )

    def _load_profiles(self) -> list[PlayerProfile]:
        raw = self._read(PROFILES_KEY)
        if raw is None:
            return []
        try:
            return _PROFILES.validate_json(raw)
        except ValidationError:
            logger.exception("Failed to load profiles; starting with an empty collection")
            return []

    def _save_profiles(self) -> None:
        self._write(PROFILES_KEY, _PROFILES.dump_json(self._profiles).decode("utf-8"))

    def _read(self, key: str) -> str | None:
        try:
            return self._store.get(key)
        except Exception:
            logger.exception("Failed to read %s", key)
            return None

    def _write(self, key: str, value: str) -> None:
        try:
            self._store.set(key, value)
        except Exception:
            logger.exception("Failed to write %s", key)

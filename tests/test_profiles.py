from __future__ import annotations

import json
import random

import fakeredis
import pytest

from puzzle_ladder.achievements import evaluate_achievements
from puzzle_ladder.api.models import AchievementId, SessionSummary, Stats
from puzzle_ladder.config import GameSettings
from puzzle_ladder.core.event_bus import EventBus
from puzzle_ladder.core.events import EventName
from puzzle_ladder.infra.storage import RedisKeyValueStore
from puzzle_ladder.profiles import CURRENT_PLAYER_KEY, PROFILES_KEY, ProfileStore

from tests.helpers import BrokenStore, EventRecorder, FakeClock


def _summary(
    *,
    won: bool = True,
    score: int = 100,
    correct: int = 10,
    incorrect: int = 0,
    play_time_ms: int = 60_000,
) -> SessionSummary:
    total = correct + incorrect
    return SessionSummary(
        won=won,
        score=score,
        total_puzzles=total,
        correct_answers=correct,
        incorrect_answers=incorrect,
        accuracy=round(100 * correct / total) if total else 100,
        play_time_ms=play_time_ms,
    )


def test_create_profile_trims_name_and_sets_current(profiles: ProfileStore, recorder: EventRecorder) -> None:
    profile = profiles.create_profile("  Ada  ")

    assert profile.name == "Ada"
    assert profile.id.startswith("player_")
    assert profile.stats == Stats()
    assert profile.achievements == [] and profile.history == []
    assert profiles.current is profile
    assert recorder.names() == [EventName.PROFILE_LOADED, EventName.PROFILE_CREATED]


@pytest.mark.parametrize("name", ["", "   ", None])
def test_blank_name_defaults_to_guest(profiles: ProfileStore, name: str | None) -> None:
    assert profiles.create_profile(name).name == "Guest"


def test_same_name_creates_distinct_profiles(profiles: ProfileStore) -> None:
    a = profiles.create_profile("Ada")
    b = profiles.create_profile("Ada")

    assert a.id != b.id
    assert len(profiles.profiles) == 2


def test_record_session_updates_counters_and_derived_stats(profiles: ProfileStore, recorder: EventRecorder) -> None:
    profiles.create_profile("Ada")
    recorder.clear()

    profiles.record_session(_summary(score=300, correct=10, incorrect=2, play_time_ms=90_000))
    profiles.record_session(_summary(score=200, correct=10, incorrect=0, play_time_ms=45_000))

    stats = profiles.current.stats  # type: ignore[union-attr]
    assert stats.games_played == 2
    assert stats.games_won == 2
    assert stats.total_puzzles == 22
    assert stats.correct_answers == 20
    assert stats.incorrect_answers == 2
    assert stats.high_score == 300
    assert stats.average_accuracy == 91  # 20/22 = 90.9
    assert stats.fastest_win_ms == 45_000
    assert stats.total_play_time_ms == 135_000

    assert recorder.of(EventName.PROFILE_STATS_UPDATED)[-1] == stats


def test_stats_stay_consistent_over_random_sessions(profiles: ProfileStore) -> None:
    rng = random.Random(1234)
    profiles.create_profile("Ada")

    for _ in range(40):
        correct = rng.randint(0, 15)
        incorrect = rng.randint(0, 15)
        profiles.record_session(_summary(won=rng.random() < 0.7, correct=correct, incorrect=incorrect))

        stats = profiles.current.stats  # type: ignore[union-attr]
        assert stats.correct_answers + stats.incorrect_answers == stats.total_puzzles
        assert stats.games_won <= stats.games_played


def test_history_is_most_recent_first_and_bounded(bus: EventBus, kv: RedisKeyValueStore, clock: FakeClock) -> None:
    store = ProfileStore(bus=bus, store=kv, settings=GameSettings(history_limit=3), clock=clock)
    store.create_profile("Ada")

    for score in range(1, 6):
        clock.advance(minutes=1)
        store.record_session(_summary(score=score))

    history = store.current.history  # type: ignore[union-attr]
    assert [h.score for h in history] == [5, 4, 3]
    assert history[0].timestamp > history[1].timestamp


def test_first_win_and_perfect_game_awarded_once(profiles: ProfileStore, recorder: EventRecorder) -> None:
    profiles.create_profile("Ada")

    profiles.record_session(_summary(correct=10, incorrect=0))
    profiles.record_session(_summary(correct=10, incorrect=0))

    ids = [a.id for a in profiles.current.achievements]  # type: ignore[union-attr]
    assert ids == [AchievementId.first_win, AchievementId.perfect_game]

    unlocked = recorder.of(EventName.ACHIEVEMENT_UNLOCKED)
    assert [a.id for a in unlocked] == ids
    assert unlocked[0].name == "First Victory"
    assert unlocked[1].icon == "⭐"


def test_imperfect_win_does_not_award_perfect_game(profiles: ProfileStore) -> None:
    profiles.create_profile("Ada")
    profiles.record_session(_summary(correct=10, incorrect=1))

    ids = [a.id for a in profiles.current.achievements]  # type: ignore[union-attr]
    assert ids == [AchievementId.first_win]


def test_veteran_fires_exactly_at_tenth_game(profiles: ProfileStore, recorder: EventRecorder) -> None:
    profiles.create_profile("Ada")

    for game in range(1, 12):
        recorder.clear()
        profiles.record_session(_summary(won=False, correct=1, incorrect=1))
        unlocked = [a.id for a in recorder.of(EventName.ACHIEVEMENT_UNLOCKED)]
        if game == 10:
            assert unlocked == [AchievementId.veteran]
        else:
            assert AchievementId.veteran not in unlocked

    ids = [a.id for a in profiles.current.achievements]  # type: ignore[union-attr]
    assert ids.count(AchievementId.veteran) == 1


def test_puzzle_master_after_fifty_puzzles(profiles: ProfileStore) -> None:
    profiles.create_profile("Ada")
    profiles.record_session(_summary(won=False, correct=20, incorrect=9))
    assert not profiles.current.has_achievement(AchievementId.puzzle_master)  # type: ignore[union-attr]

    profiles.record_session(_summary(won=False, correct=20, incorrect=1))
    assert profiles.current.has_achievement(AchievementId.puzzle_master)  # type: ignore[union-attr]


def test_evaluate_achievements_is_pure_and_repeatable() -> None:
    stats = Stats(games_played=10, games_won=1, total_puzzles=60, correct_answers=60)
    summary = _summary(correct=10, incorrect=0)

    first = evaluate_achievements(stats=stats, summary=summary)
    second = evaluate_achievements(stats=stats, summary=summary)

    assert first == second == [
        AchievementId.first_win,
        AchievementId.perfect_game,
        AchievementId.veteran,
        AchievementId.puzzle_master,
    ]


def test_record_session_without_current_player_is_ignored(profiles: ProfileStore, recorder: EventRecorder) -> None:
    profiles.record_session(_summary())

    assert recorder.events == []


def _profile_with_score(store: ProfileStore, name: str, score: int, *, played: bool = True) -> None:
    store.create_profile(name)
    if played:
        store.record_session(_summary(won=False, score=score, correct=1, incorrect=1))


def test_leaderboard_orders_by_high_score_with_stable_ties(profiles: ProfileStore) -> None:
    _profile_with_score(profiles, "low", 10)
    _profile_with_score(profiles, "tie-a", 50)
    _profile_with_score(profiles, "never", 0, played=False)
    _profile_with_score(profiles, "top", 90)
    _profile_with_score(profiles, "tie-b", 50)

    board = profiles.get_leaderboard(10)

    assert [e.name for e in board] == ["top", "tie-a", "tie-b", "low"]
    assert [e.rank for e in board] == [1, 2, 3, 4]
    assert board[0].high_score == 90
    assert board[0].accuracy == 50


def test_leaderboard_respects_limit_for_random_collections(profiles: ProfileStore) -> None:
    rng = random.Random(7)
    for i in range(25):
        _profile_with_score(profiles, f"p{i}", rng.randint(0, 5) * 10, played=rng.random() < 0.8)

    for limit in (1, 3, 10, 50):
        board = profiles.get_leaderboard(limit)
        assert len(board) <= limit
        scores = [e.high_score for e in board]
        assert scores == sorted(scores, reverse=True)

    assert profiles.get_leaderboard(0) == []


def test_round_trip_through_storage(
    profiles: ProfileStore, bus: EventBus, kv: RedisKeyValueStore, clock: FakeClock
) -> None:
    profiles.create_profile("Ada")
    profiles.record_session(_summary(score=120))
    profiles.create_profile("Grace")

    reloaded = ProfileStore(bus=bus, store=kv, clock=clock)

    assert [p.model_dump() for p in reloaded.profiles] == [p.model_dump() for p in profiles.profiles]


def test_missing_storage_loads_empty(bus: EventBus, kv: RedisKeyValueStore) -> None:
    store = ProfileStore(bus=bus, store=kv)
    assert store.profiles == ()
    assert store.load_current() is None


@pytest.mark.parametrize("raw", ["{not json", "[{\"id\": 1}]", "42"])
def test_corrupt_storage_loads_empty(
    bus: EventBus, r: fakeredis.FakeRedis, kv: RedisKeyValueStore, raw: str
) -> None:
    r.set(PROFILES_KEY, raw)
    r.set(CURRENT_PLAYER_KEY, raw)

    store = ProfileStore(bus=bus, store=kv)

    assert store.profiles == ()
    assert store.load_current() is None


def test_unavailable_storage_never_raises(bus: EventBus) -> None:
    store = ProfileStore(bus=bus, store=BrokenStore())

    profile = store.create_profile("Ada")
    store.record_session(_summary())
    store.reset_current()

    assert store.profiles == (profile,)
    assert store.load_current() is None


def test_load_current_prefers_collection_instance(profiles: ProfileStore, bus: EventBus, kv: RedisKeyValueStore) -> None:
    created = profiles.create_profile("Ada")
    profiles.record_session(_summary(score=77))

    restarted = ProfileStore(bus=bus, store=kv)
    current = restarted.load_current()

    assert current is not None
    assert current.id == created.id
    assert current is restarted.get_profile(created.id)
    assert current.stats.high_score == 77


def test_load_current_adopts_orphan_snapshot(bus: EventBus, r: fakeredis.FakeRedis, kv: RedisKeyValueStore) -> None:
    first = ProfileStore(bus=bus, store=kv)
    orphan = first.create_profile("Ada")
    r.delete(PROFILES_KEY)

    store = ProfileStore(bus=bus, store=kv)
    current = store.load_current()

    assert current is not None and current.id == orphan.id
    assert store.get_profile(orphan.id) is current
    assert json.loads(r.get(PROFILES_KEY))[0]["id"] == orphan.id


def test_reset_current_keeps_profile(profiles: ProfileStore, r: fakeredis.FakeRedis, recorder: EventRecorder) -> None:
    profile = profiles.create_profile("Ada")
    recorder.clear()

    profiles.reset_current()

    assert profiles.current is None
    assert profiles.get_profile(profile.id) is profile
    assert r.get(CURRENT_PLAYER_KEY) is None
    assert recorder.events == [(EventName.PROFILE_RESET, None)]


def test_delete_profile(profiles: ProfileStore, r: fakeredis.FakeRedis) -> None:
    keep = profiles.create_profile("Keep")
    gone = profiles.create_profile("Gone")

    assert profiles.delete_profile(gone.id) is True
    assert profiles.delete_profile("nope") is False

    assert profiles.current is None
    assert [p.id for p in profiles.profiles] == [keep.id]
    assert [p["id"] for p in json.loads(r.get(PROFILES_KEY))] == [keep.id]


def test_export_and_summary(profiles: ProfileStore) -> None:
    assert profiles.export_current() is None
    assert profiles.stats_summary() is None

    profiles.create_profile("Ada")
    profiles.record_session(_summary(score=50))
    profiles.record_session(_summary(won=False, score=20, correct=1, incorrect=1))

    exported = json.loads(profiles.export_current())  # type: ignore[arg-type]
    assert exported["name"] == "Ada"
    assert exported["stats"]["games_played"] == 2

    summary = profiles.stats_summary()
    assert summary is not None
    assert summary.player_name == "Ada"
    assert summary.win_rate == 50
    assert summary.high_score == 50
    assert summary.total_games == 2
    assert summary.achievements == 2

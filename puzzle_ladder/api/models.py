from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class SessionStartRequest(BaseModel):
    name: str = Field("", max_length=64)


class AnswerRequest(BaseModel):
    # Non-numeric answers are rejected here (422) and never reach the engine.
    value: int = Field(..., ge=-1_000_000, le=1_000_000)


class SessionPhase(StrEnum):
    idle = "idle"
    awaiting_puzzle = "awaiting_puzzle"
    awaiting_answer = "awaiting_answer"
    won = "won"


class AchievementId(StrEnum):
    first_win = "first_win"
    perfect_game = "perfect_game"
    veteran = "veteran"
    puzzle_master = "puzzle_master"


class Achievement(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: AchievementId
    name: str
    description: str
    icon: str
    unlocked_at: datetime


class Stats(BaseModel):
    games_played: int = 0
    games_won: int = 0
    total_puzzles: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0

    high_score: int = 0
    # Recomputed from the lifetime counters after every session, never accumulated.
    average_accuracy: int = 0
    fastest_win_ms: int | None = None
    total_play_time_ms: int = 0


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    won: bool
    score: int
    total_puzzles: int
    correct_answers: int
    accuracy: int
    play_time_ms: int


class PlayerProfile(BaseModel):
    id: str
    name: str
    created_at: datetime
    stats: Stats = Field(default_factory=Stats)
    achievements: list[Achievement] = Field(default_factory=list)

    # Most recent first.
    history: list[HistoryEntry] = Field(default_factory=list)

    def has_achievement(self, achievement_id: AchievementId) -> bool:
        return any(a.id == achievement_id for a in self.achievements)


class SessionSummary(BaseModel):
    """Outcome of a completed session, handed to the profile store and published as game-won."""

    model_config = ConfigDict(frozen=True)

    won: bool
    score: int
    total_puzzles: int
    correct_answers: int
    incorrect_answers: int
    accuracy: int
    play_time_ms: int


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    rank: int
    name: str
    high_score: int
    games_won: int
    accuracy: int


class StatsSummary(BaseModel):
    player_name: str
    win_rate: int
    accuracy: int
    high_score: int
    total_games: int
    achievements: int


class PuzzleView(BaseModel):
    image_ref: str
    sequence_number: int


class SessionView(BaseModel):
    phase: SessionPhase
    session_id: str | None = None
    is_active: bool = False
    position: int = 0
    max_position: int
    score: int = 0
    puzzles_seen: int = 0
    correct: int = 0
    incorrect: int = 0
    accuracy: int = 100
    started_at: datetime | None = None

    # Current puzzle without its solution.
    puzzle: PuzzleView | None = None

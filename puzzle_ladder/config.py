from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_PUZZLE_API_URL = "https://marcconrad.com/uob/heart/api.php"


@dataclass(frozen=True, slots=True)
class GameSettings:
    max_position: int = 10

    # Score for a correct answer: base + position * position_bonus + accuracy step bonus.
    base_score: int = 10
    position_bonus: int = 5
    accuracy_bonus: int = 2

    # Pause between an answer and the next puzzle request, so presentation can show feedback.
    next_puzzle_delay_s: float = 1.5

    leaderboard_limit: int = 10
    history_limit: int = 50

    puzzle_api_url: str = DEFAULT_PUZZLE_API_URL
    puzzle_api_format: str = "json"
    puzzle_api_timeout_s: float = 5.0

    def __post_init__(self) -> None:
        if self.max_position < 1:
            raise ValueError("max_position must be at least 1")
        if self.next_puzzle_delay_s < 0:
            raise ValueError("next_puzzle_delay_s must not be negative")
        if self.puzzle_api_format not in {"json", "csv"}:
            raise ValueError("puzzle_api_format must be 'json' or 'csv'")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def settings_from_env() -> GameSettings:
    return GameSettings(
        max_position=_env_int("PUZZLE_LADDER_MAX_POSITION", 10),
        next_puzzle_delay_s=_env_float("PUZZLE_LADDER_NEXT_PUZZLE_DELAY", 1.5),
        leaderboard_limit=_env_int("PUZZLE_LADDER_LEADERBOARD_LIMIT", 10),
        history_limit=_env_int("PUZZLE_LADDER_HISTORY_LIMIT", 50),
        puzzle_api_url=os.environ.get("PUZZLE_API_URL", DEFAULT_PUZZLE_API_URL),
        puzzle_api_format=os.environ.get("PUZZLE_API_FORMAT", "json").lower(),
        puzzle_api_timeout_s=_env_float("PUZZLE_API_TIMEOUT", 5.0),
    )


def log_level_from_env() -> str:
    return os.environ.get("PUZZLE_LADDER_LOG_LEVEL", "INFO").upper()


def debug_events_enabled() -> bool:
    return os.environ.get("PUZZLE_LADDER_DEBUG_EVENTS") == "1"

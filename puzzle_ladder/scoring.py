from __future__ import annotations

import math

from puzzle_ladder.config import GameSettings


def percent(part: int, whole: int) -> int:
    """Integer percentage rounded half up (12.5 -> 13), 0 when `whole` is 0."""

    if whole <= 0:
        return 0
    return math.floor(100 * part / whole + 0.5)


def session_accuracy(*, correct: int, incorrect: int) -> int:
    # A session with no answers yet counts as fully accurate.
    total = correct + incorrect
    if total == 0:
        return 100
    return percent(correct, total)


def accuracy_bonus(*, accuracy: int, settings: GameSettings) -> int:
    if accuracy >= 90:
        return settings.accuracy_bonus * 3
    if accuracy >= 75:
        return settings.accuracy_bonus * 2
    if accuracy >= 60:
        return settings.accuracy_bonus
    return 0


def points_for_correct_answer(*, position: int, accuracy: int, settings: GameSettings) -> int:
    """Points for a correct answer, given the post-move position and cumulative accuracy."""

    return settings.base_score + position * settings.position_bonus + accuracy_bonus(accuracy=accuracy, settings=settings)

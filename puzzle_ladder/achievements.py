from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from puzzle_ladder.api.models import Achievement, AchievementId, SessionSummary, Stats


@dataclass(frozen=True, slots=True)
class AchievementDefinition:
    id: AchievementId
    name: str
    description: str
    icon: str

    def unlock(self, *, at: datetime) -> Achievement:
        return Achievement(id=self.id, name=self.name, description=self.description, icon=self.icon, unlocked_at=at)


VETERAN_GAMES = 10
PUZZLE_MASTER_PUZZLES = 50

ACHIEVEMENTS: dict[AchievementId, AchievementDefinition] = {
    AchievementId.first_win: AchievementDefinition(
        id=AchievementId.first_win, name="First Victory", description="Won your first game", icon="🏆"
    ),
    AchievementId.perfect_game: AchievementDefinition(
        id=AchievementId.perfect_game, name="Perfect Climb", description="Won with 100% accuracy", icon="⭐"
    ),
    AchievementId.veteran: AchievementDefinition(
        id=AchievementId.veteran, name="Veteran Climber", description=f"Played {VETERAN_GAMES} games", icon="🎖️"
    ),
    AchievementId.puzzle_master: AchievementDefinition(
        id=AchievementId.puzzle_master,
        name="Puzzle Master",
        description=f"Solved {PUZZLE_MASTER_PUZZLES} puzzles",
        icon="🧩",
    ),
}


def evaluate_achievements(*, stats: Stats, summary: SessionSummary) -> list[AchievementId]:
    """Return the achievements whose conditions hold for the updated stats and the just-finished session.

    Pure: awarding (and skipping ids the profile already has) is the caller's job.
    """

    earned: list[AchievementId] = []

    if summary.won and stats.games_won == 1:
        earned.append(AchievementId.first_win)

    if summary.won and summary.accuracy == 100:
        earned.append(AchievementId.perfect_game)

    # Exact threshold: later games never re-trigger it.
    if stats.games_played == VETERAN_GAMES:
        earned.append(AchievementId.veteran)

    if stats.total_puzzles >= PUZZLE_MASTER_PUZZLES:
        earned.append(AchievementId.puzzle_master)

    return earned

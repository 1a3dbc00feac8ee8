from __future__ import annotations

from typing import Protocol

from puzzle_ladder.core.events import Puzzle


class PuzzleFetchError(RuntimeError):
    """The provider could not produce a usable puzzle."""


class PuzzleProvider(Protocol):
    async def fetch_puzzle(self) -> Puzzle:  # pragma: no cover
        ...

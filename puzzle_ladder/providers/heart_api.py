from __future__ import annotations

import json
import logging
import time

import httpx

from puzzle_ladder.config import GameSettings
from puzzle_ladder.core.events import Puzzle
from puzzle_ladder.providers.base import PuzzleFetchError

logger = logging.getLogger(__name__)


def parse_csv_puzzle(text: str) -> dict[str, str]:
    """Parse the two-line CSV form: a header row, then one value row."""

    lines = [line for line in text.strip().splitlines() if line.strip()]
    if len(lines) < 2:
        raise PuzzleFetchError("Invalid CSV format")

    headers = [h.strip() for h in lines[0].split(",")]
    values = [v.strip() for v in lines[1].split(",")]
    return {h: (values[i] if i < len(values) else "") for i, h in enumerate(headers)}


def puzzle_from_fields(data: object) -> Puzzle:
    if not isinstance(data, dict):
        raise PuzzleFetchError("Invalid puzzle data received from API")

    # The API has served the image under both names.
    image_ref = data.get("url") or data.get("question")
    solution = data.get("solution")
    if not image_ref or solution is None or solution == "":
        raise PuzzleFetchError("Invalid puzzle data received from API")

    try:
        return Puzzle(image_ref=str(image_ref), solution=int(solution))
    except (TypeError, ValueError) as e:
        raise PuzzleFetchError(f"Non-numeric puzzle solution: {solution!r}") from e


class HeartApiProvider:
    """Puzzle provider backed by the Heart game API (`?out=json|csv`)."""

    def __init__(
        self,
        *,
        base_url: str,
        fmt: str = "json",
        timeout_s: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if fmt not in {"json", "csv"}:
            raise ValueError(f"Unsupported puzzle format: {fmt}")
        self._base_url = base_url
        self._fmt = fmt
        self._timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: GameSettings, *, client: httpx.AsyncClient | None = None) -> "HeartApiProvider":
        return cls(
            base_url=settings.puzzle_api_url,
            fmt=settings.puzzle_api_format,
            timeout_s=settings.puzzle_api_timeout_s,
            client=client,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    async def fetch_puzzle(self) -> Puzzle:
        # `t` busts intermediary caches; every call must be a fresh puzzle.
        params = {"out": self._fmt, "t": str(int(time.time() * 1000))}
        try:
            resp = await self._get_client().get(self._base_url, params=params)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise PuzzleFetchError(f"Puzzle API request failed: {e}") from e

        if self._fmt == "csv":
            data: object = parse_csv_puzzle(resp.text)
        else:
            try:
                data = resp.json()
            except json.JSONDecodeError as e:
                raise PuzzleFetchError("Puzzle API returned invalid JSON") from e

        puzzle = puzzle_from_fields(data)
        logger.debug("Fetched puzzle %s", puzzle.image_ref)
        return puzzle

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

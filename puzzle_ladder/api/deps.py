from __future__ import annotations

from fastapi.requests import HTTPConnection

from puzzle_ladder.runtime import GameRuntime


def get_runtime(conn: HTTPConnection) -> GameRuntime:
    runtime = getattr(conn.app.state, "runtime", None)
    if runtime is None:
        raise RuntimeError("Game runtime not initialized. Build it at startup.")
    return runtime

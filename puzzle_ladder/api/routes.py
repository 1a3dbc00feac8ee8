from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, WebSocket, status
from pydantic import BaseModel

from puzzle_ladder.api.deps import get_runtime
from puzzle_ladder.api.models import (
    AnswerRequest,
    LeaderboardEntry,
    PlayerProfile,
    SessionStartRequest,
    SessionView,
    StatsSummary,
)
from puzzle_ladder.core.events import AnswerSubmitted, EventName, SessionStartRequested
from puzzle_ladder.runtime import GameRuntime

router = APIRouter()


class AnswerResponse(BaseModel):
    accepted: bool
    correct: bool | None = None
    session: SessionView


@router.websocket("/ws/events")
async def events_ws(websocket: WebSocket, runtime: GameRuntime = Depends(get_runtime)) -> None:
    await runtime.hub.serve(websocket)


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/session", response_model=SessionView, status_code=status.HTTP_201_CREATED)
async def start_session_route(payload: SessionStartRequest, runtime: GameRuntime = Depends(get_runtime)) -> SessionView:
    runtime.bus.publish(EventName.SESSION_START_REQUESTED, SessionStartRequested(name=payload.name))
    # Return once the first puzzle has arrived (or failed).
    await runtime.engine.wait_idle()
    return runtime.engine.snapshot()


@router.get("/session", response_model=SessionView)
async def get_session_route(runtime: GameRuntime = Depends(get_runtime)) -> SessionView:
    return runtime.engine.snapshot()


@router.post("/session/answer", response_model=AnswerResponse)
async def submit_answer_route(payload: AnswerRequest, runtime: GameRuntime = Depends(get_runtime)) -> AnswerResponse:
    before = runtime.engine.snapshot()
    runtime.bus.publish(EventName.ANSWER_SUBMITTED, AnswerSubmitted(value=payload.value))
    after = runtime.engine.snapshot()

    accepted = after.session_id == before.session_id and (after.correct + after.incorrect) > (
        before.correct + before.incorrect
    )
    return AnswerResponse(
        accepted=accepted,
        correct=(after.correct > before.correct) if accepted else None,
        session=after,
    )


@router.delete("/session", response_model=SessionView)
async def reset_session_route(runtime: GameRuntime = Depends(get_runtime)) -> SessionView:
    # Abandons the running session; the current player is kept.
    runtime.engine.reset()
    return runtime.engine.snapshot()


@router.post("/session/retry", response_model=SessionView)
async def retry_puzzle_route(runtime: GameRuntime = Depends(get_runtime)) -> SessionView:
    runtime.bus.publish(EventName.PUZZLE_RETRY_REQUESTED, None)
    await runtime.engine.wait_idle()
    return runtime.engine.snapshot()


@router.post("/session/play-again", response_model=SessionView)
async def play_again_route(runtime: GameRuntime = Depends(get_runtime)) -> SessionView:
    if runtime.profiles.current is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No current player")
    runtime.bus.publish(EventName.PLAY_AGAIN_REQUESTED, None)
    await runtime.engine.wait_idle()
    return runtime.engine.snapshot()


@router.post("/session/new-player", response_model=SessionView)
async def new_player_route(runtime: GameRuntime = Depends(get_runtime)) -> SessionView:
    runtime.bus.publish(EventName.NEW_PLAYER_REQUESTED, None)
    return runtime.engine.snapshot()


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
async def leaderboard_route(
    limit: int = Query(10, ge=1, le=100),
    runtime: GameRuntime = Depends(get_runtime),
) -> list[LeaderboardEntry]:
    return runtime.profiles.get_leaderboard(limit)


def _require_current(runtime: GameRuntime) -> PlayerProfile:
    profile = runtime.profiles.current
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No current player")
    return profile


@router.get("/profile", response_model=PlayerProfile)
async def current_profile_route(runtime: GameRuntime = Depends(get_runtime)) -> PlayerProfile:
    return _require_current(runtime)


@router.get("/profile/summary", response_model=StatsSummary)
async def profile_summary_route(runtime: GameRuntime = Depends(get_runtime)) -> StatsSummary:
    summary = runtime.profiles.stats_summary()
    if summary is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No current player")
    return summary


@router.get("/profile/export")
async def profile_export_route(runtime: GameRuntime = Depends(get_runtime)) -> Response:
    exported = runtime.profiles.export_current()
    if exported is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No current player")
    return Response(content=exported, media_type="application/json")


@router.delete("/profiles/{profile_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_profile_route(profile_id: str, runtime: GameRuntime = Depends(get_runtime)) -> Response:
    if not runtime.profiles.delete_profile(profile_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    runtime.engine.publish_leaderboard()
    return Response(status_code=status.HTTP_204_NO_CONTENT)

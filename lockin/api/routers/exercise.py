"""Exercise session endpoints: start, stream frames, stop, history and catalog."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from lockin.api.deps import exercise_sessions, require_api_key
from lockin.api.schemas import Envelope, ExerciseStartInput, FrameInput
from lockin.core.config import get_settings
from lockin.rewards.calculator import describe
from lockin.vision.exercises import list_exercises
from lockin.vision.landmarks import Landmark, LandmarkFrame

router = APIRouter()


def _to_frame(payload: FrameInput) -> LandmarkFrame:
    if payload.landmarks is not None:
        return LandmarkFrame(
            landmarks={name: Landmark(**lm.model_dump()) for name, lm in payload.landmarks.items()}
        )
    return LandmarkFrame.from_sequence(payload.points or [])


@router.get("/exercise/catalog", response_model=Envelope)
async def exercise_catalog() -> Envelope:
    return Envelope(success=True, data={"exercises": [describe(key) for key in list_exercises()]})


@router.post("/exercise/start", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def exercise_start(payload: ExerciseStartInput) -> Envelope:
    return Envelope(success=True, data=exercise_sessions.start(payload.exercise_type))


@router.post("/exercise/frame", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def exercise_frame(payload: FrameInput) -> Envelope:
    return Envelope(success=True, data=exercise_sessions.feed(_to_frame(payload), delta_ms=payload.delta_ms))


@router.post("/exercise/stop", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def exercise_stop() -> Envelope:
    return Envelope(success=True, data=exercise_sessions.finish())


@router.get("/exercise/status", response_model=Envelope)
async def exercise_status() -> Envelope:
    current = exercise_sessions.status()
    return Envelope(success=True, data={"active": current is not None, "session": current})


@router.get("/exercise/history", response_model=Envelope)
async def exercise_history(limit: int | None = Query(default=None, ge=1, le=500)) -> Envelope:
    items = exercise_sessions.history(limit=limit or get_settings().history_limit)
    return Envelope(success=True, data={"items": items})

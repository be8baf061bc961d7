"""Pydantic schemas for request/response payloads.

All endpoints use a standardized JSON envelope: {"success": bool, "data": any, "error": str|None}
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional, List

from pydantic import BaseModel, Field, model_validator


class Envelope(BaseModel):
    success: bool = True
    data: Optional[dict] = None
    error: Optional[str] = None


# --- exercise -------------------------------------------------------------

class ExerciseStartInput(BaseModel):
    exercise_type: str


class LandmarkInput(BaseModel):
    x: float
    y: float
    z: float = 0.0
    visibility: float = Field(ge=0.0, le=1.0, default=1.0)


class FrameInput(BaseModel):
    """Either named landmarks or MediaPipe-ordered ``[x, y, z, visibility]`` points."""

    landmarks: Optional[dict[str, LandmarkInput]] = None
    points: Optional[List[List[float]]] = None
    delta_ms: Optional[float] = Field(default=None, ge=0.0)

    @model_validator(mode="after")
    def _one_shape(self) -> "FrameInput":
        if self.landmarks is None and self.points is None:
            raise ValueError("either landmarks or points is required")
        return self


# --- wallet ---------------------------------------------------------------

class EconomyInput(BaseModel):
    app_identifiers: List[str] = Field(default_factory=list)


# --- limits ---------------------------------------------------------------

class ScheduleInput(BaseModel):
    name: str
    days_of_week: List[int]
    start_time: str
    end_time: str
    app_identifiers: List[str] = Field(default_factory=list)
    is_active: bool = True


class ScheduleUpdate(BaseModel):
    name: Optional[str] = None
    days_of_week: Optional[List[int]] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    app_identifiers: Optional[List[str]] = None
    is_active: Optional[bool] = None


class DailyLimitInput(BaseModel):
    app_identifier: str
    limit_minutes: float = Field(ge=0.0)


class OverrideInput(BaseModel):
    app_identifier: str
    minutes: float = Field(gt=0.0)
    # Unfunded grants (admin/intervention) need an explicit duration; funded ones last `minutes`.
    funded: bool = True
    duration_minutes: Optional[float] = Field(default=None, gt=0.0)


# --- sync -----------------------------------------------------------------

class UsageReportInput(BaseModel):
    batch_id: str
    timestamp: datetime
    day_key: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    # usage-so-far per app; NaN, infinite and negative counters are rejected
    usage: dict[str, Annotated[float, Field(ge=0.0, allow_inf_nan=False)]] = Field(default_factory=dict)

"""Blocking decisions, schedules, daily limits and overrides."""
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from lockin.api.deps import limit_engine, require_api_key, wallet
from lockin.api.schemas import DailyLimitInput, Envelope, OverrideInput, ScheduleInput, ScheduleUpdate

router = APIRouter()


@router.get("/blocked/{app_identifier}", response_model=Envelope)
async def blocked(app_identifier: str, at: datetime | None = Query(default=None)) -> Envelope:
    decision = limit_engine.evaluate(app_identifier, at)
    data = {"app_identifier": app_identifier, **decision.to_dict()}
    data["remaining_minutes"] = limit_engine.remaining_minutes(app_identifier, at)
    return Envelope(success=True, data=data)


# --- schedules --------------------------------------------------------------

@router.get("/schedules", response_model=Envelope)
async def list_schedules() -> Envelope:
    return Envelope(success=True, data={"items": limit_engine.list_schedules()})


@router.post("/schedules", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def create_schedule(payload: ScheduleInput) -> Envelope:
    return Envelope(success=True, data=limit_engine.create_schedule(**payload.model_dump()))


@router.patch("/schedules/{schedule_id}", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def update_schedule(schedule_id: int, payload: ScheduleUpdate) -> Envelope:
    updated = limit_engine.update_schedule(schedule_id, **payload.model_dump(exclude_none=True))
    if updated is None:
        raise HTTPException(status_code=404, detail="schedule_not_found")
    return Envelope(success=True, data=updated)


@router.delete("/schedules/{schedule_id}", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def delete_schedule(schedule_id: int) -> Envelope:
    if not limit_engine.delete_schedule(schedule_id):
        raise HTTPException(status_code=404, detail="schedule_not_found")
    return Envelope(success=True, data={"deleted": schedule_id})


# --- daily limits -----------------------------------------------------------

@router.get("/limits", response_model=Envelope)
async def list_limits() -> Envelope:
    return Envelope(success=True, data={"items": limit_engine.list_daily_limits()})


@router.post("/limits", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def set_limit(payload: DailyLimitInput) -> Envelope:
    return Envelope(success=True, data=limit_engine.set_daily_limit(payload.app_identifier, payload.limit_minutes))


@router.delete("/limits/{app_identifier}", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def remove_limit(app_identifier: str) -> Envelope:
    if not limit_engine.remove_daily_limit(app_identifier):
        raise HTTPException(status_code=404, detail="limit_not_found")
    return Envelope(success=True, data={"deleted": app_identifier})


# --- overrides --------------------------------------------------------------

@router.get("/overrides", response_model=Envelope)
async def list_overrides() -> Envelope:
    return Envelope(success=True, data={"items": limit_engine.active_overrides()})


@router.post("/overrides", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def create_override(payload: OverrideInput) -> Envelope:
    if payload.funded:
        result = limit_engine.purchase_override(wallet, payload.app_identifier, payload.minutes)
        if not result["granted"]:
            return Envelope(success=False, data=result, error="insufficient_balance")
        return Envelope(success=True, data=result)
    duration = payload.duration_minutes or payload.minutes
    override = limit_engine.grant_override(payload.app_identifier, payload.minutes, duration)
    return Envelope(success=True, data={"granted": True, "override": override})

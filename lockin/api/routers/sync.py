"""Usage sync endpoints: manual ticks, foreground trigger, pushed reports."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lockin.api.deps import limit_engine, require_api_key, sync_coordinator
from lockin.api.schemas import Envelope, UsageReportInput
from lockin.core.dal import get_usage_stats
from lockin.core.db import get_db
from lockin.sync.sources import UsageReport

router = APIRouter()


@router.post("/sync/ready", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def sync_ready() -> Envelope:
    sync_coordinator.mark_ready()
    return Envelope(success=True, data=sync_coordinator.status())


@router.post("/sync/tick", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def sync_tick() -> Envelope:
    result = await sync_coordinator.sync_tick()
    return Envelope(success=True, data=result.to_dict())


@router.post("/sync/foreground", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def sync_foreground() -> Envelope:
    result = await sync_coordinator.on_foreground()
    return Envelope(success=True, data=result.to_dict())


@router.post("/sync/usage", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def sync_push_usage(payload: UsageReportInput) -> Envelope:
    report = UsageReport.from_dict(payload.model_dump())
    result = await sync_coordinator.sync_tick(report)
    return Envelope(success=True, data=result.to_dict())


@router.get("/sync/status", response_model=Envelope)
async def sync_status() -> Envelope:
    return Envelope(success=True, data=sync_coordinator.status())


@router.get("/sync/usage-stats", response_model=Envelope)
async def usage_stats(
    day_key: str | None = Query(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    db: Session = Depends(get_db),
) -> Envelope:
    key = day_key or limit_engine.day_key()
    items = [{"app_identifier": r.app_identifier, "minutes": r.minutes} for r in get_usage_stats(db, key)]
    return Envelope(success=True, data={"day_key": key, "items": items})

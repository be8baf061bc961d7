"""Wallet endpoints: balance, history, reset and economy membership."""
from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lockin.api.deps import limit_engine, require_api_key, wallet
from lockin.api.schemas import EconomyInput, Envelope
from lockin.core.config import get_settings
from lockin.core.dal import get_economy_apps, set_economy_apps
from lockin.core.db import STATE_LOCK, get_db

router = APIRouter()


@router.get("/wallet", response_model=Envelope)
async def wallet_snapshot() -> Envelope:
    local_now = limit_engine.local()
    data = wallet.get_snapshot().to_dict()
    data["today"] = wallet.period_totals(limit_engine.day_start_utc(local_now))
    data["week"] = wallet.period_totals(limit_engine.day_start_utc(local_now - timedelta(days=6)))
    return Envelope(success=True, data=data)


@router.get("/wallet/history", response_model=Envelope)
async def wallet_history(
    limit: int | None = Query(default=None, ge=1, le=1000),
    kind: str | None = Query(default=None, pattern="^(earn|spend)$"),
) -> Envelope:
    items = wallet.history(limit=limit or get_settings().history_limit, kind=kind)
    return Envelope(success=True, data={"items": items})


@router.post("/wallet/reset", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def wallet_reset() -> Envelope:
    removed = wallet.reset()
    return Envelope(success=True, data={"removed": removed, "wallet": wallet.get_snapshot().to_dict()})


@router.get("/wallet/economy", response_model=Envelope)
async def wallet_economy(db: Session = Depends(get_db)) -> Envelope:
    return Envelope(success=True, data={"app_identifiers": sorted(get_economy_apps(db))})


@router.put("/wallet/economy", response_model=Envelope, dependencies=[Depends(require_api_key)])
async def wallet_set_economy(payload: EconomyInput, db: Session = Depends(get_db)) -> Envelope:
    with STATE_LOCK:
        apps = set_economy_apps(db, payload.app_identifiers)
        db.commit()
    return Envelope(success=True, data={"app_identifiers": sorted(apps)})

"""Service singletons shared by the routers, plus the API key guard."""
from __future__ import annotations

from fastapi import Header, HTTPException

from lockin.core.config import get_settings
from lockin.core.db import init_db
from lockin.limits.engine import LimitEngine
from lockin.sync.coordinator import SyncCoordinator
from lockin.vision.session import ExerciseSessionManager
from lockin.wallet.ledger import WalletLedger

# Ensure tables exist at import time (idempotent)
init_db()

wallet = WalletLedger()
limit_engine = LimitEngine()
sync_coordinator = SyncCoordinator(wallet, limit_engine)
exercise_sessions = ExerciseSessionManager(wallet)


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    s = get_settings()
    if getattr(s, "api_key", None) and x_api_key != s.api_key:
        raise HTTPException(status_code=401, detail="invalid_api_key")

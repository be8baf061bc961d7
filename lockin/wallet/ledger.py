"""Append-only earn/spend ledger with a folded, cached balance.

Every commit goes through the process-wide ``STATE_LOCK``. Callers that need
several writes in one transaction (the sync coordinator) pass their own
``db`` session; the ledger then flushes but leaves the commit to them.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Iterator, Optional

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from lockin.core import dal
from lockin.core.db import STATE_LOCK, SessionLocal
from lockin.core.models import LedgerEntry

EARN = "earn"
SPEND = "spend"


@dataclass(frozen=True)
class WalletSnapshot:
    available_minutes: float
    total_earned: float
    total_spent: float
    entry_count: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SpendResult:
    applied: float
    requested: float

    @property
    def partial(self) -> bool:
        return self.applied < self.requested

    def to_dict(self) -> dict:
        return {"applied": self.applied, "requested": self.requested, "partial": self.partial}


def entry_to_dict(row: LedgerEntry) -> dict:
    return {
        "id": row.id,
        "kind": row.kind,
        "minutes": row.minutes,
        "source": row.source,
        "note": row.note,
        "timestamp_utc": row.timestamp_utc.isoformat() if row.timestamp_utc else None,
    }


class WalletLedger:
    def __init__(self, session_factory: sessionmaker = SessionLocal, lock=STATE_LOCK) -> None:
        self._session_factory = session_factory
        self._lock = lock
        self._cached: Optional[WalletSnapshot] = None

    @contextmanager
    def _session(self, db: Optional[Session]) -> Iterator[tuple[Session, bool]]:
        """Yield (session, owned); owned sessions are committed or rolled back here."""
        if db is not None:
            yield db, False
            return
        session = self._session_factory()
        try:
            yield session, True
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def invalidate(self) -> None:
        self._cached = None

    # --- commits ----------------------------------------------------------

    def commit_earn(self, minutes: float, source: str, note: Optional[str] = None, db: Optional[Session] = None) -> Optional[dict]:
        if minutes is None or minutes <= 0:
            logger.warning("Rejected earn of {} min from {}", minutes, source)
            return None
        with self._lock:
            with self._session(db) as (session, _owned):
                row = dal.add_ledger_entry(session, EARN, minutes, source, note)
                entry = entry_to_dict(row)
            self.invalidate()
        logger.info("Wallet earn {} min ({})", minutes, source)
        return entry

    def commit_spend(self, minutes: float, source: str, note: Optional[str] = None, db: Optional[Session] = None) -> SpendResult:
        requested = float(minutes or 0.0)
        if requested <= 0:
            return SpendResult(applied=0.0, requested=requested)
        with self._lock:
            with self._session(db) as (session, _owned):
                available = self._fold(session).available_minutes
                applied = round(min(requested, available), 6)
                if applied > 0:
                    dal.add_ledger_entry(session, SPEND, applied, source, note)
            self.invalidate()
        if applied < requested:
            logger.warning("Wallet spend clamped: requested {} min, applied {} ({})", requested, applied, source)
        else:
            logger.info("Wallet spend {} min ({})", applied, source)
        return SpendResult(applied=applied, requested=requested)

    # --- reads ------------------------------------------------------------

    def _fold(self, session: Session) -> WalletSnapshot:
        earned = dal.sum_ledger(session, EARN)
        spent = dal.sum_ledger(session, SPEND)
        available = max(0.0, round(earned - spent, 6))
        return WalletSnapshot(
            available_minutes=available,
            total_earned=round(earned, 6),
            total_spent=round(spent, 6),
            entry_count=dal.count_ledger_entries(session),
        )

    def get_snapshot(self, db: Optional[Session] = None) -> WalletSnapshot:
        with self._lock:
            if db is not None:
                return self._fold(db)
            if self._cached is None:
                with self._session(None) as (session, _owned):
                    self._cached = self._fold(session)
            return self._cached

    def history(self, limit: int = 50, kind: Optional[str] = None) -> list[dict]:
        with self._session(None) as (session, _owned):
            return [entry_to_dict(r) for r in dal.get_ledger_history(session, limit=limit, kind=kind)]

    def period_totals(self, since: datetime) -> dict:
        """Earned/spent since a naive-UTC instant."""
        with self._session(None) as (session, _owned):
            return {
                "earned": round(dal.sum_ledger(session, EARN, since=since), 6),
                "spent": round(dal.sum_ledger(session, SPEND, since=since), 6),
            }

    def reset(self) -> int:
        with self._lock:
            with self._session(None) as (session, _owned):
                removed = dal.clear_ledger(session)
            self.invalidate()
        logger.warning("Wallet reset, {} entries removed", removed)
        return removed

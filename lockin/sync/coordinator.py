"""Reconcile measured usage with the wallet and the limit engine, exactly once.

Each tick pulls (or is handed) a usage report, turns the per-app
usage-so-far values into deltas against the last applied baseline and writes
spends, daily counters, baselines and the watermark in one transaction.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from loguru import logger
from sqlalchemy.orm import sessionmaker

from lockin.core import dal
from lockin.core.config import Settings, get_settings
from lockin.core.db import STATE_LOCK, SessionLocal
from lockin.core.errors import UsageSourceUnavailable
from lockin.limits.engine import LimitEngine
from lockin.wallet.ledger import WalletLedger

from .sources import UsageReport, UsageSource, build_usage_source


@dataclass
class SyncResult:
    applied: bool
    reason: Optional[str] = None  # in_flight | unavailable | duplicate | stale | error
    batch_id: Optional[str] = None
    deltas: Dict[str, float] = field(default_factory=dict)
    spent_minutes: float = 0.0
    unfunded_minutes: float = 0.0
    error: Optional[str] = None
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "applied": self.applied,
            "reason": self.reason,
            "batch_id": self.batch_id,
            "deltas": dict(self.deltas),
            "spent_minutes": self.spent_minutes,
            "unfunded_minutes": self.unfunded_minutes,
            "error": self.error,
            "finished_at": self.finished_at.isoformat(),
        }


class SyncCoordinator:
    def __init__(
        self,
        wallet: WalletLedger,
        limits: LimitEngine,
        source: Optional[UsageSource] = None,
        session_factory: sessionmaker = SessionLocal,
        lock=STATE_LOCK,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.wallet = wallet
        self.limits = limits
        self.source = source or build_usage_source(self.settings)
        self._session_factory = session_factory
        self._lock = lock
        self._in_flight = asyncio.Lock()
        self._ready = asyncio.Event()
        self.last_result: Optional[SyncResult] = None

    # --- readiness ----------------------------------------------------------

    def mark_ready(self) -> None:
        """Signal that the host usage counter can be read."""
        if not self._ready.is_set():
            logger.info("Usage sync ready")
        self._ready.set()

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    # --- ticks --------------------------------------------------------------

    async def sync_tick(self, usage_report: Optional[UsageReport] = None) -> SyncResult:
        if self._in_flight.locked():
            return SyncResult(applied=False, reason="in_flight")
        async with self._in_flight:
            report = usage_report
            if report is None:
                try:
                    report = await self.source.fetch()
                except UsageSourceUnavailable as exc:
                    result = SyncResult(applied=False, reason="unavailable", error=str(exc))
                    self.last_result = result
                    return result
            try:
                result = self._apply(report)
            except Exception as exc:
                logger.exception("Sync tick for batch {} rolled back", report.batch_id)
                result = SyncResult(applied=False, reason="error", batch_id=report.batch_id, error=str(exc))
            self.last_result = result
            return result

    async def on_foreground(self) -> SyncResult:
        return await self.sync_tick()

    def _apply(self, report: UsageReport) -> SyncResult:
        ts = report.timestamp.astimezone(timezone.utc).replace(tzinfo=None)
        with self._lock:
            session = self._session_factory()
            try:
                if dal.is_batch_applied(session, report.batch_id):
                    logger.debug("Batch {} already applied", report.batch_id)
                    return SyncResult(applied=False, reason="duplicate", batch_id=report.batch_id)
                watermark = dal.get_watermark(session)
                if watermark and watermark.last_applied_timestamp_utc and ts <= watermark.last_applied_timestamp_utc:
                    logger.debug("Batch {} older than watermark, skipped", report.batch_id)
                    return SyncResult(applied=False, reason="stale", batch_id=report.batch_id)

                result = SyncResult(applied=True, batch_id=report.batch_id)
                economy = dal.get_economy_apps(session)
                for app_identifier, so_far in sorted(report.usage.items()):
                    baseline = dal.get_synced_usage(session, app_identifier, report.day_key)
                    delta = round(so_far - (baseline.minutes if baseline else 0.0), 6)
                    if delta < 0:
                        logger.warning("Usage for {} went backwards ({} min), ignored", app_identifier, delta)
                        continue
                    if delta == 0:
                        continue
                    if self.limits.is_past_day(app_identifier, report.day_key, db=session):
                        logger.warning("Usage for {} on {} is behind its daily counter, skipped", app_identifier, report.day_key)
                        continue

                    tracked = False
                    if app_identifier in economy:
                        spend = self.wallet.commit_spend(delta, source=report.batch_id, note=app_identifier, db=session)
                        result.spent_minutes += spend.applied
                        result.unfunded_minutes += spend.requested - spend.applied
                        tracked = True
                    if self.limits.record_usage(app_identifier, delta, report.day_key, db=session) is not None:
                        tracked = True
                    if not tracked and self.settings.untracked_usage_policy == "track":
                        dal.add_usage_stat(session, app_identifier, report.day_key, delta)

                    dal.set_synced_usage(session, app_identifier, report.day_key, so_far)
                    result.deltas[app_identifier] = delta

                self.limits.purge_expired_overrides(now=datetime.now(timezone.utc), db=session)
                dal.save_watermark(session, report.batch_id, ts)
                dal.prune_applied_batches(session, before=ts - timedelta(days=1))
                session.commit()
            except Exception:
                session.rollback()
                self.wallet.invalidate()
                raise
            finally:
                session.close()
        self.wallet.invalidate()
        result.spent_minutes = round(result.spent_minutes, 6)
        result.unfunded_minutes = round(result.unfunded_minutes, 6)
        logger.info(
            "Sync batch {} applied: {} apps, {} min spent, {} min unfunded",
            report.batch_id, len(result.deltas), result.spent_minutes, result.unfunded_minutes,
        )
        return result

    # --- background loop ------------------------------------------------------

    async def polling_loop(self, stop_event: asyncio.Event) -> None:
        interval = max(1, int(self.settings.sync_interval_sec))
        try:
            if not self._ready.is_set():
                ready = asyncio.create_task(self._ready.wait())
                stopped = asyncio.create_task(stop_event.wait())
                try:
                    await asyncio.wait({ready, stopped}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    ready.cancel()
                    stopped.cancel()
            while self._ready.is_set() and not stop_event.is_set():
                result = await self.sync_tick()
                if not result.applied and result.reason not in ("duplicate", "stale"):
                    logger.debug("Sync tick not applied: {}", result.reason)
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:  # pragma: no cover
            logger.info("Usage sync polling task cancelled")
            raise

    def status(self) -> dict:
        session = self._session_factory()
        try:
            watermark = dal.get_watermark(session)
        finally:
            session.close()
        return {
            "ready": self.is_ready,
            "in_flight": self._in_flight.locked(),
            "watermark": {
                "last_applied_batch_id": watermark.last_applied_batch_id if watermark else None,
                "last_applied_timestamp": (
                    watermark.last_applied_timestamp_utc.replace(tzinfo=timezone.utc).isoformat()
                    if watermark and watermark.last_applied_timestamp_utc
                    else None
                ),
            },
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }

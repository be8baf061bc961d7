"""Data access layer utilities.

Functions add/flush but never commit; the calling service owns the
transaction so several writes can land atomically.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import (
    AppliedBatch,
    DailyLimit,
    EconomyApp,
    ExerciseSessionRecord,
    InterventionOverride,
    LedgerEntry,
    Schedule,
    SyncedUsage,
    SyncWatermark,
    UsageStat,
    utcnow,
)


# --- ledger ---------------------------------------------------------------

def add_ledger_entry(db: Session, kind: str, minutes: float, source: str, note: Optional[str] = None) -> LedgerEntry:
    row = LedgerEntry(kind=kind, minutes=float(minutes), source=source, note=note, timestamp_utc=utcnow())
    db.add(row)
    db.flush()
    return row


def sum_ledger(db: Session, kind: str, since: Optional[datetime] = None) -> float:
    q = db.query(func.coalesce(func.sum(LedgerEntry.minutes), 0.0)).filter(LedgerEntry.kind == kind)
    if since is not None:
        q = q.filter(LedgerEntry.timestamp_utc >= since)
    return float(q.scalar() or 0.0)


def count_ledger_entries(db: Session) -> int:
    return int(db.query(func.count(LedgerEntry.id)).scalar() or 0)


def get_ledger_history(db: Session, limit: int = 50, kind: Optional[str] = None) -> list[LedgerEntry]:
    q = db.query(LedgerEntry)
    if kind:
        q = q.filter(LedgerEntry.kind == kind)
    q = q.order_by(LedgerEntry.timestamp_utc.desc(), LedgerEntry.id.desc()).limit(limit)
    return list(q)


def clear_ledger(db: Session) -> int:
    return db.query(LedgerEntry).delete()


# --- schedules ------------------------------------------------------------

def get_schedules(db: Session, active_only: bool = False) -> list[Schedule]:
    q = db.query(Schedule)
    if active_only:
        q = q.filter(Schedule.is_active.is_(True))
    return list(q.order_by(Schedule.id))


def get_schedule(db: Session, schedule_id: int) -> Optional[Schedule]:
    return db.query(Schedule).filter(Schedule.id == schedule_id).first()


def save_schedule(db: Session, row: Schedule) -> Schedule:
    db.add(row)
    db.flush()
    return row


def delete_schedule(db: Session, schedule_id: int) -> bool:
    return db.query(Schedule).filter(Schedule.id == schedule_id).delete() > 0


# --- daily limits ---------------------------------------------------------

def get_daily_limit(db: Session, app_identifier: str) -> Optional[DailyLimit]:
    return db.query(DailyLimit).filter(DailyLimit.app_identifier == app_identifier).first()


def get_daily_limits(db: Session) -> list[DailyLimit]:
    return list(db.query(DailyLimit).order_by(DailyLimit.app_identifier))


def upsert_daily_limit(db: Session, app_identifier: str, limit_minutes: float) -> DailyLimit:
    row = get_daily_limit(db, app_identifier)
    if not row:
        row = DailyLimit(app_identifier=app_identifier, limit_minutes=float(limit_minutes), minutes_used_today=0.0)
    else:
        row.limit_minutes = float(limit_minutes)
    db.add(row)
    db.flush()
    return row


def delete_daily_limit(db: Session, app_identifier: str) -> bool:
    return db.query(DailyLimit).filter(DailyLimit.app_identifier == app_identifier).delete() > 0


# --- overrides ------------------------------------------------------------

def add_override(db: Session, app_identifier: str, granted_minutes: float, expires_at_utc: datetime) -> InterventionOverride:
    row = InterventionOverride(
        app_identifier=app_identifier,
        granted_minutes=float(granted_minutes),
        expires_at_utc=expires_at_utc,
    )
    db.add(row)
    db.flush()
    return row


def get_live_override(db: Session, app_identifier: str, now_utc: datetime) -> Optional[InterventionOverride]:
    return (
        db.query(InterventionOverride)
        .filter(InterventionOverride.app_identifier == app_identifier)
        .filter(InterventionOverride.expires_at_utc > now_utc)
        .order_by(InterventionOverride.expires_at_utc.desc())
        .first()
    )


def get_live_overrides(db: Session, now_utc: datetime) -> list[InterventionOverride]:
    q = (
        db.query(InterventionOverride)
        .filter(InterventionOverride.expires_at_utc > now_utc)
        .order_by(InterventionOverride.expires_at_utc)
    )
    return list(q)


def delete_expired_overrides(db: Session, now_utc: datetime) -> int:
    return db.query(InterventionOverride).filter(InterventionOverride.expires_at_utc <= now_utc).delete()


# --- sync -----------------------------------------------------------------

def get_watermark(db: Session) -> Optional[SyncWatermark]:
    return db.query(SyncWatermark).filter(SyncWatermark.id == 1).first()


def save_watermark(db: Session, batch_id: str, timestamp_utc: datetime) -> SyncWatermark:
    row = get_watermark(db) or SyncWatermark(id=1)
    row.last_applied_batch_id = batch_id
    row.last_applied_timestamp_utc = timestamp_utc
    row.updated_at_utc = utcnow()
    db.add(row)
    db.add(AppliedBatch(batch_id=batch_id, timestamp_utc=timestamp_utc, applied_at_utc=utcnow()))
    db.flush()
    return row


def is_batch_applied(db: Session, batch_id: str) -> bool:
    return db.query(AppliedBatch).filter(AppliedBatch.batch_id == batch_id).first() is not None


def prune_applied_batches(db: Session, before: datetime) -> int:
    """Drop batch ids older than ``before``; the watermark already rejects them."""
    removed = (
        db.query(AppliedBatch)
        .filter(AppliedBatch.timestamp_utc < before)
        .delete(synchronize_session=False)
    )
    db.flush()
    return removed


def get_synced_usage(db: Session, app_identifier: str, day_key: str) -> Optional[SyncedUsage]:
    return (
        db.query(SyncedUsage)
        .filter(SyncedUsage.app_identifier == app_identifier, SyncedUsage.day_key == day_key)
        .first()
    )


def set_synced_usage(db: Session, app_identifier: str, day_key: str, minutes: float) -> SyncedUsage:
    row = get_synced_usage(db, app_identifier, day_key)
    if not row:
        row = SyncedUsage(app_identifier=app_identifier, day_key=day_key)
    row.minutes = float(minutes)
    db.add(row)
    db.flush()
    return row


def add_usage_stat(db: Session, app_identifier: str, day_key: str, minutes: float) -> UsageStat:
    row = (
        db.query(UsageStat)
        .filter(UsageStat.app_identifier == app_identifier, UsageStat.day_key == day_key)
        .first()
    )
    if not row:
        row = UsageStat(app_identifier=app_identifier, day_key=day_key, minutes=0.0)
    row.minutes = float(row.minutes or 0.0) + float(minutes)
    db.add(row)
    db.flush()
    return row


def get_usage_stats(db: Session, day_key: str) -> list[UsageStat]:
    return list(db.query(UsageStat).filter(UsageStat.day_key == day_key).order_by(UsageStat.minutes.desc()))


# --- economy membership ---------------------------------------------------

def get_economy_apps(db: Session) -> set[str]:
    return {row.app_identifier for row in db.query(EconomyApp)}


def set_economy_apps(db: Session, app_identifiers: Iterable[str]) -> set[str]:
    wanted = {a for a in app_identifiers if a}
    db.query(EconomyApp).filter(EconomyApp.app_identifier.notin_(wanted)).delete(synchronize_session=False)
    existing = get_economy_apps(db)
    for app_identifier in wanted - existing:
        db.add(EconomyApp(app_identifier=app_identifier))
    db.flush()
    return wanted


# --- exercise sessions ----------------------------------------------------

def add_exercise_session(db: Session, **kwargs) -> ExerciseSessionRecord:
    row = ExerciseSessionRecord(**kwargs)
    db.add(row)
    db.flush()
    return row


def get_exercise_history(db: Session, limit: int = 20) -> list[ExerciseSessionRecord]:
    q = (
        db.query(ExerciseSessionRecord)
        .order_by(ExerciseSessionRecord.started_at_utc.desc())
        .limit(limit)
    )
    return list(q)

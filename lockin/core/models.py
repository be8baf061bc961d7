"""ORM models for persistence."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, UniqueConstraint

from .db import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class LedgerEntry(Base):
    __tablename__ = "ledger_entry"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String, nullable=False, index=True)  # "earn" | "spend"
    minutes = Column(Float, nullable=False)
    source = Column(String, nullable=False)
    note = Column(String, nullable=True)
    timestamp_utc = Column(DateTime, default=utcnow, index=True)


class Schedule(Base):
    __tablename__ = "schedule"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)
    days_of_week = Column(String, default="")  # comma separated, 0 = Sunday
    start_time = Column(String, nullable=False)  # HH:MM
    end_time = Column(String, nullable=False)  # HH:MM
    app_identifiers = Column(String, default="")  # newline separated
    created_at_utc = Column(DateTime, default=utcnow)


class DailyLimit(Base):
    __tablename__ = "daily_limit"

    app_identifier = Column(String, primary_key=True)
    limit_minutes = Column(Float, nullable=False)
    minutes_used_today = Column(Float, default=0.0)
    day_key = Column(String, nullable=True)  # YYYY-MM-DD


class InterventionOverride(Base):
    __tablename__ = "intervention_override"

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_identifier = Column(String, nullable=False, index=True)
    granted_minutes = Column(Float, nullable=False)
    expires_at_utc = Column(DateTime, nullable=False, index=True)
    created_at_utc = Column(DateTime, default=utcnow)


class SyncWatermark(Base):
    __tablename__ = "sync_watermark"

    id = Column(Integer, primary_key=True, default=1)
    last_applied_timestamp_utc = Column(DateTime, nullable=True)
    last_applied_batch_id = Column(String, nullable=True)
    updated_at_utc = Column(DateTime, default=utcnow)


class AppliedBatch(Base):
    __tablename__ = "applied_batch"

    batch_id = Column(String, primary_key=True)
    timestamp_utc = Column(DateTime, nullable=True, index=True)
    applied_at_utc = Column(DateTime, default=utcnow)


class SyncedUsage(Base):
    __tablename__ = "synced_usage"
    __table_args__ = (UniqueConstraint("app_identifier", "day_key", name="uq_synced_usage_app_day"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_identifier = Column(String, nullable=False)
    day_key = Column(String, nullable=False)
    minutes = Column(Float, default=0.0)


class EconomyApp(Base):
    __tablename__ = "economy_app"

    app_identifier = Column(String, primary_key=True)
    added_at_utc = Column(DateTime, default=utcnow)


class UsageStat(Base):
    __tablename__ = "usage_stat"
    __table_args__ = (UniqueConstraint("app_identifier", "day_key", name="uq_usage_stat_app_day"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_identifier = Column(String, nullable=False)
    day_key = Column(String, nullable=False)
    minutes = Column(Float, default=0.0)


class ExerciseSessionRecord(Base):
    __tablename__ = "exercise_session"

    id = Column(String, primary_key=True)
    exercise_type = Column(String, nullable=False)
    started_at_utc = Column(DateTime, default=utcnow)
    ended_at_utc = Column(DateTime, nullable=True)
    rep_count = Column(Integer, default=0)
    hold_seconds = Column(Float, default=0.0)
    earned_minutes = Column(Float, default=0.0)
    meets_minimum = Column(Boolean, default=False)

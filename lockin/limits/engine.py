"""Schedule & limit engine: decides whether an app is blocked right now.

Precedence: a live override unblocks; otherwise an active schedule window
listing the app blocks; otherwise a reached daily limit blocks.

Wall-clock reasoning (weekdays, HH:MM windows, day keys) happens in the
configured timezone. Stored instants are naive UTC.
"""
from __future__ import annotations

import re
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Iterable, Iterator, Optional
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from lockin.core import dal
from lockin.core.config import get_settings
from lockin.core.db import STATE_LOCK, SessionLocal
from lockin.core.errors import ScheduleValidationError
from lockin.core.models import DailyLimit, InterventionOverride, Schedule

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True)
class BlockDecision:
    blocked: bool
    reason: Optional[str] = None  # "override" | "schedule" | "daily_limit"
    until: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "blocked": self.blocked,
            "reason": self.reason,
            "until": self.until.isoformat() if self.until else None,
        }


def parse_hhmm(value: str) -> time:
    m = _HHMM.match(value or "")
    if not m:
        raise ScheduleValidationError(f"invalid time {value!r}, expected HH:MM")
    return time(int(m.group(1)), int(m.group(2)))


def weekday_index(local: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (local.weekday() + 1) % 7


def _as_utc(naive_utc: Optional[datetime]) -> Optional[datetime]:
    return naive_utc.replace(tzinfo=timezone.utc) if naive_utc else None


def _split_apps(raw: Optional[str]) -> list[str]:
    return [a for a in (raw or "").split("\n") if a]


def _split_days(raw: Optional[str]) -> list[int]:
    return [int(d) for d in (raw or "").split(",") if d != ""]


def schedule_to_dict(row: Schedule) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "is_active": bool(row.is_active),
        "days_of_week": _split_days(row.days_of_week),
        "start_time": row.start_time,
        "end_time": row.end_time,
        "app_identifiers": _split_apps(row.app_identifiers),
    }


def override_to_dict(row: InterventionOverride) -> dict:
    return {
        "id": row.id,
        "app_identifier": row.app_identifier,
        "granted_minutes": row.granted_minutes,
        "expires_at": _as_utc(row.expires_at_utc).isoformat(),
    }


class LimitEngine:
    def __init__(self, session_factory: sessionmaker = SessionLocal, lock=STATE_LOCK, tz: Optional[str] = None) -> None:
        self._session_factory = session_factory
        self._lock = lock
        self.tz = ZoneInfo(tz or get_settings().timezone)

    @contextmanager
    def _session(self, db: Optional[Session]) -> Iterator[Session]:
        if db is not None:
            yield db
            return
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # --- time helpers -----------------------------------------------------

    def local(self, now: Optional[datetime] = None) -> datetime:
        """``now`` in the configured zone; naive values are local wall-clock time."""
        if now is None:
            return datetime.now(self.tz)
        if now.tzinfo is None:
            return now.replace(tzinfo=self.tz)
        return now.astimezone(self.tz)

    def utc_naive(self, now: Optional[datetime] = None) -> datetime:
        return self.local(now).astimezone(timezone.utc).replace(tzinfo=None)

    def day_key(self, now: Optional[datetime] = None) -> str:
        return self.local(now).strftime("%Y-%m-%d")

    def day_start_utc(self, now: Optional[datetime] = None) -> datetime:
        local = self.local(now)
        start = datetime.combine(local.date(), time(0, 0), tzinfo=self.tz)
        return start.astimezone(timezone.utc).replace(tzinfo=None)

    def _next_midnight(self, local: datetime) -> datetime:
        return datetime.combine(local.date() + timedelta(days=1), time(0, 0), tzinfo=self.tz)

    # --- decision ---------------------------------------------------------

    def evaluate(self, app_identifier: str, now: Optional[datetime] = None, db: Optional[Session] = None) -> BlockDecision:
        local = self.local(now)
        now_utc = local.astimezone(timezone.utc).replace(tzinfo=None)
        with self._session(db) as session:
            override = dal.get_live_override(session, app_identifier, now_utc)
            if override is not None:
                return BlockDecision(False, "override", _as_utc(override.expires_at_utc).astimezone(self.tz))

            weekday = weekday_index(local)
            clock = local.time().replace(tzinfo=None)
            for row in dal.get_schedules(session, active_only=True):
                if weekday not in _split_days(row.days_of_week):
                    continue
                if app_identifier not in _split_apps(row.app_identifiers):
                    continue
                start, end = parse_hhmm(row.start_time), parse_hhmm(row.end_time)
                if start <= clock < end:
                    return BlockDecision(True, "schedule", datetime.combine(local.date(), end, tzinfo=self.tz))

            limit = dal.get_daily_limit(session, app_identifier)
            if limit is not None and self._used_today(limit, local) >= limit.limit_minutes:
                return BlockDecision(True, "daily_limit", self._next_midnight(local))
        return BlockDecision(False)

    def is_blocked(self, app_identifier: str, now: Optional[datetime] = None) -> bool:
        return self.evaluate(app_identifier, now).blocked

    def _used_today(self, row: DailyLimit, local: datetime) -> float:
        if row.day_key != local.strftime("%Y-%m-%d"):
            return 0.0
        return float(row.minutes_used_today or 0.0)

    # --- usage & overrides --------------------------------------------------

    def is_past_day(self, app_identifier: str, day_key: str, db: Optional[Session] = None) -> bool:
        """True when the app's daily counter has already moved past ``day_key``."""
        with self._session(db) as session:
            row = dal.get_daily_limit(session, app_identifier)
            return bool(row is not None and row.day_key and day_key < row.day_key)

    def record_usage(self, app_identifier: str, minutes_delta: float, day_key: str, db: Optional[Session] = None) -> Optional[dict]:
        """Add usage to the app's daily counter; returns None when the app has no limit."""
        if minutes_delta < 0:
            logger.warning("Ignoring negative usage delta {} for {}", minutes_delta, app_identifier)
            return None
        with self._lock:
            with self._session(db) as session:
                row = dal.get_daily_limit(session, app_identifier)
                if row is None:
                    return None
                if row.day_key and day_key < row.day_key:
                    logger.warning("Ignoring usage for past day {} on {} (counter at {})", day_key, app_identifier, row.day_key)
                    return None
                if row.day_key != day_key:
                    row.day_key = day_key
                    row.minutes_used_today = float(minutes_delta)
                else:
                    row.minutes_used_today = float(row.minutes_used_today or 0.0) + float(minutes_delta)
                session.add(row)
                session.flush()
                return self._limit_to_dict(row, day_key)

    def grant_override(
        self,
        app_identifier: str,
        minutes: float,
        duration_minutes: float,
        now: Optional[datetime] = None,
        db: Optional[Session] = None,
    ) -> dict:
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        expires = self.utc_naive(now) + timedelta(minutes=duration_minutes)
        with self._lock:
            with self._session(db) as session:
                row = dal.add_override(session, app_identifier, minutes, expires)
                out = override_to_dict(row)
        logger.info("Override for {}: {} min until {}", app_identifier, minutes, out["expires_at"])
        return out

    def active_overrides(self, now: Optional[datetime] = None) -> list[dict]:
        with self._session(None) as session:
            return [override_to_dict(r) for r in dal.get_live_overrides(session, self.utc_naive(now))]

    def purge_expired_overrides(self, now: Optional[datetime] = None, db: Optional[Session] = None) -> int:
        with self._lock:
            with self._session(db) as session:
                removed = dal.delete_expired_overrides(session, self.utc_naive(now))
        if removed:
            logger.debug("Purged {} expired overrides", removed)
        return removed

    # --- schedules ----------------------------------------------------------

    @staticmethod
    def _validate_schedule(name: str, days_of_week: Iterable[int], start_time: str, end_time: str) -> list[int]:
        if not (name or "").strip():
            raise ScheduleValidationError("schedule name is required")
        days = sorted({int(d) for d in days_of_week})
        if any(d < 0 or d > 6 for d in days):
            raise ScheduleValidationError("days_of_week must be within 0-6 (0 = Sunday)")
        if parse_hhmm(end_time) <= parse_hhmm(start_time):
            raise ScheduleValidationError("end_time must be after start_time; windows cannot span midnight")
        return days

    def create_schedule(
        self,
        name: str,
        days_of_week: Iterable[int],
        start_time: str,
        end_time: str,
        app_identifiers: Iterable[str],
        is_active: bool = True,
    ) -> dict:
        days = self._validate_schedule(name, days_of_week, start_time, end_time)
        row = Schedule(
            name=name.strip(),
            is_active=is_active,
            days_of_week=",".join(str(d) for d in days),
            start_time=start_time,
            end_time=end_time,
            app_identifiers="\n".join(a for a in app_identifiers if a),
        )
        with self._lock:
            with self._session(None) as session:
                out = schedule_to_dict(dal.save_schedule(session, row))
        logger.info("Schedule {} created: {}", out["id"], out["name"])
        return out

    def update_schedule(self, schedule_id: int, **changes) -> Optional[dict]:
        with self._lock:
            with self._session(None) as session:
                row = dal.get_schedule(session, schedule_id)
                if row is None:
                    return None
                current = schedule_to_dict(row)
                merged = {k: v for k, v in changes.items() if v is not None}
                current.update(merged)
                days = self._validate_schedule(
                    current["name"], current["days_of_week"], current["start_time"], current["end_time"]
                )
                row.name = current["name"].strip()
                row.is_active = bool(current["is_active"])
                row.days_of_week = ",".join(str(d) for d in days)
                row.start_time = current["start_time"]
                row.end_time = current["end_time"]
                row.app_identifiers = "\n".join(a for a in current["app_identifiers"] if a)
                return schedule_to_dict(dal.save_schedule(session, row))

    def delete_schedule(self, schedule_id: int) -> bool:
        with self._lock:
            with self._session(None) as session:
                return dal.delete_schedule(session, schedule_id)

    def list_schedules(self) -> list[dict]:
        with self._session(None) as session:
            return [schedule_to_dict(r) for r in dal.get_schedules(session)]

    # --- daily limits -------------------------------------------------------

    def _limit_to_dict(self, row: DailyLimit, today: str) -> dict:
        used = float(row.minutes_used_today or 0.0) if row.day_key == today else 0.0
        return {
            "app_identifier": row.app_identifier,
            "limit_minutes": row.limit_minutes,
            "minutes_used_today": used,
            "remaining_minutes": max(0.0, round(row.limit_minutes - used, 6)),
            "day_key": today,
        }

    def set_daily_limit(self, app_identifier: str, limit_minutes: float, now: Optional[datetime] = None) -> dict:
        if limit_minutes < 0:
            raise ValueError("limit_minutes must be >= 0")
        with self._lock:
            with self._session(None) as session:
                row = dal.upsert_daily_limit(session, app_identifier, limit_minutes)
                return self._limit_to_dict(row, self.day_key(now))

    def remove_daily_limit(self, app_identifier: str) -> bool:
        with self._lock:
            with self._session(None) as session:
                return dal.delete_daily_limit(session, app_identifier)

    def list_daily_limits(self, now: Optional[datetime] = None) -> list[dict]:
        today = self.day_key(now)
        with self._session(None) as session:
            return [self._limit_to_dict(r, today) for r in dal.get_daily_limits(session)]

    def remaining_minutes(self, app_identifier: str, now: Optional[datetime] = None) -> Optional[float]:
        with self._session(None) as session:
            row = dal.get_daily_limit(session, app_identifier)
            if row is None:
                return None
            return self._limit_to_dict(row, self.day_key(now))["remaining_minutes"]

    def has_daily_limit(self, app_identifier: str, db: Optional[Session] = None) -> bool:
        with self._session(db) as session:
            return dal.get_daily_limit(session, app_identifier) is not None

    def purchase_override(
        self,
        wallet,
        app_identifier: str,
        minutes: float,
        now: Optional[datetime] = None,
    ) -> dict:
        """Spend ``minutes`` from the wallet for an override of the same length.

        Denied without spending when the balance does not cover the full amount.
        """
        if minutes <= 0:
            raise ValueError("minutes must be positive")
        with self._lock:
            with self._session(None) as session:
                available = wallet.get_snapshot(db=session).available_minutes
                if available < minutes:
                    logger.info("Override for {} denied: {} min requested, {} available", app_identifier, minutes, available)
                    return {"granted": False, "available_minutes": available, "override": None}
                wallet.commit_spend(minutes, source=f"override:{app_identifier}", db=session)
                override = self.grant_override(app_identifier, minutes, minutes, now=now, db=session)
            wallet.invalidate()
        return {"granted": True, "available_minutes": round(available - minutes, 6), "override": override}

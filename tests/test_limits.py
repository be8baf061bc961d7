from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from lockin.core.errors import ScheduleValidationError
from lockin.limits.engine import weekday_index

TUESDAY_10 = datetime(2024, 1, 2, 10, 0)
WEDNESDAY_10 = datetime(2024, 1, 3, 10, 0)


def _work_hours(limits, apps=("com.social.app",)):
    return limits.create_schedule(
        name="Work hours",
        days_of_week=[1, 3, 5],
        start_time="09:00",
        end_time="17:00",
        app_identifiers=list(apps),
    )


def test_weekday_index_starts_on_sunday():
    assert weekday_index(datetime(2024, 1, 7)) == 0  # Sunday
    assert weekday_index(TUESDAY_10) == 2
    assert weekday_index(datetime(2024, 1, 6)) == 6  # Saturday


def test_schedule_blocks_only_on_listed_days(limits):
    _work_hours(limits)
    assert limits.is_blocked("com.social.app", TUESDAY_10) is False
    assert limits.is_blocked("com.social.app", WEDNESDAY_10) is True
    assert limits.is_blocked("com.other.app", WEDNESDAY_10) is False


def test_schedule_window_is_half_open(limits):
    _work_hours(limits)
    assert limits.is_blocked("com.social.app", datetime(2024, 1, 3, 9, 0)) is True
    assert limits.is_blocked("com.social.app", datetime(2024, 1, 3, 16, 59)) is True
    assert limits.is_blocked("com.social.app", datetime(2024, 1, 3, 17, 0)) is False
    assert limits.is_blocked("com.social.app", datetime(2024, 1, 3, 8, 59)) is False


def test_aware_now_is_converted_to_configured_zone(limits):
    _work_hours(limits)
    # 12:00 at UTC+2 is 10:00 UTC on Wednesday
    now = datetime(2024, 1, 3, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    decision = limits.evaluate("com.social.app", now)
    assert decision.blocked is True
    assert decision.reason == "schedule"
    assert decision.until.hour == 17


def test_inactive_schedule_is_ignored(limits):
    row = _work_hours(limits)
    limits.update_schedule(row["id"], is_active=False)
    assert limits.is_blocked("com.social.app", WEDNESDAY_10) is False


@pytest.mark.parametrize(
    "start,end",
    [("22:00", "06:00"), ("09:00", "09:00"), ("9:00", "17:00"), ("24:00", "25:00"), ("09:60", "10:00")],
)
def test_invalid_windows_are_rejected(limits, start, end):
    with pytest.raises(ScheduleValidationError):
        limits.create_schedule("Bad", [1], start, end, ["a"])


def test_days_out_of_range_rejected(limits):
    with pytest.raises(ScheduleValidationError):
        limits.create_schedule("Bad", [7], "09:00", "10:00", ["a"])


def test_update_validates_merged_schedule(limits):
    row = _work_hours(limits)
    with pytest.raises(ScheduleValidationError):
        limits.update_schedule(row["id"], end_time="08:00")
    updated = limits.update_schedule(row["id"], app_identifiers=["a", "b"])
    assert updated["app_identifiers"] == ["a", "b"]
    assert updated["start_time"] == "09:00"


def test_update_and_delete_unknown_schedule(limits):
    assert limits.update_schedule(999, name="x") is None
    assert limits.delete_schedule(999) is False


def test_schedule_crud(limits):
    row = _work_hours(limits)
    assert [s["id"] for s in limits.list_schedules()] == [row["id"]]
    assert row["days_of_week"] == [1, 3, 5]
    assert limits.delete_schedule(row["id"]) is True
    assert limits.list_schedules() == []


def test_daily_limit_then_override_then_blocked_again(limits):
    now = datetime(2024, 1, 2, 12, 0)
    day = limits.day_key(now)
    limits.set_daily_limit("com.video.app", 30)
    limits.record_usage("com.video.app", 30, day)

    decision = limits.evaluate("com.video.app", now)
    assert decision.blocked is True
    assert decision.reason == "daily_limit"

    limits.grant_override("com.video.app", 5, duration_minutes=10, now=now)
    assert limits.is_blocked("com.video.app", now + timedelta(minutes=5)) is False
    assert limits.evaluate("com.video.app", now + timedelta(minutes=5)).reason == "override"
    assert limits.is_blocked("com.video.app", now + timedelta(minutes=11)) is True


def test_override_beats_schedule(limits):
    _work_hours(limits)
    limits.grant_override("com.social.app", 15, duration_minutes=15, now=WEDNESDAY_10)
    assert limits.is_blocked("com.social.app", WEDNESDAY_10 + timedelta(minutes=1)) is False


def test_day_rollover_resets_counter(limits):
    day1 = datetime(2024, 1, 2, 20, 0)
    day2 = datetime(2024, 1, 3, 8, 0)
    limits.set_daily_limit("com.video.app", 30)
    limits.record_usage("com.video.app", 30, limits.day_key(day1))
    assert limits.is_blocked("com.video.app", day1) is True
    assert limits.is_blocked("com.video.app", day2) is False
    assert limits.remaining_minutes("com.video.app", day2) == 30

    out = limits.record_usage("com.video.app", 5, limits.day_key(day2))
    assert out["minutes_used_today"] == 5
    assert limits.remaining_minutes("com.video.app", day2) == 25


def test_usage_accumulates_within_a_day(limits):
    limits.set_daily_limit("com.video.app", 30)
    limits.record_usage("com.video.app", 10, "2024-01-02")
    out = limits.record_usage("com.video.app", 12.5, "2024-01-02")
    assert out["minutes_used_today"] == 22.5


def test_record_usage_ignores_unlimited_negative_and_past(limits):
    assert limits.record_usage("com.free.app", 10, "2024-01-02") is None
    limits.set_daily_limit("com.video.app", 30)
    assert limits.record_usage("com.video.app", -5, "2024-01-02") is None
    limits.record_usage("com.video.app", 10, "2024-01-03")
    assert limits.record_usage("com.video.app", 10, "2024-01-02") is None
    assert limits.remaining_minutes("com.video.app", datetime(2024, 1, 3, 9, 0)) == 20


def test_daily_limit_management(limits):
    limits.set_daily_limit("a", 10)
    limits.set_daily_limit("b", 20)
    limits.set_daily_limit("a", 15)
    assert {r["app_identifier"]: r["limit_minutes"] for r in limits.list_daily_limits()} == {"a": 15, "b": 20}
    assert limits.remove_daily_limit("a") is True
    assert limits.remove_daily_limit("a") is False
    assert limits.remaining_minutes("a") is None


def test_negative_limit_rejected(limits):
    with pytest.raises(ValueError):
        limits.set_daily_limit("a", -1)


def test_active_and_purged_overrides(limits):
    now = datetime(2024, 1, 2, 12, 0)
    limits.grant_override("a", 5, duration_minutes=5, now=now)
    limits.grant_override("b", 30, duration_minutes=30, now=now)
    later = now + timedelta(minutes=10)
    assert [o["app_identifier"] for o in limits.active_overrides(later)] == ["b"]
    assert limits.purge_expired_overrides(later) == 1
    assert limits.purge_expired_overrides(later) == 0
    assert len(limits.active_overrides(now)) == 1


def test_purchase_override_requires_full_balance(limits, wallet):
    now = datetime(2024, 1, 2, 12, 0)
    denied = limits.purchase_override(wallet, "com.video.app", 10, now=now)
    assert denied["granted"] is False
    assert wallet.get_snapshot().entry_count == 0

    wallet.commit_earn(25, source="test")
    granted = limits.purchase_override(wallet, "com.video.app", 10, now=now)
    assert granted["granted"] is True
    assert wallet.get_snapshot().available_minutes == 15
    assert limits.evaluate("com.video.app", now + timedelta(minutes=9)).reason == "override"

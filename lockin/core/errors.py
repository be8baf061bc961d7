"""Domain exceptions shared across the core.

Each carries a short ``code`` the API returns in the envelope ``error`` field.
"""
from __future__ import annotations


class LockInError(Exception):
    code = "lockin_error"


class UnknownExerciseError(LockInError):
    code = "unknown_exercise"


class ScheduleValidationError(LockInError):
    code = "invalid_schedule"


class UsageSourceUnavailable(LockInError):
    code = "usage_source_unavailable"


class NoActiveSessionError(LockInError):
    code = "no_active_session"

"""Schedule & limit engine exports."""

from .engine import BlockDecision, LimitEngine, parse_hhmm, weekday_index

__all__ = ["LimitEngine", "BlockDecision", "parse_hhmm", "weekday_index"]

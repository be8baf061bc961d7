"""Usage sync exports."""

from .coordinator import SyncCoordinator, SyncResult
from .sources import HttpUsageSource, UnavailableUsageSource, UsageReport, UsageSource, build_usage_source

__all__ = [
    "SyncCoordinator",
    "SyncResult",
    "UsageReport",
    "UsageSource",
    "HttpUsageSource",
    "UnavailableUsageSource",
    "build_usage_source",
]

"""Usage reports and where they come from.

A report is the OS counter's usage-so-far for the day, per app. The core
never measures usage itself; it either pulls a report over HTTP or receives
one pushed by the host.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import httpx
from loguru import logger

from lockin.core.config import Settings, get_settings
from lockin.core.errors import UsageSourceUnavailable


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)):
        ts = datetime.fromtimestamp(float(value), tz=timezone.utc)
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass(frozen=True)
class UsageReport:
    batch_id: str
    timestamp: datetime  # aware UTC
    day_key: str  # YYYY-MM-DD in the configured timezone
    usage: Dict[str, float] = field(default_factory=dict)  # app -> minutes so far today

    def __post_init__(self) -> None:
        for app_identifier, minutes in self.usage.items():
            if not math.isfinite(minutes) or minutes < 0:
                raise ValueError(f"usage for {app_identifier} must be a finite number >= 0, got {minutes!r}")

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "UsageReport":
        raw = payload.get("usage") or {}
        if not isinstance(raw, dict):
            raise ValueError("usage must map app identifiers to minutes")
        usage = {str(k): float(v) for k, v in raw.items()}
        return cls(
            batch_id=str(payload["batch_id"]),
            timestamp=_parse_timestamp(payload["timestamp"]),
            day_key=str(payload["day_key"]),
            usage=usage,
        )

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "timestamp": self.timestamp.isoformat(),
            "day_key": self.day_key,
            "usage": dict(self.usage),
        }


class UsageSource(Protocol):
    async def fetch(self) -> UsageReport:
        """Return the latest report or raise ``UsageSourceUnavailable``."""
        ...


class UnavailableUsageSource:
    """Stand-in when no source is configured: always offline, never zero usage."""

    async def fetch(self) -> UsageReport:
        raise UsageSourceUnavailable("no usage source configured")


class HttpUsageSource:
    def __init__(self, url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client

    async def fetch(self) -> UsageReport:
        try:
            if self._client is not None:
                resp = await self._client.get(self.url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.get(self.url)
            resp.raise_for_status()
            return UsageReport.from_dict(resp.json())
        except httpx.HTTPError as exc:
            logger.warning("Usage source {} unreachable: {}", self.url, exc)
            raise UsageSourceUnavailable(str(exc)) from exc
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Usage source {} returned a malformed report: {}", self.url, exc)
            raise UsageSourceUnavailable(f"malformed report: {exc}") from exc


def build_usage_source(settings: Optional[Settings] = None) -> UsageSource:
    settings = settings or get_settings()
    if settings.usage_source_url:
        return HttpUsageSource(settings.usage_source_url, timeout=settings.usage_source_timeout)
    return UnavailableUsageSource()

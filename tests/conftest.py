from __future__ import annotations

import math
import os
import threading

# Must be set before anything imports lockin.core.config.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["TIMEZONE"] = "UTC"
os.environ.pop("API_KEY", None)
os.environ.pop("USAGE_SOURCE_URL", None)

import pytest

from lockin.core.db import init_db, make_engine, make_session_factory
from lockin.limits.engine import LimitEngine
from lockin.vision.landmarks import Landmark, LandmarkFrame
from lockin.wallet.ledger import WalletLedger


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def state_lock():
    return threading.RLock()


@pytest.fixture
def wallet(session_factory, state_lock):
    return WalletLedger(session_factory, lock=state_lock)


@pytest.fixture
def limits(session_factory, state_lock):
    return LimitEngine(session_factory, lock=state_lock, tz="UTC")


class FrameFactory:
    """Synthetic landmark frames with known geometry."""

    def points(self, named: dict, visibility: float = 1.0) -> LandmarkFrame:
        return LandmarkFrame(
            landmarks={n: Landmark(x=x, y=y, visibility=visibility) for n, (x, y) in named.items()}
        )

    def joint(self, parts, angle: float, sides=("left", "right"), visibility: float = 1.0) -> LandmarkFrame:
        """Three landmarks per side forming ``angle`` degrees at the middle one."""
        a, b, c = parts
        rad = math.radians(angle)
        named = {}
        for side in sides:
            named[f"{side}_{a}"] = (0.6, 0.5)
            named[f"{side}_{b}"] = (0.5, 0.5)
            named[f"{side}_{c}"] = (0.5 + 0.1 * math.cos(rad), 0.5 + 0.1 * math.sin(rad))
        return self.points(named, visibility)

    def body(self, tilt: float = 0.0, sag: float = 0.0, visibility: float = 1.0) -> LandmarkFrame:
        """Shoulders, hips and ankles on a line ``tilt`` degrees off horizontal; ``sag`` bends the hips."""
        rad = math.radians(tilt)
        dx, dy = 0.3 * math.cos(rad), 0.3 * math.sin(rad)
        cx, cy = 0.5, 0.5
        named = {}
        for side in ("left", "right"):
            named[f"{side}_shoulder"] = (cx - dx, cy - dy)
            named[f"{side}_hip"] = (cx, cy + sag)
            named[f"{side}_ankle"] = (cx + dx, cy + dy)
        return self.points(named, visibility)

    def empty(self) -> LandmarkFrame:
        return LandmarkFrame()

    @staticmethod
    def to_payload(frame: LandmarkFrame) -> dict:
        return {
            "landmarks": {
                name: {"x": lm.x, "y": lm.y, "z": lm.z, "visibility": lm.visibility}
                for name, lm in frame.landmarks.items()
            }
        }


@pytest.fixture
def frames() -> FrameFactory:
    return FrameFactory()

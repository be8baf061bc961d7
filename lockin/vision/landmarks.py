"""Landmark frames and the geometry the exercise detectors are built on.

Points are normalized image coordinates (x right, y down) as produced by
MediaPipe Pose; only x/y take part in the measurements.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, NamedTuple, Optional, Sequence, Tuple

import numpy as np

# MediaPipe Pose landmark order, snake_cased.
POSE_LANDMARK_NAMES: Tuple[str, ...] = (
    "nose",
    "left_eye_inner", "left_eye", "left_eye_outer",
    "right_eye_inner", "right_eye", "right_eye_outer",
    "left_ear", "right_ear",
    "mouth_left", "mouth_right",
    "left_shoulder", "right_shoulder",
    "left_elbow", "right_elbow",
    "left_wrist", "right_wrist",
    "left_pinky", "right_pinky",
    "left_index", "right_index",
    "left_thumb", "right_thumb",
    "left_hip", "right_hip",
    "left_knee", "right_knee",
    "left_ankle", "right_ankle",
    "left_heel", "right_heel",
    "left_foot_index", "right_foot_index",
)

SIDES = ("left", "right")


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0

    def xy(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)


@dataclass(frozen=True)
class LandmarkFrame:
    """One captured pose: landmark name -> point with visibility."""

    landmarks: Dict[str, Landmark] = field(default_factory=dict)

    @classmethod
    def from_sequence(cls, points: Sequence[Sequence[float]]) -> "LandmarkFrame":
        """Build a frame from MediaPipe-ordered ``(x, y, z, visibility)`` tuples."""
        named: Dict[str, Landmark] = {}
        for name, pt in zip(POSE_LANDMARK_NAMES, points):
            x, y = float(pt[0]), float(pt[1])
            z = float(pt[2]) if len(pt) > 2 else 0.0
            vis = float(pt[3]) if len(pt) > 3 else 1.0
            named[name] = Landmark(x=x, y=y, z=z, visibility=vis)
        return cls(landmarks=named)

    def visible(self, name: str, threshold: float) -> Optional[Landmark]:
        lm = self.landmarks.get(name)
        if lm is None or lm.visibility < threshold:
            return None
        return lm

    def all_visible(self, names: Iterable[str], threshold: float) -> bool:
        return all(self.visible(n, threshold) is not None for n in names)

    def midpoint(self, part: str) -> np.ndarray:
        """Midpoint of the left/right pair of ``part`` (caller checks visibility)."""
        left = self.landmarks[f"left_{part}"].xy()
        right = self.landmarks[f"right_{part}"].xy()
        return (left + right) / 2.0


class BodyLine(NamedTuple):
    tilt: float  # degrees away from horizontal, 0..90
    alignment_ratio: float


# --- geometry -------------------------------------------------------------

def angle_at(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    """Angle ABC in degrees, vertex at ``b``."""
    v1 = a - b
    v2 = c - b
    norm = np.linalg.norm(v1) * np.linalg.norm(v2)
    if norm == 0:
        return 0.0
    cos = np.clip(np.dot(v1, v2) / norm, -1.0, 1.0)
    return math.degrees(math.acos(cos))


def distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(b - a))


def tilt_from_horizontal(start: np.ndarray, end: np.ndarray) -> float:
    delta = end - start
    raw = abs(math.degrees(math.atan2(delta[1], delta[0])))
    return min(raw, 180.0 - raw)


# --- metrics --------------------------------------------------------------
# Each returns None when the landmarks it needs are not visible.

def _side_angles(frame: LandmarkFrame, joint: Tuple[str, str, str], threshold: float) -> list[float]:
    angles = []
    for side in SIDES:
        names = [f"{side}_{part}" for part in joint]
        if not frame.all_visible(names, threshold):
            continue
        a, b, c = (frame.landmarks[n].xy() for n in names)
        angles.append(angle_at(a, b, c))
    return angles


def joint_angle_mean(frame: LandmarkFrame, joint: Tuple[str, str, str], threshold: float) -> Optional[float]:
    angles = _side_angles(frame, joint, threshold)
    if not angles:
        return None
    return sum(angles) / len(angles)


def joint_angle_min(frame: LandmarkFrame, joint: Tuple[str, str, str], threshold: float) -> Optional[float]:
    angles = _side_angles(frame, joint, threshold)
    return min(angles) if angles else None


def midline_angle(frame: LandmarkFrame, joint: Tuple[str, str, str], threshold: float) -> Optional[float]:
    names = [f"{side}_{part}" for part in joint for side in SIDES]
    if not frame.all_visible(names, threshold):
        return None
    a, b, c = (frame.midpoint(part) for part in joint)
    return angle_at(a, b, c)


def spread_ratio(frame: LandmarkFrame, joint: Tuple[str, ...], threshold: float) -> Optional[float]:
    names = [f"{side}_{part}" for part in ("shoulder", "wrist", "hip", "ankle") for side in SIDES]
    if not frame.all_visible(names, threshold):
        return None
    lm = frame.landmarks
    shoulder_width = distance(lm["left_shoulder"].xy(), lm["right_shoulder"].xy())
    hip_width = distance(lm["left_hip"].xy(), lm["right_hip"].xy())
    if shoulder_width == 0 or hip_width == 0:
        return None
    arms = distance(lm["left_wrist"].xy(), lm["right_wrist"].xy()) / shoulder_width
    legs = distance(lm["left_ankle"].xy(), lm["right_ankle"].xy()) / hip_width
    return (arms + legs) / 2.0


def knee_lift(frame: LandmarkFrame, joint: Tuple[str, ...], threshold: float) -> Optional[float]:
    lifts = []
    for side in SIDES:
        hip = frame.visible(f"{side}_hip", threshold)
        knee = frame.visible(f"{side}_knee", threshold)
        if hip and knee:
            lifts.append(hip.y - knee.y)  # positive when the knee is above the hip
    return max(lifts) if lifts else None


def body_line(frame: LandmarkFrame, threshold: float) -> Optional[BodyLine]:
    names = [f"{side}_{part}" for part in ("shoulder", "hip", "ankle") for side in SIDES]
    if not frame.all_visible(names, threshold):
        return None
    shoulder = frame.midpoint("shoulder")
    hip = frame.midpoint("hip")
    ankle = frame.midpoint("ankle")
    direct = distance(shoulder, ankle)
    ratio = math.inf if direct == 0 else (distance(shoulder, hip) + distance(hip, ankle)) / direct
    return BodyLine(tilt=tilt_from_horizontal(shoulder, ankle), alignment_ratio=ratio)


METRICS = {
    "joint_mean": joint_angle_mean,
    "joint_min": joint_angle_min,
    "midline": midline_angle,
    "spread": spread_ratio,
    "knee_lift": knee_lift,
}

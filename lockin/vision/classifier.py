"""Frame-by-frame exercise classification with rep counting and hold timing.

``update`` is pure: it takes the previous ``ExerciseState`` and returns a new
one, so a session is just a fold over its frames.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Optional

from lockin.core.config import get_settings

from .exercises import INVALID_FEEDBACK, HoldExercise, RepExercise, get_exercise
from .landmarks import METRICS, LandmarkFrame, body_line

POSITIONS = ("up", "down", "neutral", "holding")


@dataclass(frozen=True)
class ExerciseState:
    exercise_type: str
    position: str = "neutral"
    rep_count: int = 0
    hold_seconds: float = 0.0
    elapsed_ms: float = 0.0
    last_transition_ms: float = 0.0
    feedback: str = ""
    current_angle: Optional[float] = None
    in_correct_form: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def create_state(exercise_type: str) -> ExerciseState:
    exercise = get_exercise(exercise_type)
    return ExerciseState(exercise_type=exercise.key, feedback=exercise.start_feedback)


def update(
    state: ExerciseState,
    frame: LandmarkFrame,
    delta_ms: float,
    visibility_threshold: Optional[float] = None,
) -> ExerciseState:
    """Advance ``state`` by one frame that arrived ``delta_ms`` after the previous one."""
    exercise = get_exercise(state.exercise_type)
    threshold = get_settings().visibility_threshold if visibility_threshold is None else visibility_threshold
    delta = max(0.0, float(delta_ms))
    elapsed = state.elapsed_ms + delta

    if isinstance(exercise, HoldExercise):
        return _update_hold(exercise, state, frame, delta, elapsed, threshold)
    return _update_reps(exercise, state, frame, elapsed, threshold)


def _invalid(state: ExerciseState, elapsed: float) -> ExerciseState:
    return replace(
        state,
        elapsed_ms=elapsed,
        feedback=INVALID_FEEDBACK,
        current_angle=None,
        in_correct_form=False,
    )


def _update_reps(
    exercise: RepExercise,
    state: ExerciseState,
    frame: LandmarkFrame,
    elapsed: float,
    threshold: float,
) -> ExerciseState:
    value = METRICS[exercise.metric](frame, exercise.joint, threshold)
    if value is None:
        return _invalid(state, elapsed)

    position = exercise.classify(value)
    rep_count = state.rep_count
    if state.position == "down" and position == "up":
        rep_count += 1
        feedback = exercise.count_feedback.format(count=rep_count)
    else:
        feedback = exercise.feedback[position]

    return replace(
        state,
        position=position,
        rep_count=rep_count,
        elapsed_ms=elapsed,
        last_transition_ms=elapsed if position != state.position else state.last_transition_ms,
        feedback=feedback,
        current_angle=round(value, 2),
        in_correct_form=position != "neutral",
    )


def _hold_metric(exercise: HoldExercise, frame: LandmarkFrame, threshold: float) -> Optional[tuple[float, bool]]:
    """Return (measured value, holding) or None when the pose is not visible."""
    if not frame.all_visible(exercise.required, threshold):
        return None
    if exercise.metric == "body_line":
        line = body_line(frame, threshold)
        if line is None:
            return None
        aligned = exercise.max_alignment_ratio is None or line.alignment_ratio < exercise.max_alignment_ratio
        return line.tilt, aligned and exercise.in_range(line.tilt)
    value = METRICS[exercise.metric](frame, exercise.joint, threshold)
    if value is None:
        return None
    return value, exercise.in_range(value)


def _update_hold(
    exercise: HoldExercise,
    state: ExerciseState,
    frame: LandmarkFrame,
    delta: float,
    elapsed: float,
    threshold: float,
) -> ExerciseState:
    measured = _hold_metric(exercise, frame, threshold)
    if measured is None:
        return _invalid(state, elapsed)

    value, holding = measured
    position = "holding" if holding else "neutral"
    hold_seconds = state.hold_seconds
    if holding and state.position == "holding":
        hold_seconds += delta / 1000.0

    feedback = f"Hold it! {int(hold_seconds)}s" if holding else exercise.neutral_feedback
    return replace(
        state,
        position=position,
        hold_seconds=hold_seconds,
        elapsed_ms=elapsed,
        last_transition_ms=elapsed if position != state.position else state.last_transition_ms,
        feedback=feedback,
        current_angle=round(value, 2),
        in_correct_form=holding,
    )

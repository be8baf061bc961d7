"""Exercise catalog: detection thresholds, feedback copy and reward rates.

Each exercise is either a ``RepExercise`` (counted on a down -> up
transition) or a ``HoldExercise`` (seconds accrued while holding). Both
carry their ``Reward`` so the calculator and the UI read one table.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

from lockin.core.errors import UnknownExerciseError

INVALID_FEEDBACK = "Position your whole body in frame"


@dataclass(frozen=True)
class Reward:
    rate: float  # minutes per rep, or per held second
    minimum: float
    bonus_threshold: float
    bonus_multiplier: float


@dataclass(frozen=True)
class RepExercise:
    key: str
    display_name: str
    metric: str
    joint: Tuple[str, ...]
    # (threshold, position): metric below / above the threshold maps to position
    below: Tuple[float, str]
    above: Tuple[float, str]
    reward: Reward
    start_feedback: str
    count_feedback: str  # formatted with count=
    feedback: Dict[str, str] = field(default_factory=dict)

    kind = "reps"

    def classify(self, value: float) -> str:
        if value < self.below[0]:
            return self.below[1]
        if value > self.above[0]:
            return self.above[1]
        return "neutral"


@dataclass(frozen=True)
class HoldExercise:
    key: str
    display_name: str
    metric: str  # "body_line" or a joint metric name
    reward: Reward
    start_feedback: str
    neutral_feedback: str
    joint: Tuple[str, ...] = ()
    required: Tuple[str, ...] = ()
    min_value: Optional[float] = None
    max_value: Optional[float] = None  # exclusive
    max_alignment_ratio: Optional[float] = None

    kind = "hold"

    def in_range(self, value: float) -> bool:
        if self.min_value is not None and value < self.min_value:
            return False
        if self.max_value is not None and value >= self.max_value:
            return False
        return True


Exercise = Union[RepExercise, HoldExercise]


def _rep(key, name, metric, joint, below, above, reward, start, count, down, up, neutral) -> RepExercise:
    return RepExercise(
        key=key,
        display_name=name,
        metric=metric,
        joint=joint,
        below=below,
        above=above,
        reward=reward,
        start_feedback=start,
        count_feedback=count,
        feedback={"down": down, "up": up, "neutral": neutral},
    )


ARM = ("shoulder", "elbow", "wrist")
LEG = ("hip", "knee", "ankle")
TORSO = ("shoulder", "hip", "knee")

EXERCISES: Dict[str, Exercise] = {
    ex.key: ex
    for ex in (
        _rep("pushups", "Pushups", "joint_mean", ARM, (100.0, "down"), (150.0, "up"),
             Reward(0.5, 3, 20, 1.1), "Get into pushup position",
             "Great! {count} pushups", "Push up!", "Go down", "Lower your chest to the ground"),
        _rep("squats", "Squats", "joint_mean", LEG, (100.0, "down"), (160.0, "up"),
             Reward(0.5, 3, 20, 1.1), "Stand with feet shoulder-width apart",
             "Great! {count} squats", "Stand up!", "Squat down", "Go deeper"),
        _rep("lunges", "Lunges", "joint_min", LEG, (110.0, "down"), (155.0, "up"),
             Reward(0.5, 3, 15, 1.1), "Stand tall, ready to step forward",
             "Great! {count} lunges", "Push back up!", "Step and lunge down", "Bend your front knee more"),
        _rep("shoulder-press", "Shoulder Press", "joint_mean", ARM, (110.0, "down"), (160.0, "up"),
             Reward(0.5, 3, 15, 1.1), "Raise your hands to shoulder height",
             "Great! {count} presses", "Press up!", "Lower to shoulders", "Extend your arms fully"),
        _rep("pull-ups", "Pull-ups", "joint_mean", ARM, (90.0, "up"), (150.0, "down"),
             Reward(0.8, 2, 10, 1.15), "Hang from the bar",
             "Awesome! {count} pull-ups", "Pull up!", "Lower slowly", "Get your chin over the bar"),
        _rep("crunches", "Crunches", "midline", TORSO, (100.0, "up"), (140.0, "down"),
             Reward(0.4, 5, 20, 1.1), "Lie on your back, knees bent",
             "Great! {count} crunches", "Crunch up!", "Lie back down", "Curl your shoulders higher"),
        _rep("leg-raises", "Leg Raises", "midline", TORSO, (110.0, "up"), (160.0, "down"),
             Reward(0.4, 5, 15, 1.1), "Lie flat with legs straight",
             "Great! {count} leg raises", "Raise your legs!", "Lower your legs slowly", "Lift your legs higher"),
        _rep("jumping-jacks", "Jumping Jacks", "spread", (), (1.5, "up"), (2.5, "down"),
             Reward(0.3, 5, 30, 1.1), "Stand with arms at your sides",
             "Great! {count} jumping jacks", "Close back in", "Jump!", "Spread arms and legs wider"),
        _rep("high-knees", "High Knees", "knee_lift", (), (0.05, "down"), (0.05, "up"),
             Reward(0.2, 10, 40, 1.1), "Stand tall and get ready to run in place",
             "Go! {count} high knees", "Knee up!", "Switch legs!", "Lift your knees above your hips"),
        HoldExercise(
            key="plank", display_name="Plank", metric="body_line",
            reward=Reward(0.1, 10, 30, 1.1),
            start_feedback="Get into plank position",
            neutral_feedback="Keep your body straight",
            max_value=30.0, max_alignment_ratio=1.15,
        ),
        HoldExercise(
            key="wall-sit", display_name="Wall Sit", metric="joint_mean", joint=LEG,
            required=("left_shoulder", "right_shoulder"),
            reward=Reward(0.15, 10, 45, 1.1),
            start_feedback="Lean against a wall and slide down",
            neutral_feedback="Bend your knees to about 90 degrees",
            min_value=70.0, max_value=120.0,
        ),
        HoldExercise(
            key="side-plank", display_name="Side Plank", metric="body_line",
            reward=Reward(0.12, 10, 30, 1.1),
            start_feedback="Get into side plank position",
            neutral_feedback="Lift your hips in line with your body",
            min_value=20.0, max_alignment_ratio=1.2,
        ),
    )
}


def get_exercise(exercise_type: str) -> Exercise:
    try:
        return EXERCISES[exercise_type]
    except KeyError:
        raise UnknownExerciseError(exercise_type) from None


def list_exercises() -> list[str]:
    return list(EXERCISES)

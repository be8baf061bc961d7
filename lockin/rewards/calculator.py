"""Convert a finished exercise state into earned screen-time minutes."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal

from lockin.vision.classifier import ExerciseState
from lockin.vision.exercises import HoldExercise, get_exercise


@dataclass(frozen=True)
class RewardResult:
    exercise_type: str
    earned_minutes: float
    meets_minimum: bool

    def to_dict(self) -> dict:
        return asdict(self)


def round1(value: float) -> float:
    """Half-up rounding to one decimal (2.25 -> 2.3, not banker's 2.2)."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def calculate(state: ExerciseState) -> RewardResult:
    exercise = get_exercise(state.exercise_type)
    reward = exercise.reward
    amount = state.hold_seconds if isinstance(exercise, HoldExercise) else state.rep_count

    if amount < reward.minimum:
        return RewardResult(exercise_type=exercise.key, earned_minutes=0.0, meets_minimum=False)

    bonus = reward.bonus_multiplier if amount >= reward.bonus_threshold else 1.0
    earned = round1(amount * reward.rate * bonus)
    return RewardResult(exercise_type=exercise.key, earned_minutes=max(0.0, earned), meets_minimum=True)


def _fmt(value: float) -> str:
    return f"{value:g}"


def describe(exercise_type: str) -> dict:
    """Display info for the exercise picker."""
    exercise = get_exercise(exercise_type)
    reward = exercise.reward
    bonus_pct = round((reward.bonus_multiplier - 1) * 100)
    if isinstance(exercise, HoldExercise):
        summary = f"Earn {_fmt(reward.rate)} min per second (min {_fmt(reward.minimum)}s)"
        bonus = f"+{bonus_pct}% bonus for holding {_fmt(reward.bonus_threshold)}s or more"
    else:
        summary = f"Earn {_fmt(reward.rate)} min per rep (min {_fmt(reward.minimum)} reps)"
        bonus = f"+{bonus_pct}% bonus for {_fmt(reward.bonus_threshold)}+ reps"
    return {
        "exercise_type": exercise.key,
        "name": exercise.display_name,
        "kind": exercise.kind,
        "summary": summary,
        "bonus": bonus,
    }

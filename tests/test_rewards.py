from __future__ import annotations

import pytest

from lockin.core.errors import UnknownExerciseError
from lockin.rewards.calculator import calculate, describe, round1
from lockin.vision.classifier import ExerciseState


def test_twenty_two_pushups_earn_twelve_point_one():
    result = calculate(ExerciseState(exercise_type="pushups", rep_count=22))
    assert result.earned_minutes == 12.1
    assert result.meets_minimum is True


def test_below_minimum_earns_nothing():
    result = calculate(ExerciseState(exercise_type="pushups", rep_count=2))
    assert result.earned_minutes == 0.0
    assert result.meets_minimum is False


def test_bonus_applies_from_threshold():
    assert calculate(ExerciseState(exercise_type="pushups", rep_count=19)).earned_minutes == 9.5
    assert calculate(ExerciseState(exercise_type="pushups", rep_count=20)).earned_minutes == 11.0


def test_pull_up_rates():
    assert calculate(ExerciseState(exercise_type="pull-ups", rep_count=10)).earned_minutes == 9.2


def test_hold_rewards_use_seconds():
    assert calculate(ExerciseState(exercise_type="plank", hold_seconds=12.0)).earned_minutes == 1.2
    assert calculate(ExerciseState(exercise_type="plank", hold_seconds=30.0)).earned_minutes == 3.3
    short = calculate(ExerciseState(exercise_type="plank", hold_seconds=9.9))
    assert short.earned_minutes == 0.0
    assert short.meets_minimum is False


def test_calculate_is_idempotent():
    state = ExerciseState(exercise_type="squats", rep_count=7)
    assert calculate(state) == calculate(state)


def test_round1_is_half_up():
    assert round1(2.25) == 2.3
    assert round1(0.05) == 0.1
    assert round1(12.100000000000001) == 12.1


def test_unknown_exercise():
    with pytest.raises(UnknownExerciseError):
        calculate(ExerciseState(exercise_type="cartwheels", rep_count=10))


def test_describe():
    info = describe("pushups")
    assert info["name"] == "Pushups"
    assert info["summary"] == "Earn 0.5 min per rep (min 3 reps)"
    assert info["bonus"] == "+10% bonus for 20+ reps"
    assert describe("plank")["kind"] == "hold"

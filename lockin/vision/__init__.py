"""Vision package exports."""

from .classifier import ExerciseState, create_state, update
from .exercises import EXERCISES, HoldExercise, RepExercise, get_exercise
from .landmarks import Landmark, LandmarkFrame

__all__ = [
    "ExerciseState",
    "create_state",
    "update",
    "EXERCISES",
    "RepExercise",
    "HoldExercise",
    "get_exercise",
    "Landmark",
    "LandmarkFrame",
]

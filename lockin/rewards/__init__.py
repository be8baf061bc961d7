"""Reward calculation exports."""

from .calculator import RewardResult, calculate, describe, round1

__all__ = ["RewardResult", "calculate", "describe", "round1"]

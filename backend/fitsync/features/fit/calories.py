"""
Split provider "calories expended" into resting and activity parts.

The provider reports total energy expenditure, which includes resting
metabolism. The ledger stores exercise calories only, so an estimated
resting share is subtracted:

    rest_per_step  = resting_baseline / steps_baseline
    estimated_rest = min(steps * rest_per_step * 0.3, calories * 0.4)
    activity       = max(calories - estimated_rest, calories * 0.6)

The 40% cap on the resting deduction (and the matching 60% floor on the
activity share) bounds the estimate for pathological inputs such as zero
steps with high calories or many steps with few calories.
"""

import math

from .schemas import DecomposedCalories

DEFAULT_RESTING_BASELINE_KCAL = 1800.0
DEFAULT_STEPS_BASELINE = 10000

# Fraction of the per-step resting share attributed to walking time
REST_STEP_FACTOR = 0.3
MAX_REST_SHARE = 0.4
MIN_ACTIVITY_SHARE = 0.6


def decompose_calories(
    calories_expended: float,
    steps: int,
    resting_baseline: float = DEFAULT_RESTING_BASELINE_KCAL,
    steps_baseline: int = DEFAULT_STEPS_BASELINE,
) -> DecomposedCalories:
    """
    Estimate activity-only calories.

    Negative inputs are clamped to zero.

    Examples:
        >>> decompose_calories(100, 20000).activity_calories
        60
        >>> decompose_calories(0, 5000).activity_calories
        0
    """
    if steps_baseline <= 0:
        raise ValueError("steps_baseline must be positive")

    calories = max(float(calories_expended or 0), 0.0)
    steps = max(int(steps or 0), 0)

    rest_per_step = max(resting_baseline, 0.0) / steps_baseline
    estimated_rest = min(
        steps * rest_per_step * REST_STEP_FACTOR,
        calories * MAX_REST_SHARE
    )
    activity = max(calories - estimated_rest, calories * MIN_ACTIVITY_SHARE)

    return DecomposedCalories(
        calories_expended=calories,
        steps=steps,
        estimated_rest=estimated_rest,
        activity_calories=math.floor(activity + 0.5),  # half up
    )


class CalorieDecomposer:
    """Decomposer bound to a configured baseline."""

    def __init__(
        self,
        resting_baseline: float = DEFAULT_RESTING_BASELINE_KCAL,
        steps_baseline: int = DEFAULT_STEPS_BASELINE,
    ):
        if steps_baseline <= 0:
            raise ValueError("steps_baseline must be positive")
        self.resting_baseline = resting_baseline
        self.steps_baseline = steps_baseline

    def __call__(self, calories_expended: float, steps: int) -> DecomposedCalories:
        return decompose_calories(
            calories_expended,
            steps,
            resting_baseline=self.resting_baseline,
            steps_baseline=self.steps_baseline,
        )

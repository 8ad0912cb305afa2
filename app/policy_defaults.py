from __future__ import annotations

import copy
from typing import Any, Dict, List


def _revenue_band(
    name: str,
    revenue_min: float,
    revenue_max: float,
    *,
    foh: tuple[int, int],
    kitchen: tuple[int, int],
    kp: tuple[int, int],
    target_cost_percentage: float,
) -> Dict[str, Any]:
    return {
        "name": name,
        "revenue_min": revenue_min,
        "revenue_max": revenue_max,
        "foh_min_staff": foh[0],
        "foh_max_staff": max(foh),
        "kitchen_min_staff": kitchen[0],
        "kitchen_max_staff": max(kitchen),
        "kp_min_staff": kp[0],
        "kp_max_staff": max(kp),
        "target_cost_percentage": target_cost_percentage,
    }


# (start, end, break minutes) keyed by segment; weekday/weekend resolved by policy.segment_times.
SEGMENT_TIMES: Dict[str, Dict[str, tuple[str, str, int]]] = {
    "day": {
        "weekday": ("11:00", "16:00", 30),
        "weekend": ("10:00", "17:00", 30),
    },
    "evening": {
        "weekday": ("17:00", "22:00", 30),
        "weekend": ("16:30", "23:00", 30),
    },
}
SEGMENTS: List[str] = ["day", "evening"]
STAFF_TYPES: List[str] = ["foh", "kitchen", "kp"]
RULE_BREAK_MINUTES = 30

# Simplified UK employer costs.
WEEKLY_NI_THRESHOLD = 175.0
NI_THRESHOLD_HOURS = 40.0
EMPLOYER_NI_RATE = 0.138
EMPLOYER_PENSION_RATE = 0.03
MINIMUM_WAGE_FALLBACK = 11.44
WORKING_DAYS_PER_YEAR = 261
SALARIED_HOURS_PER_DAY = 8.0

MAX_DAYS_PER_WEEK = 6

# Synthesized headcounts when a location has no revenue bands at all.
SYNTHESIZED_HEADCOUNT: Dict[str, Dict[str, float]] = {
    "foh": {"per_revenue": 1500.0, "min": 1, "max": 4},
    "kitchen": {"per_revenue": 2000.0, "min": 1, "max": 3},
}
SYNTHESIZED_KP_REVENUE = 3000.0
SYNTHESIZED_EVENING_REVENUE = 2000.0

DEFAULT_REVENUE_BANDS: List[Dict[str, Any]] = [
    _revenue_band("Very Low Revenue", 0, 500, foh=(1, 2), kitchen=(1, 1), kp=(0, 1), target_cost_percentage=35),
    _revenue_band("Low Revenue", 500, 1000, foh=(2, 3), kitchen=(1, 2), kp=(0, 1), target_cost_percentage=32),
    _revenue_band("Medium Revenue", 1000, 2000, foh=(3, 4), kitchen=(2, 3), kp=(1, 1), target_cost_percentage=28),
    _revenue_band("High Revenue", 2000, 3500, foh=(4, 6), kitchen=(3, 4), kp=(1, 2), target_cost_percentage=25),
    _revenue_band("Very High Revenue", 3500, 10000, foh=(6, 8), kitchen=(4, 6), kp=(1, 2), target_cost_percentage=22),
]

BASELINE_WEEKDAY_REVENUE: Dict[str, float] = {
    "mon": 2000.0,
    "tue": 2200.0,
    "wed": 2500.0,
    "thu": 3000.0,
    "fri": 4500.0,
    "sat": 5500.0,
    "sun": 4000.0,
}

DEFAULT_ALGORITHM_CONFIG: Dict[str, Dict[str, Any]] = {
    "staff_priority": {
        "enabled": False,
        "salaried_weight": 100.0,
        "manager_weight": 50.0,
        "hi_score_weight": 1.0,
    },
    "part_shifts": {
        "enabled": False,
        "min_hours": 3.0,
        "max_hours": 5.0,
        "day_latest_start": "12:00",
        "evening_latest_start": "18:00",
    },
}


def default_revenue_bands() -> List[Dict[str, Any]]:
    return copy.deepcopy(DEFAULT_REVENUE_BANDS)


def build_default_algorithm_config() -> Dict[str, Dict[str, Any]]:
    """Return a deepcopy so callers can mutate the payload safely."""
    return copy.deepcopy(DEFAULT_ALGORITHM_CONFIG)

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from models import JobRole, StaffMember
from policy_defaults import (
    EMPLOYER_NI_RATE,
    EMPLOYER_PENSION_RATE,
    MINIMUM_WAGE_FALLBACK,
    NI_THRESHOLD_HOURS,
    SALARIED_HOURS_PER_DAY,
    WEEKLY_NI_THRESHOLD,
    WORKING_DAYS_PER_YEAR,
)
from roles import normalize_role


HOURLY_NI_THRESHOLD = WEEKLY_NI_THRESHOLD / NI_THRESHOLD_HOURS


@dataclass(frozen=True)
class ShiftCost:
    wage_cost: float
    ni_cost: float
    pension_cost: float
    total_cost: float


def calculate_shift_cost(staff: StaffMember, hours: float) -> ShiftCost:
    """Wage, employer NI and employer pension for ``hours`` worked by ``staff``."""
    wage_rate = float(staff.wage_rate or 0.0)
    wage_cost = wage_rate * hours
    ni_cost = 0.0
    pension_cost = 0.0
    if staff.employment_type != "contractor":
        if wage_rate > HOURLY_NI_THRESHOLD:
            ni_cost = (wage_rate - HOURLY_NI_THRESHOLD) * hours * EMPLOYER_NI_RATE
        pension_cost = wage_cost * EMPLOYER_PENSION_RATE
    return ShiftCost(
        wage_cost=wage_cost,
        ni_cost=ni_cost,
        pension_cost=pension_cost,
        total_cost=wage_cost + ni_cost + pension_cost,
    )


def hourly_rate_from_salary(annual_salary: float, hours_per_day: float = SALARIED_HOURS_PER_DAY) -> float:
    daily_rate = annual_salary / WORKING_DAYS_PER_YEAR
    return daily_rate / hours_per_day


def resolve_wage_rate(staff: StaffMember, role_lookup: Dict[str, JobRole]) -> Tuple[float, Optional[str]]:
    """Return (wage rate, source) where source is None when the staff member's own rate applies.

    Fallback order: salary-derived rate, the job role's default rate, the
    minimum-wage fallback.
    """
    if staff.wage_rate is not None:
        return float(staff.wage_rate), None
    if staff.employment_type == "salary" and staff.annual_salary:
        return hourly_rate_from_salary(staff.annual_salary), "annual salary"
    role = role_lookup.get(normalize_role(staff.job_title))
    if role is not None and role.default_wage_rate:
        return float(role.default_wage_rate), f"job role '{role.title}' default"
    return MINIMUM_WAGE_FALLBACK, "minimum wage fallback"

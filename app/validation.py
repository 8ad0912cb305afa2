from __future__ import annotations

import datetime
import math
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from database import get_latest_schedule, load_request_inputs
from generator.engine import parse_revenue_forecast
from models import ScheduleRequest, ScheduleResult, Shift, StaffMember
from policy_defaults import MAX_DAYS_PER_WEEK

COST_TOLERANCE = 1e-6


def validate_schedule(
    result: ScheduleResult,
    staff: Sequence[StaffMember],
    request: ScheduleRequest,
) -> Dict[str, Any]:
    """Return ``{"checks", "issues", "warnings"}`` for a generated schedule."""
    staff_map = {member.id: member for member in staff}
    forecast = parse_revenue_forecast(request.revenue_forecast)
    shifts = list(result.shifts)

    issues: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []
    issues.extend(_unknown_staff_issues(shifts, staff_map))
    issues.extend(_date_range_issues(shifts, request))
    issues.extend(_double_booking_issues(shifts, staff_map))
    issues.extend(_weekly_hours_issues(shifts, staff_map))
    issues.extend(_working_days_issues(shifts, staff_map))
    issues.extend(_zero_revenue_issues(shifts, forecast))
    issues.extend(_cost_issues(result))
    warnings.extend(_uncovered_day_warnings(shifts, request, forecast))
    warnings.extend(_secondary_role_warnings(shifts, staff_map))
    warnings.extend(
        {"type": "generator", "severity": "warning", "message": message} for message in result.warnings
    )
    return {
        "week_start": request.week_start_date.isoformat(),
        "checks": _build_checklist(shifts, issues),
        "issues": issues,
        "warnings": warnings,
    }


def validate_rota_request(session, request_id: int) -> Dict[str, Any]:
    """Validate the latest stored schedule of a rota request against its inputs."""
    inputs = load_request_inputs(session, request_id)
    request: ScheduleRequest = inputs["request"]
    schedule = get_latest_schedule(session, request_id)
    if schedule is None:
        return {
            "week_start": request.week_start_date.isoformat(),
            "schedule_id": None,
            "checks": [
                {
                    "label": "Schedule exists?",
                    "status": "fail",
                    "details": "No schedule has been generated for this request.",
                }
            ],
            "issues": [
                {
                    "type": "missing_schedule",
                    "severity": "error",
                    "message": "No schedule has been generated for this request.",
                }
            ],
            "warnings": [],
        }
    shifts = tuple(
        Shift(
            staff_id=row.profile_id,
            date=row.date,
            day_of_week=row.day_of_week,
            start_time=row.start_time,
            end_time=row.end_time,
            break_minutes=row.break_minutes,
            job_role_id=row.job_role_id,
            is_secondary_role=row.is_secondary_role,
            hi_score=row.hi_score,
            hours=row.hours,
            wage_cost=row.shift_cost,
            employer_ni_cost=row.employer_ni_cost,
            employer_pension_cost=row.employer_pension_cost,
            total_cost=row.total_cost,
            shift_rule_id=row.shift_rule_id,
            shift_rule_name=row.shift_rule_name,
            staff_type=row.staff_type,
            segment=row.segment,
            is_part_shift=row.is_part_shift,
        )
        for row in schedule.shifts
    )
    result = ScheduleResult(
        shifts=shifts,
        total_cost=schedule.total_cost,
        revenue_forecast=schedule.revenue_forecast,
        cost_percentage=schedule.cost_percentage,
    )
    report = validate_schedule(result, inputs["staff"], request)
    report["schedule_id"] = schedule.id
    return report


def _staff_label(staff_id: str, staff_map: Dict[str, StaffMember]) -> str:
    member = staff_map.get(staff_id)
    if member and member.full_name:
        return member.full_name
    return f"Staff {staff_id}"


def _unknown_staff_issues(shifts: List[Shift], staff_map: Dict[str, StaffMember]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for shift in shifts:
        member = staff_map.get(shift.staff_id)
        if member is None:
            issues.append(
                {
                    "type": "unknown_staff",
                    "severity": "error",
                    "staff_id": shift.staff_id,
                    "date": shift.date.isoformat(),
                    "message": f"Shift on {shift.date.isoformat()} is assigned to unknown staff {shift.staff_id}.",
                }
            )
        elif not member.available:
            issues.append(
                {
                    "type": "availability",
                    "severity": "error",
                    "staff_id": shift.staff_id,
                    "date": shift.date.isoformat(),
                    "message": f"{_staff_label(shift.staff_id, staff_map)} is not available for the rota.",
                }
            )
    return issues


def _date_range_issues(shifts: List[Shift], request: ScheduleRequest) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for shift in shifts:
        if request.week_start_date <= shift.date <= request.week_end_date:
            continue
        issues.append(
            {
                "type": "date_range",
                "severity": "error",
                "staff_id": shift.staff_id,
                "date": shift.date.isoformat(),
                "message": f"Shift on {shift.date.isoformat()} falls outside the requested week.",
            }
        )
    return issues


def _double_booking_issues(shifts: List[Shift], staff_map: Dict[str, StaffMember]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    per_day: Dict[tuple, int] = defaultdict(int)
    for shift in shifts:
        per_day[(shift.staff_id, shift.date)] += 1
    for (staff_id, date_), count in sorted(per_day.items(), key=lambda item: (item[0][1], item[0][0])):
        if count <= 1:
            continue
        issues.append(
            {
                "type": "double_booking",
                "severity": "error",
                "staff_id": staff_id,
                "date": date_.isoformat(),
                "message": f"{_staff_label(staff_id, staff_map)} has {count} shifts on {date_.isoformat()}.",
            }
        )
    return issues


def _weekly_hours_issues(shifts: List[Shift], staff_map: Dict[str, StaffMember]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    hours: Dict[str, float] = defaultdict(float)
    for shift in shifts:
        hours[shift.staff_id] += shift.hours
    for staff_id, total in hours.items():
        member = staff_map.get(staff_id)
        if member is None:
            continue
        limit = member.max_hours_per_week
        if total > limit + COST_TOLERANCE:
            issues.append(
                {
                    "type": "weekly_hours",
                    "severity": "error",
                    "staff_id": staff_id,
                    "hours": round(total, 2),
                    "limit": limit,
                    "message": f"{_staff_label(staff_id, staff_map)} is scheduled {round(total, 2)} hours "
                    f"(exceeds {limit:g}-hour limit).",
                }
            )
    return issues


def _working_days_issues(shifts: List[Shift], staff_map: Dict[str, StaffMember]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    days: Dict[str, set] = defaultdict(set)
    for shift in shifts:
        days[shift.staff_id].add(shift.date)
    for staff_id, dates in days.items():
        if len(dates) <= MAX_DAYS_PER_WEEK:
            continue
        issues.append(
            {
                "type": "working_days",
                "severity": "error",
                "staff_id": staff_id,
                "days": len(dates),
                "message": f"{_staff_label(staff_id, staff_map)} works {len(dates)} days "
                f"(limit {MAX_DAYS_PER_WEEK}).",
            }
        )
    return issues


def _zero_revenue_issues(shifts: List[Shift], forecast: Dict[datetime.date, float]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    flagged = set()
    for shift in shifts:
        if forecast.get(shift.date, 0.0) > 0 or shift.date in flagged:
            continue
        flagged.add(shift.date)
        issues.append(
            {
                "type": "zero_revenue",
                "severity": "error",
                "date": shift.date.isoformat(),
                "message": f"Shifts are scheduled on {shift.date.isoformat()} which has no forecast revenue.",
            }
        )
    return issues


def _cost_issues(result: ScheduleResult) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for shift in result.shifts:
        parts = shift.wage_cost + shift.employer_ni_cost + shift.employer_pension_cost
        if not math.isclose(parts, shift.total_cost, rel_tol=1e-9, abs_tol=COST_TOLERANCE):
            issues.append(
                {
                    "type": "shift_cost",
                    "severity": "error",
                    "staff_id": shift.staff_id,
                    "date": shift.date.isoformat(),
                    "message": f"Shift cost breakdown for {shift.staff_id} on {shift.date.isoformat()} "
                    f"does not add up ({parts:.2f} vs {shift.total_cost:.2f}).",
                }
            )
    summed = sum(shift.total_cost for shift in result.shifts)
    if not math.isclose(summed, result.total_cost, rel_tol=1e-9, abs_tol=COST_TOLERANCE):
        issues.append(
            {
                "type": "total_cost",
                "severity": "error",
                "message": f"Schedule total {result.total_cost:.2f} does not match the sum of shift costs {summed:.2f}.",
            }
        )
    return issues


def _uncovered_day_warnings(
    shifts: List[Shift],
    request: ScheduleRequest,
    forecast: Dict[datetime.date, float],
) -> List[Dict[str, Any]]:
    warnings: List[Dict[str, Any]] = []
    scheduled = {shift.date for shift in shifts}
    for date_ in request.dates():
        if forecast.get(date_, 0.0) <= 0 or date_ in scheduled:
            continue
        warnings.append(
            {
                "type": "coverage",
                "severity": "warning",
                "date": date_.isoformat(),
                "message": f"No shifts scheduled on {date_.strftime('%a %Y-%m-%d')} despite forecast revenue.",
            }
        )
    return warnings


def _secondary_role_warnings(shifts: List[Shift], staff_map: Dict[str, StaffMember]) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = defaultdict(int)
    for shift in shifts:
        if shift.is_secondary_role:
            counts[shift.staff_id] += 1
    return [
        {
            "type": "secondary_role",
            "severity": "info",
            "staff_id": staff_id,
            "shifts": count,
            "message": f"{_staff_label(staff_id, staff_map)} covers {count} shift(s) outside their main role.",
        }
        for staff_id, count in counts.items()
    ]


def _build_checklist(shifts: List[Shift], issues: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    issue_types = {issue["type"] for issue in issues}

    def _check(label: str, types: set, details: Optional[str] = None) -> Dict[str, Any]:
        failed = bool(issue_types & types)
        return {
            "label": label,
            "status": "fail" if failed else "pass",
            "details": details if failed and details else "",
        }

    return [
        {
            "label": "Shifts generated?",
            "status": "pass" if shifts else "fail",
            "details": "" if shifts else "The schedule has no shifts.",
        },
        _check("One shift per person per day?", {"double_booking"}, "Someone is booked twice on one day."),
        _check("Weekly hours within limits?", {"weekly_hours"}, "Weekly hour caps are exceeded."),
        _check("Working days within limits?", {"working_days"}, f"Someone works more than {MAX_DAYS_PER_WEEK} days."),
        _check("Closed days left empty?", {"zero_revenue"}, "Shifts exist on days with no revenue."),
        _check("Costs add up?", {"shift_cost", "total_cost"}, "Shift or schedule costs are inconsistent."),
        _check("Staff known and available?", {"unknown_staff", "availability", "date_range"}),
    ]

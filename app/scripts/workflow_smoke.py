from __future__ import annotations

import argparse
import datetime
import sys
from pathlib import Path
from typing import Dict, List

from sqlalchemy import select

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from database import (  # noqa: E402
    JobRoleRecord,
    SessionLocal,
    ShiftRuleRecord,
    TeamMember,
    approve_rota_request,
    create_rota_request,
    init_database,
    seed_default_thresholds,
)
from exporter import export_schedule_csv  # noqa: E402
from generator.api import generate_schedule_for_request  # noqa: E402
from policy import baseline_revenue_forecast  # noqa: E402
from validation import validate_rota_request  # noqa: E402


def _default_week_start(today: datetime.date | None = None) -> datetime.date:
    base = today or datetime.date.today()
    delta = (7 - base.weekday()) % 7
    delta = delta or 7
    return base + datetime.timedelta(days=delta)


def _job_role_specs() -> List[Dict[str, object]]:
    return [
        {"title": "Team Member", "is_kitchen": False, "default_wage_rate": 11.44},
        {"title": "Server", "is_kitchen": False, "default_wage_rate": 11.5},
        {"title": "Bartender", "is_kitchen": False, "default_wage_rate": 12.0},
        {"title": "Chef", "is_kitchen": True, "default_wage_rate": 13.5},
        {"title": "Kitchen Porter", "is_kitchen": True, "default_wage_rate": 11.44},
        {"title": "General Manager", "is_kitchen": False, "default_wage_rate": None},
    ]


def _team_specs() -> List[Dict[str, object]]:
    return [
        {"first_name": "Ava", "last_name": "Clarke", "job_title": "General Manager", "employment_type": "salary",
         "annual_salary": 38000.0, "max_hours_per_week": 48.0, "hi_score": 90.0},
        {"first_name": "Noah", "last_name": "Patel", "job_title": "Server", "wage_rate": 11.8, "hi_score": 82.0,
         "secondary_job_roles": "Bartender"},
        {"first_name": "Mia", "last_name": "Jones", "job_title": "Server", "wage_rate": 11.6, "hi_score": 75.0},
        {"first_name": "Leo", "last_name": "Evans", "job_title": "Team Member", "hi_score": 64.0},
        {"first_name": "Isla", "last_name": "Wright", "job_title": "Bartender", "wage_rate": 12.2, "hi_score": 71.0},
        {"first_name": "Omar", "last_name": "Hughes", "job_title": "Server", "wage_rate": 11.5, "hi_score": 58.0,
         "max_hours_per_week": 24.0},
        {"first_name": "Ruby", "last_name": "Khan", "job_title": "Chef", "wage_rate": 14.5, "hi_score": 88.0},
        {"first_name": "Jack", "last_name": "Taylor", "job_title": "Chef", "wage_rate": 13.8, "hi_score": 70.0},
        {"first_name": "Ella", "last_name": "Brown", "job_title": "Chef", "employment_type": "contractor",
         "wage_rate": 18.0, "hi_score": 66.0},
        {"first_name": "Sam", "last_name": "Green", "job_title": "Kitchen Porter", "hi_score": 60.0},
        {"first_name": "Zara", "last_name": "Hall", "job_title": "Kitchen Porter", "wage_rate": 11.44, "hi_score": 52.0,
         "available_for_rota": False},
    ]


def seed_location(session, location: str) -> bool:
    """Create demo roles, staff, Sunday shift rules and default bands; skipped when the location has staff."""
    existing = session.scalars(select(TeamMember).where(TeamMember.location == location)).first()
    if existing:
        return False
    roles: Dict[str, JobRoleRecord] = {}
    for spec in _job_role_specs():
        role = JobRoleRecord(location=location, **spec)
        session.add(role)
        roles[str(spec["title"])] = role
    for spec in _team_specs():
        session.add(TeamMember(location=location, **spec))
    session.flush()
    for name, start, end, role_title, count in (
        ("Sunday lunch floor", "11:00", "17:00", "Server", 2),
        ("Sunday lunch kitchen", "10:30", "17:00", "Chef", 2),
        ("Sunday close", "17:00", "22:30", "Bartender", 1),
    ):
        session.add(
            ShiftRuleRecord(
                location=location,
                name=name,
                day_of_week="sun",
                start_time=start,
                end_time=end,
                min_staff=count,
                max_staff=count,
                job_role_id=roles[role_title].id,
            )
        )
    session.commit()
    seed_default_thresholds(session, location)
    return True


def run_workflow(week_start: datetime.date, *, location: str, actor: str) -> None:
    with SessionLocal() as session:
        if seed_location(session, location):
            print(f"[workflow] Seeded demo data for location '{location}'.")
        forecast = baseline_revenue_forecast(week_start)
        request = create_rota_request(session, location, week_start, forecast, created_by=actor)
        request_id = request.id
        print(f"[workflow] Created rota request #{request_id} for {week_start} (revenue {sum(forecast.values()):.2f}).")

    summary = generate_schedule_for_request(SessionLocal, request_id, actor)
    print(
        f"[workflow] Generated {len(summary['shifts'])} shifts; cost {summary['total_cost']:.2f} "
        f"({summary['cost_percentage']:.1f}% of revenue)."
    )
    for day in summary["days"]:
        print(
            f"[workflow]   {day['date']} {day['day_of_week']:<9} {day['source']:<11} "
            f"shifts={day['shift_count']:<2} cost={day['cost']:.2f}"
        )
    for message in summary["warnings"]:
        print(f"[workflow] warning: {message}")

    with SessionLocal() as session:
        report = validate_rota_request(session, request_id)
        print(f"[workflow] Validation issues: {len(report['issues'])}, warnings: {len(report['warnings'])}.")
        for issue in report["issues"]:
            print(f"[workflow]   issue: {issue['message']}")
        schedule = approve_rota_request(session, request_id, approved_by=actor)
        print(f"[workflow] Published schedule #{schedule.id} as {schedule.published_by}.")
        names = {
            str(member.id): f"{member.first_name} {member.last_name}"
            for member in session.scalars(select(TeamMember).where(TeamMember.location == location))
        }
        path = export_schedule_csv(session, request_id, staff_names=names)
        print(f"[workflow] Exported CSV to {path}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Run an end-to-end smoke test that seeds a location, requests a rota from the baseline "
            "forecast, generates and validates it, publishes it and exports a CSV."
        )
    )
    parser.add_argument(
        "--week-start",
        help="ISO date (YYYY-MM-DD) for the Monday to target. Defaults to next Monday.",
    )
    parser.add_argument("--location", default="demo", help="Location key to seed and schedule.")
    parser.add_argument("--actor", default="workflow_smoke", help="Audit trail actor name.")
    return parser.parse_args()


def main() -> None:
    init_database()
    args = parse_args()
    if args.week_start:
        try:
            week_start = datetime.date.fromisoformat(args.week_start)
        except ValueError as exc:
            raise SystemExit(f"Invalid --week-start value: {exc}") from exc
    else:
        week_start = _default_week_start()
    if week_start.weekday() != 0:
        week_start = week_start - datetime.timedelta(days=week_start.weekday())
    print(f"[workflow] Target week start: {week_start}")
    run_workflow(week_start, location=args.location, actor=args.actor)


if __name__ == "__main__":
    main()

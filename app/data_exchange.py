from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select

from database import (
    JobRoleRecord,
    RevenueThresholdRecord,
    ShiftRuleRecord,
    TeamMember,
    get_active_policy,
    upsert_policy,
)
from exporter import DATA_DIR as EXPORT_DIR
from models import JobRole, RevenueThreshold, ScheduleInputError, ShiftRule, StaffMember
from policy import parse_time_label, resolve_rota_config

logger = logging.getLogger(__name__)

EXPORT_DIR.mkdir(parents=True, exist_ok=True)


def _timestamp() -> str:
    return datetime.datetime.now().strftime("%Y%m%d_%H%M%S")


def export_location_dataset(session, location: str, *, directory: Optional[Path] = None) -> Path:
    """Write a location's staff, job roles, shift rules, thresholds and algorithm config to JSON."""
    roles = session.scalars(
        select(JobRoleRecord).where(JobRoleRecord.location == location).order_by(JobRoleRecord.id.asc())
    ).all()
    members = session.scalars(
        select(TeamMember).where(TeamMember.location == location).order_by(TeamMember.id.asc())
    ).all()
    rules = session.scalars(
        select(ShiftRuleRecord).where(ShiftRuleRecord.location == location).order_by(ShiftRuleRecord.id.asc())
    ).all()
    bands = session.scalars(
        select(RevenueThresholdRecord)
        .where(RevenueThresholdRecord.location == location)
        .order_by(RevenueThresholdRecord.revenue_min.asc())
    ).all()
    policy = get_active_policy(session, location)

    payload = {
        "generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "location": location,
        "job_roles": [
            {"title": role.title, "is_kitchen": role.is_kitchen, "default_wage_rate": role.default_wage_rate}
            for role in roles
        ],
        "team_members": [
            {key: value for key, value in member.as_record().items() if key != "id"} for member in members
        ],
        "shift_rules": [
            {
                "name": rule.name,
                "day_of_week": rule.day_of_week,
                "start_time": rule.start_time,
                "end_time": rule.end_time,
                "min_staff": rule.min_staff,
                "max_staff": rule.max_staff,
                "job_role": rule.job_role.title if rule.job_role else None,
                "archived": rule.archived,
            }
            for rule in rules
        ],
        "revenue_thresholds": [
            {key: value for key, value in band.as_record().items() if key != "id"} for band in bands
        ],
        "algorithm_config": policy.params_dict() if policy else {},
    }
    target_dir = directory or EXPORT_DIR
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = target_dir / f"rota_inputs_{location}_{_timestamp()}.json"
    filename.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return filename


def import_location_dataset(
    session,
    location: str,
    file_path: Path,
    *,
    edited_by: str = "import",
) -> Dict[str, Any]:
    """Load a dataset written by :func:`export_location_dataset` into ``location``.

    Job roles and team members are upserted by title and name; shift rules and
    revenue thresholds replace the location's existing rows. Entries that fail
    record validation are skipped and reported.
    """
    data = json.loads(file_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Dataset file must be a JSON object.")
    counts = {"job_roles": 0, "team_members": 0, "shift_rules": 0, "revenue_thresholds": 0}
    skipped: List[str] = []

    def _skip(kind: str, entry: Any, exc: Exception) -> None:
        message = f"{kind}: {exc}"
        logger.warning("Skipping %s entry %r: %s", kind, entry, exc)
        skipped.append(message)

    roles_by_title: Dict[str, JobRoleRecord] = {
        role.title.strip().lower(): role
        for role in session.scalars(select(JobRoleRecord).where(JobRoleRecord.location == location))
    }
    for entry in data.get("job_roles", []):
        try:
            parsed = JobRole.from_record({"id": "import", **entry})
        except (ScheduleInputError, TypeError) as exc:
            _skip("job_roles", entry, exc)
            continue
        record = roles_by_title.get(parsed.title.lower())
        if record is None:
            record = JobRoleRecord(location=location, title=parsed.title)
            session.add(record)
            roles_by_title[parsed.title.lower()] = record
        record.is_kitchen = parsed.is_kitchen
        record.default_wage_rate = parsed.default_wage_rate
        counts["job_roles"] += 1
    session.flush()

    for entry in data.get("team_members", []):
        try:
            parsed = StaffMember.from_record({"id": "import", **entry})
        except (ScheduleInputError, TypeError) as exc:
            _skip("team_members", entry, exc)
            continue
        member = session.scalars(
            select(TeamMember).where(
                TeamMember.location == location,
                TeamMember.first_name == parsed.first_name,
                TeamMember.last_name == parsed.last_name,
            )
        ).first()
        if member is None:
            member = TeamMember(location=location, first_name=parsed.first_name, last_name=parsed.last_name)
            session.add(member)
        member.job_title = parsed.job_title
        member.role_list = parsed.secondary_job_roles
        member.wage_rate = parsed.wage_rate
        member.annual_salary = parsed.annual_salary
        member.employment_type = parsed.employment_type
        member.max_hours_per_week = parsed.max_hours_per_week
        member.available_for_rota = parsed.available
        member.hi_score = parsed.hi_score
        counts["team_members"] += 1

    if "shift_rules" in data:
        session.execute(delete(ShiftRuleRecord).where(ShiftRuleRecord.location == location))
        for entry in data.get("shift_rules", []):
            try:
                parsed = ShiftRule.from_record({"id": "import", **entry})
                parse_time_label(parsed.start_time, record=parsed.label)
                parse_time_label(parsed.end_time, record=parsed.label)
            except (ScheduleInputError, TypeError) as exc:
                _skip("shift_rules", entry, exc)
                continue
            role_title = (entry.get("job_role") or "").strip().lower()
            role = roles_by_title.get(role_title) if role_title else None
            session.add(
                ShiftRuleRecord(
                    location=location,
                    name=parsed.name,
                    day_of_week=parsed.day_of_week,
                    start_time=str(parsed.start_time),
                    end_time=str(parsed.end_time),
                    min_staff=parsed.min_staff,
                    max_staff=parsed.max_staff,
                    job_role_id=role.id if role else None,
                    archived=parsed.archived,
                )
            )
            counts["shift_rules"] += 1

    if "revenue_thresholds" in data:
        session.execute(delete(RevenueThresholdRecord).where(RevenueThresholdRecord.location == location))
        for entry in data.get("revenue_thresholds", []):
            try:
                parsed = RevenueThreshold.from_record(entry)
            except (ScheduleInputError, TypeError) as exc:
                _skip("revenue_thresholds", entry, exc)
                continue
            session.add(
                RevenueThresholdRecord(
                    location=location,
                    name=parsed.name,
                    revenue_min=parsed.revenue_min,
                    revenue_max=parsed.revenue_max,
                    foh_min_staff=parsed.foh_min_staff,
                    foh_max_staff=parsed.foh_max_staff,
                    kitchen_min_staff=parsed.kitchen_min_staff,
                    kitchen_max_staff=parsed.kitchen_max_staff,
                    kp_min_staff=parsed.kp_min_staff,
                    kp_max_staff=parsed.kp_max_staff,
                    target_cost_percentage=parsed.target_cost_percentage,
                )
            )
            counts["revenue_thresholds"] += 1
    session.commit()

    config = data.get("algorithm_config")
    if isinstance(config, dict) and config:
        resolve_rota_config(config)
        upsert_policy(session, location, config, edited_by=edited_by)
    return {"location": location, "imported": counts, "skipped": skipped}

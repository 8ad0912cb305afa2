from __future__ import annotations

import datetime
import json
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from database import (  # noqa: E402
    Base,
    JobRoleRecord,
    RevenueThresholdRecord,
    ShiftRuleRecord,
    TeamMember,
    create_rota_request,
    get_active_policy,
    seed_default_thresholds,
    upsert_policy,
)
from data_exchange import export_location_dataset, import_location_dataset  # noqa: E402
from exporter import export_schedule_csv, schedule_csv_text  # noqa: E402
from generator.api import generate_schedule_for_request  # noqa: E402


@pytest.fixture()
def memory_db(tmp_path):
    """Single in-memory engine; exports land in a temp folder."""
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    session = Session()
    try:
        yield {"session": session, "factory": Session, "tmp": tmp_path}
    finally:
        session.close()
        engine.dispose()


def _seed_location(session, location: str = "harbour") -> None:
    server = JobRoleRecord(location=location, title="Server", default_wage_rate=11.0)
    chef = JobRoleRecord(location=location, title="Chef", is_kitchen=True)
    session.add_all([server, chef])
    session.flush()
    member = TeamMember(location=location, first_name="Ana", last_name="Lopez", job_title="Server", wage_rate=12.5, hi_score=8)
    member.role_list = ["Bartender"]
    session.add(member)
    session.add(TeamMember(location=location, first_name="Cy", last_name="Ray", job_title="Chef", employment_type="contractor"))
    session.add(
        ShiftRuleRecord(
            location=location,
            name="Monday lunch",
            day_of_week="mon",
            start_time="11:00",
            end_time="16:00",
            min_staff=1,
            max_staff=2,
            job_role_id=server.id,
        )
    )
    session.commit()
    seed_default_thresholds(session, location)
    upsert_policy(session, location, {"staff_priority": {"enabled": True}}, edited_by="tests")


def test_dataset_export_then_import_into_new_location(memory_db) -> None:
    session = memory_db["session"]
    _seed_location(session)

    path = export_location_dataset(session, "harbour", directory=memory_db["tmp"])
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["location"] == "harbour"
    assert [role["title"] for role in data["job_roles"]] == ["Server", "Chef"]
    assert data["shift_rules"][0]["job_role"] == "Server"
    assert len(data["revenue_thresholds"]) == 5
    assert data["algorithm_config"] == {"staff_priority": {"enabled": True}}

    report = import_location_dataset(session, "riverside", path)
    assert report["imported"] == {"job_roles": 2, "team_members": 2, "shift_rules": 1, "revenue_thresholds": 5}
    assert report["skipped"] == []

    ana = session.scalars(select(TeamMember).where(TeamMember.location == "riverside", TeamMember.first_name == "Ana")).one()
    assert ana.wage_rate == 12.5
    assert ana.role_list == ["Bartender"]
    rule = session.scalars(select(ShiftRuleRecord).where(ShiftRuleRecord.location == "riverside")).one()
    assert rule.job_role is not None and rule.job_role.location == "riverside"
    assert get_active_policy(session, "riverside").params_dict() == {"staff_priority": {"enabled": True}}


def test_import_updates_existing_rows_and_skips_bad_entries(memory_db) -> None:
    session = memory_db["session"]
    _seed_location(session)
    dataset = {
        "job_roles": [{"title": "Server", "is_kitchen": False, "default_wage_rate": 11.75}],
        "team_members": [
            {"first_name": "Ana", "last_name": "Lopez", "job_title": "Server", "wage_rate": 13.0},
            {"first_name": "Bad", "last_name": "Row", "job_title": "Server", "employment_type": "volunteer"},
        ],
        "shift_rules": [
            {"name": "Late", "day_of_week": "fri", "start_time": "18:00", "end_time": "23:30", "job_role": "Server"},
            {"name": "Broken", "day_of_week": "fri", "start_time": "26:00", "end_time": "23:30"},
        ],
    }
    path = memory_db["tmp"] / "dataset.json"
    path.write_text(json.dumps(dataset), encoding="utf-8")

    report = import_location_dataset(session, "harbour", path)

    assert report["imported"]["team_members"] == 1
    assert report["imported"]["shift_rules"] == 1
    assert len(report["skipped"]) == 2
    roles = session.scalars(select(JobRoleRecord).where(JobRoleRecord.location == "harbour")).all()
    assert len(roles) == 2
    assert {role.title: role.default_wage_rate for role in roles}["Server"] == 11.75
    members = session.scalars(select(TeamMember).where(TeamMember.location == "harbour")).all()
    assert len(members) == 2
    rules = session.scalars(select(ShiftRuleRecord).where(ShiftRuleRecord.location == "harbour")).all()
    assert [rule.name for rule in rules] == ["Late"]
    # Thresholds were not part of the file and stay untouched.
    assert len(session.scalars(select(RevenueThresholdRecord)).all()) == 5


def test_schedule_csv_export(memory_db) -> None:
    session = memory_db["session"]
    _seed_location(session)
    request = create_rota_request(session, "harbour", datetime.date(2024, 4, 1), {"2024-04-01": 1500})
    generate_schedule_for_request(memory_db["factory"], request.id, "tests")
    session.expire_all()

    path = export_schedule_csv(session, request.id, staff_names={"1": "Ana Lopez"}, directory=memory_db["tmp"])
    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0].startswith("date,day_of_week,profile_id,staff_name")
    assert len(lines) == 2
    assert "Ana Lopez" in lines[1]
    assert ",56.25," in lines[1]


def test_csv_text_without_shifts_has_header_only() -> None:
    text = schedule_csv_text({"shifts": []})
    assert text.strip().split(",")[0] == "date"
    assert len(text.strip().splitlines()) == 1

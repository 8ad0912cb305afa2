from __future__ import annotations

import datetime
import json
import sys
import unittest
from pathlib import Path

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from database import (  # noqa: E402
    AuditLog,
    Base,
    JobRoleRecord,
    RotaRequest,
    RotaSchedule,
    RotaScheduleShift,
    ShiftRuleRecord,
    TeamMember,
    approve_rota_request,
    create_rota_request,
    delete_rota_request,
    get_schedule_summary,
    list_revenue_thresholds,
    load_request_inputs,
    reject_rota_request,
    seed_default_thresholds,
    upsert_policy,
)
from generator.api import generate_schedule_for_request  # noqa: E402
from models import RevenueForecastError, TimeParseError  # noqa: E402
from validation import validate_rota_request  # noqa: E402

MONDAY = datetime.date(2024, 4, 1)
LOCATION = "harbour"


class RotaWorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)
        self.session = self.session_factory()
        self.server = JobRoleRecord(location=LOCATION, title="Server", default_wage_rate=11.0)
        self.chef = JobRoleRecord(location=LOCATION, title="Chef", is_kitchen=True)
        self.session.add_all([self.server, self.chef])
        self.session.add_all(
            [
                TeamMember(location=LOCATION, first_name="Ana", last_name="Lopez", job_title="Server", wage_rate=12.0, hi_score=9),
                TeamMember(location=LOCATION, first_name="Ben", last_name="Ode", job_title="Server", hi_score=7),
                TeamMember(location=LOCATION, first_name="Cy", last_name="Ray", job_title="Chef", wage_rate=14.0, hi_score=5),
                TeamMember(location="elsewhere", first_name="Di", last_name="Far", job_title="Server", wage_rate=12.0),
            ]
        )
        self.session.flush()
        self.rule = ShiftRuleRecord(
            location=LOCATION,
            name="Monday lunch",
            day_of_week="mon",
            start_time="11:00",
            end_time="16:00",
            min_staff=2,
            max_staff=2,
            job_role_id=self.server.id,
        )
        self.session.add(self.rule)
        self.session.commit()

    def tearDown(self) -> None:
        self.session.close()
        self.engine.dispose()

    def _request(self, forecast=None) -> int:
        request = create_rota_request(
            self.session,
            LOCATION,
            MONDAY,
            forecast if forecast is not None else {MONDAY.isoformat(): 1000},
            created_by="tests",
        )
        return request.id

    def _status(self, request_id: int) -> str:
        self.session.expire_all()
        return self.session.get(RotaRequest, request_id).status

    def test_request_defaults_to_seven_day_week(self) -> None:
        request_id = self._request()
        request = self.session.get(RotaRequest, request_id)
        self.assertEqual(request.week_end_date, MONDAY + datetime.timedelta(days=6))
        self.assertEqual(request.status, "pending")
        self.assertEqual(request.forecast_dict(), {"2024-04-01": 1000})

    def test_load_request_inputs_scopes_to_location(self) -> None:
        inputs = load_request_inputs(self.session, self._request())
        self.assertEqual(len(inputs["staff"]), 3)
        self.assertEqual({member.job_title for member in inputs["staff"]}, {"Server", "Chef"})
        rule = inputs["shift_rules"][0]
        self.assertEqual(rule.job_role.title, "Server")
        self.assertEqual(rule.job_role_id, str(self.server.id))

    def test_generate_persists_schedule_and_audits(self) -> None:
        request_id = self._request()
        summary = generate_schedule_for_request(self.session_factory, request_id, "manager")

        self.assertEqual(len(summary["shifts"]), 2)
        self.assertEqual(summary["validation"]["issues"], [])
        self.assertEqual(self._status(request_id), "generated")
        stored = get_schedule_summary(self.session, request_id)
        self.assertEqual(len(stored["shifts"]), 2)
        self.assertAlmostEqual(stored["total_cost"], summary["total_cost"])
        self.assertEqual(stored["status"], "draft")
        # Ben has no wage rate and falls back to the Server role default.
        costs = {shift["profile_id"]: shift["shift_cost"] for shift in stored["shifts"]}
        self.assertAlmostEqual(sorted(costs.values())[0], 11.0 * 4.5)
        actions = list(self.session.scalars(select(AuditLog.action)))
        self.assertIn("ROTA_GENERATE", actions)

    def test_regenerate_replaces_previous_schedule(self) -> None:
        request_id = self._request()
        generate_schedule_for_request(self.session_factory, request_id, "manager")
        generate_schedule_for_request(self.session_factory, request_id, "manager")
        self.session.expire_all()
        self.assertEqual(self.session.scalar(select(func.count(RotaSchedule.id))), 1)
        self.assertEqual(self.session.scalar(select(func.count(RotaScheduleShift.id))), 2)

    def test_malformed_forecast_marks_request_failed(self) -> None:
        request_id = self._request({MONDAY.isoformat(): "plenty"})
        with self.assertRaises(RevenueForecastError):
            generate_schedule_for_request(self.session_factory, request_id, "manager")
        self.assertEqual(self._status(request_id), "failed")
        self.assertIsNone(get_schedule_summary(self.session, request_id))
        log = self.session.scalars(select(AuditLog).where(AuditLog.action == "ROTA_GENERATE_FAILED")).one()
        self.assertIn("plenty", json.loads(log.payloadJSON)["error"])

    def test_malformed_rule_time_marks_request_failed(self) -> None:
        self.rule.end_time = "4pm"
        self.session.commit()
        request_id = self._request()
        with self.assertRaises(TimeParseError):
            generate_schedule_for_request(self.session_factory, request_id, "manager")
        self.assertEqual(self._status(request_id), "failed")

    def test_location_policy_is_applied(self) -> None:
        self.rule.min_staff = 1
        self.session.commit()
        self.session.add(
            TeamMember(
                location=LOCATION,
                first_name="Eve",
                last_name="Boss",
                job_title="Server",
                employment_type="salary",
                annual_salary=30000.0,
                hi_score=1,
            )
        )
        self.session.commit()
        request_id = self._request()

        summary = generate_schedule_for_request(self.session_factory, request_id, "manager")
        self.assertEqual(summary["shifts"][0]["hi_score"], 9)

        upsert_policy(self.session, LOCATION, {"staff_priority": {"enabled": True}}, edited_by="tests")
        summary = generate_schedule_for_request(self.session_factory, request_id, "manager")
        self.assertEqual(summary["shifts"][0]["hi_score"], 1)

    def test_approve_publishes_schedule(self) -> None:
        request_id = self._request()
        with self.assertRaises(ValueError):
            approve_rota_request(self.session, request_id, approved_by="boss")
        generate_schedule_for_request(self.session_factory, request_id, "manager")
        self.session.expire_all()
        schedule = approve_rota_request(self.session, request_id, approved_by="boss")
        self.assertEqual(schedule.status, "published")
        self.assertEqual(schedule.published_by, "boss")
        self.assertIsNotNone(schedule.published_at)
        self.assertEqual(self._status(request_id), "approved")
        with self.assertRaises(ValueError):
            reject_rota_request(self.session, request_id, rejected_by="boss")

    def test_reject_records_reason(self) -> None:
        request_id = self._request()
        request = reject_rota_request(self.session, request_id, rejected_by="boss", reason="Forecast too high")
        self.assertEqual(request.status, "rejected")
        self.assertEqual(request.error_message, "Forecast too high")

    def test_delete_cascades_to_schedules(self) -> None:
        request_id = self._request()
        generate_schedule_for_request(self.session_factory, request_id, "manager")
        self.session.expire_all()
        self.assertTrue(delete_rota_request(self.session, request_id))
        self.assertFalse(delete_rota_request(self.session, request_id))
        self.assertEqual(self.session.scalar(select(func.count(RotaSchedule.id))), 0)
        self.assertEqual(self.session.scalar(select(func.count(RotaScheduleShift.id))), 0)

    def test_validate_stored_schedule(self) -> None:
        request_id = self._request()
        report = validate_rota_request(self.session, request_id)
        self.assertEqual(report["issues"][0]["type"], "missing_schedule")

        generate_schedule_for_request(self.session_factory, request_id, "manager")
        self.session.expire_all()
        report = validate_rota_request(self.session, request_id)
        self.assertEqual(report["issues"], [])
        self.assertIsNotNone(report["schedule_id"])

    def test_seed_default_thresholds_once(self) -> None:
        self.assertEqual(seed_default_thresholds(self.session, LOCATION), 5)
        self.assertEqual(seed_default_thresholds(self.session, LOCATION), 0)
        bands = list_revenue_thresholds(self.session, LOCATION)
        self.assertEqual([band.name for band in bands][0], "Very Low Revenue")
        self.assertEqual(bands[-1].revenue_max, 10000)


if __name__ == "__main__":
    unittest.main()

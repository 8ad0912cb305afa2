from __future__ import annotations

import sys
import unittest
from pathlib import Path

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from api import app, get_session_factory  # noqa: E402
from database import Base, JobRoleRecord, ShiftRuleRecord, TeamMember  # noqa: E402

LOCATION = "harbour"


class RotaApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)
        app.dependency_overrides[get_session_factory] = lambda: self.session_factory
        self.client = TestClient(app)
        with self.session_factory() as session:
            server = JobRoleRecord(location=LOCATION, title="Server")
            session.add(server)
            session.flush()
            session.add_all(
                [
                    TeamMember(location=LOCATION, first_name="Ana", last_name="Lopez", job_title="Server", wage_rate=12.0, hi_score=9),
                    TeamMember(location=LOCATION, first_name="Ben", last_name="Ode", job_title="Server", wage_rate=12.0, hi_score=7),
                ]
            )
            session.add(
                ShiftRuleRecord(
                    location=LOCATION,
                    name="Monday lunch",
                    day_of_week="mon",
                    start_time="11:00",
                    end_time="16:00",
                    min_staff=2,
                    max_staff=2,
                    job_role_id=server.id,
                )
            )
            session.commit()

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.engine.dispose()

    def _create(self, forecast=None) -> int:
        response = self.client.post(
            "/api/v1/rota-requests",
            json={
                "location": LOCATION,
                "weekStart": "2024-04-01",
                "revenueForecast": forecast if forecast is not None else {"2024-04-01": 1000},
                "actor": "tests",
            },
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["id"]

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_request_lifecycle(self) -> None:
        request_id = self._create()
        listed = self.client.get("/api/v1/rota-requests", params={"location": LOCATION}).json()["requests"]
        self.assertEqual([item["id"] for item in listed], [request_id])
        self.assertEqual(listed[0]["week_end_date"], "2024-04-07")

        response = self.client.post(f"/api/v1/rota-requests/{request_id}/generate", json={"actor": "tests"})
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(len(body["shifts"]), 2)
        self.assertEqual(body["shifts"][0]["start_time"], "11:00:00")
        self.assertAlmostEqual(body["shifts"][0]["shift_cost"], 54.0)

        schedule = self.client.get(f"/api/v1/rota-requests/{request_id}/schedule").json()
        self.assertEqual(len(schedule["shifts"]), 2)
        self.assertEqual(schedule["status"], "draft")

        report = self.client.get(f"/api/v1/rota-requests/{request_id}/validate").json()
        self.assertEqual(report["issues"], [])

        export = self.client.get(f"/api/v1/rota-requests/{request_id}/export")
        self.assertEqual(export.status_code, 200)
        self.assertTrue(export.headers["content-type"].startswith("text/csv"))
        self.assertIn("Ana Lopez", export.text)

        approved = self.client.post(f"/api/v1/rota-requests/{request_id}/approve", json={"actor": "boss"}).json()
        self.assertEqual(approved["status"], "approved")
        self.assertEqual(approved["published_by"], "boss")
        rejected = self.client.post(f"/api/v1/rota-requests/{request_id}/reject", json={"actor": "boss"})
        self.assertEqual(rejected.status_code, 400)

        self.assertEqual(self.client.delete(f"/api/v1/rota-requests/{request_id}").status_code, 200)
        self.assertEqual(self.client.get(f"/api/v1/rota-requests/{request_id}/schedule").status_code, 404)
        self.assertEqual(self.client.delete(f"/api/v1/rota-requests/{request_id}").status_code, 404)

    def test_create_rejects_bad_input(self) -> None:
        response = self.client.post("/api/v1/rota-requests", json={"location": LOCATION, "weekStart": "01/04/2024"})
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/v1/rota-requests",
            json={"location": LOCATION, "weekStart": "2024-04-01", "revenueForecast": [1000]},
        )
        self.assertEqual(response.status_code, 422)

    def test_generate_with_malformed_forecast_fails_request(self) -> None:
        request_id = self._create({"2024-04-01": -10})
        response = self.client.post(f"/api/v1/rota-requests/{request_id}/generate")
        self.assertEqual(response.status_code, 422)
        listed = self.client.get("/api/v1/rota-requests").json()["requests"]
        self.assertEqual(listed[0]["status"], "failed")

    def test_unknown_request_is_404(self) -> None:
        self.assertEqual(self.client.post("/api/v1/rota-requests/999/generate").status_code, 404)
        self.assertEqual(self.client.get("/api/v1/rota-requests/999/schedule").status_code, 404)

    def test_algorithm_config_round_trip(self) -> None:
        url = f"/api/v1/locations/{LOCATION}/algorithm-config"
        defaults = self.client.get(url).json()
        self.assertFalse(defaults["params"]["staff_priority"]["enabled"])
        self.assertEqual(defaults["params"]["part_shifts"]["day_latest_start"], "12:00")

        bad = self.client.put(url, json={"params": {"part_shifts": {"min_hours": 9, "max_hours": 2}}})
        self.assertEqual(bad.status_code, 422)

        saved = self.client.put(url, json={"params": {"part_shifts": {"enabled": True}}, "actor": "tests"}).json()
        self.assertTrue(saved["params"]["part_shifts"]["enabled"])
        self.assertEqual(saved["lastEditedBy"], "tests")
        self.assertTrue(self.client.get(url).json()["params"]["part_shifts"]["enabled"])

    def test_seed_default_thresholds(self) -> None:
        url = f"/api/v1/locations/{LOCATION}/thresholds/defaults"
        first = self.client.post(url).json()
        self.assertEqual(first["created"], 5)
        self.assertEqual(len(first["thresholds"]), 5)
        self.assertEqual(self.client.post(url).json()["created"], 0)

    def test_baseline_forecast(self) -> None:
        body = self.client.get("/api/v1/forecasts/baseline", params={"weekStart": "2024-04-01"}).json()
        self.assertEqual(len(body["revenue_forecast"]), 7)
        self.assertEqual(body["revenue_forecast"]["2024-04-05"], 4500.0)
        self.assertEqual(self.client.get("/api/v1/forecasts/baseline", params={"weekStart": "soon"}).status_code, 400)


if __name__ == "__main__":
    unittest.main()

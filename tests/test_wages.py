from __future__ import annotations

import sys
import unittest
from pathlib import Path

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from models import JobRole, StaffMember  # noqa: E402
from roles import roles_by_title  # noqa: E402
from wages import (  # noqa: E402
    HOURLY_NI_THRESHOLD,
    calculate_shift_cost,
    hourly_rate_from_salary,
    resolve_wage_rate,
)


def _staff(**overrides) -> StaffMember:
    fields = {"id": "s1", "first_name": "Test", "last_name": "Person", "job_title": "Server", "wage_rate": 12.0}
    fields.update(overrides)
    return StaffMember(**fields)


class ShiftCostTests(unittest.TestCase):
    def test_hourly_cost_includes_ni_and_pension(self) -> None:
        cost = calculate_shift_cost(_staff(), 4.5)
        self.assertAlmostEqual(HOURLY_NI_THRESHOLD, 4.375)
        self.assertAlmostEqual(cost.wage_cost, 54.0)
        self.assertAlmostEqual(cost.ni_cost, (12.0 - 4.375) * 4.5 * 0.138)
        self.assertAlmostEqual(cost.pension_cost, 1.62)
        self.assertAlmostEqual(cost.total_cost, 54.0 + 4.735125 + 1.62)

    def test_contractor_pays_no_ni_or_pension(self) -> None:
        cost = calculate_shift_cost(_staff(employment_type="contractor", wage_rate=18.0), 5)
        self.assertAlmostEqual(cost.wage_cost, 90.0)
        self.assertEqual(cost.ni_cost, 0.0)
        self.assertEqual(cost.pension_cost, 0.0)
        self.assertAlmostEqual(cost.total_cost, 90.0)

    def test_rate_below_threshold_has_no_ni(self) -> None:
        cost = calculate_shift_cost(_staff(wage_rate=4.0), 8)
        self.assertEqual(cost.ni_cost, 0.0)
        self.assertAlmostEqual(cost.pension_cost, 32.0 * 0.03)

    def test_zero_hours_costs_nothing(self) -> None:
        self.assertEqual(calculate_shift_cost(_staff(), 0).total_cost, 0.0)


class WageRateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.lookup = roles_by_title(
            [
                JobRole(id="r1", title="Server", default_wage_rate=11.0),
                JobRole(id="r2", title="Host"),
            ]
        )

    def test_own_rate_wins(self) -> None:
        self.assertEqual(resolve_wage_rate(_staff(wage_rate=13.25), self.lookup), (13.25, None))

    def test_job_role_default(self) -> None:
        rate, source = resolve_wage_rate(_staff(wage_rate=None), self.lookup)
        self.assertEqual(rate, 11.0)
        self.assertEqual(source, "job role 'Server' default")

    def test_salary_derived_rate(self) -> None:
        staff = _staff(wage_rate=None, employment_type="salary", annual_salary=26100.0)
        rate, source = resolve_wage_rate(staff, self.lookup)
        self.assertAlmostEqual(rate, 12.5)
        self.assertEqual(source, "annual salary")
        self.assertAlmostEqual(hourly_rate_from_salary(26100.0), 12.5)

    def test_minimum_wage_fallback(self) -> None:
        rate, source = resolve_wage_rate(_staff(wage_rate=None, job_title="Host"), self.lookup)
        self.assertEqual(rate, 11.44)
        self.assertEqual(source, "minimum wage fallback")


if __name__ == "__main__":
    unittest.main()

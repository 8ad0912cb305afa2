from __future__ import annotations

import sys
import unittest
from pathlib import Path

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from models import JobRole, StaffMember  # noqa: E402
from roles import (  # noqa: E402
    MatchKind,
    classify_for_role,
    eligible_for_role,
    eligible_for_staff_type,
    matches_staff_type,
    resolve_staff_type_role,
    roles_by_title,
)


def _staff(staff_id: str, title: str, *secondary: str) -> StaffMember:
    return StaffMember(
        id=staff_id,
        first_name=staff_id,
        last_name="",
        job_title=title,
        secondary_job_roles=tuple(secondary),
        wage_rate=12.0,
    )


class ClassifyForRoleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.lookup = roles_by_title(
            [
                JobRole(id="r1", title="Server"),
                JobRole(id="r2", title="Grill", is_kitchen=True),
                JobRole(id="r3", title="Chef", is_kitchen=True),
            ]
        )

    def test_exact_title_match(self) -> None:
        result = classify_for_role(_staff("a", " server "), "Server", False, self.lookup)
        self.assertIs(result.kind, MatchKind.EXACT)
        self.assertFalse(result.is_secondary)

    def test_secondary_role_match(self) -> None:
        result = classify_for_role(_staff("a", "Bartender", "Server"), "Server", False, self.lookup)
        self.assertIs(result.kind, MatchKind.SECONDARY)
        self.assertTrue(result.is_secondary)

    def test_category_match_by_keyword(self) -> None:
        result = classify_for_role(_staff("a", "Host"), "Server", False, self.lookup)
        self.assertIs(result.kind, MatchKind.CATEGORY)
        self.assertEqual(result.via, "keyword")
        self.assertTrue(result.eligible)

    def test_category_match_by_job_role_record(self) -> None:
        result = classify_for_role(_staff("a", "Grill"), "Chef", True, self.lookup)
        self.assertIs(result.kind, MatchKind.CATEGORY)
        self.assertEqual(result.via, "job_role")

    def test_other_side_is_unclassified(self) -> None:
        result = classify_for_role(_staff("a", "Chef"), "Server", False, self.lookup)
        self.assertIs(result.kind, MatchKind.UNCLASSIFIED)
        self.assertFalse(result.eligible)

    def test_eligible_pool_prefers_direct_matches(self) -> None:
        ranked = [_staff("host", "Host"), _staff("server", "Server"), _staff("bar", "Bartender", "Server")]
        pool, classifications, broadened = eligible_for_role(ranked, "Server", False, self.lookup)
        self.assertEqual([member.id for member in pool], ["server", "bar"])
        self.assertFalse(broadened)
        self.assertIs(classifications["host"].kind, MatchKind.CATEGORY)

    def test_eligible_pool_broadens_to_same_side(self) -> None:
        ranked = [_staff("chef", "Chef"), _staff("host", "Host")]
        pool, _, broadened = eligible_for_role(ranked, "Sommelier", False, self.lookup)
        self.assertEqual([member.id for member in pool], ["host"])
        self.assertTrue(broadened)


class StaffTypeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.lookup = roles_by_title(
            [
                JobRole(id="r1", title="Server"),
                JobRole(id="r2", title="Chef", is_kitchen=True),
                JobRole(id="r3", title="Kitchen Porter", is_kitchen=True),
            ]
        )

    def test_cook_is_kitchen_not_front_of_house(self) -> None:
        cook = _staff("cook", "Cook")
        self.assertFalse(matches_staff_type(cook, "foh", self.lookup))
        self.assertTrue(matches_staff_type(cook, "kitchen", self.lookup))

    def test_porter_is_kp_only(self) -> None:
        porter = _staff("kp", "Kitchen Porter")
        self.assertTrue(matches_staff_type(porter, "kp", self.lookup))
        self.assertFalse(matches_staff_type(porter, "kitchen", self.lookup))
        self.assertFalse(matches_staff_type(porter, "foh", self.lookup))

    def test_unknown_staff_type_raises(self) -> None:
        with self.assertRaises(ValueError):
            matches_staff_type(_staff("a", "Server"), "bar", self.lookup)

    def test_eligibility_tiers(self) -> None:
        chefs = [_staff("c1", "Chef"), _staff("c2", "Chef")]
        pool, tier = eligible_for_staff_type(chefs, "kitchen", self.lookup)
        self.assertEqual((len(pool), tier), (2, "role"))
        pool, tier = eligible_for_staff_type(chefs, "kp", self.lookup)
        self.assertEqual((len(pool), tier), (2, "side"))
        pool, tier = eligible_for_staff_type(chefs, "foh", self.lookup)
        self.assertEqual((len(pool), tier), (2, "all"))

    def test_resolves_job_role_for_staff_type(self) -> None:
        roles = [
            JobRole(id="tm", title="Team Member"),
            JobRole(id="srv", title="Server"),
            JobRole(id="chef", title="Head Chef", is_kitchen=True),
        ]
        self.assertEqual(resolve_staff_type_role(roles, "foh").id, "srv")
        self.assertEqual(resolve_staff_type_role(roles, "kitchen").id, "chef")

    def test_placeholder_when_no_role_matches(self) -> None:
        roles = [JobRole(id="chef", title="Chef", is_kitchen=False)]
        role = resolve_staff_type_role(roles, "kitchen")
        self.assertTrue(role.placeholder)
        self.assertEqual(role.id, "placeholder-kitchen")
        self.assertTrue(role.is_kitchen)


if __name__ == "__main__":
    unittest.main()

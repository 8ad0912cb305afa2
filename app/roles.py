from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from models import JobRole, StaffMember


KITCHEN_KEYWORDS: Tuple[str, ...] = ("chef", "cook", "kitchen", "porter")
CHEF_KEYWORDS: Tuple[str, ...] = ("chef", "cook", "kitchen")
PORTER_KEYWORD = "porter"

# staff type -> (title keywords, kitchen flag) used to pick the job role attached to fallback shifts.
CATEGORY_ROLE_KEYWORDS: Dict[str, Tuple[Tuple[str, ...], bool]] = {
    "foh": (("server", "team"), False),
    "kitchen": (("chef",), True),
    "kp": ((PORTER_KEYWORD,), True),
}
PLACEHOLDER_TITLES: Dict[str, str] = {
    "foh": "Front of House",
    "kitchen": "Chef",
    "kp": "Kitchen Porter",
}


class MatchKind(str, Enum):
    EXACT = "exact"
    SECONDARY = "secondary"
    CATEGORY = "category"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class RoleClassification:
    kind: MatchKind
    # "job_role" when the category came from the staff member's job-role record, "keyword" otherwise.
    via: Optional[str] = None

    @property
    def eligible(self) -> bool:
        return self.kind is not MatchKind.UNCLASSIFIED

    @property
    def is_secondary(self) -> bool:
        return self.kind is not MatchKind.EXACT


def normalize_role(role: Optional[str]) -> str:
    return (role or "").strip().lower()


def roles_by_title(job_roles: Iterable[JobRole]) -> Dict[str, JobRole]:
    """First job role per normalized title, preserving input order."""
    lookup: Dict[str, JobRole] = {}
    for role in job_roles:
        lookup.setdefault(normalize_role(role.title), role)
    return lookup


def title_is_kitchen(title: Optional[str]) -> bool:
    label = normalize_role(title)
    return any(keyword in label for keyword in KITCHEN_KEYWORDS)


def staff_is_kitchen(staff: StaffMember, role_lookup: Dict[str, JobRole]) -> Tuple[bool, str]:
    """Kitchen/FOH side for a staff member and where that answer came from."""
    record = role_lookup.get(normalize_role(staff.job_title))
    if record is not None:
        return record.is_kitchen, "job_role"
    return title_is_kitchen(staff.job_title), "keyword"


def classify_for_role(
    staff: StaffMember,
    role_title: Optional[str],
    role_is_kitchen: bool,
    role_lookup: Dict[str, JobRole],
) -> RoleClassification:
    target = normalize_role(role_title)
    if target and normalize_role(staff.job_title) == target:
        return RoleClassification(MatchKind.EXACT)
    if target and any(normalize_role(role) == target for role in staff.secondary_job_roles):
        return RoleClassification(MatchKind.SECONDARY)
    is_kitchen, via = staff_is_kitchen(staff, role_lookup)
    if is_kitchen == role_is_kitchen:
        return RoleClassification(MatchKind.CATEGORY, via=via)
    return RoleClassification(MatchKind.UNCLASSIFIED)


def eligible_for_role(
    ranked_staff: Sequence[StaffMember],
    role_title: Optional[str],
    role_is_kitchen: bool,
    role_lookup: Dict[str, JobRole],
) -> Tuple[List[StaffMember], Dict[str, RoleClassification], bool]:
    """Return (pool, classifications, broadened).

    The pool holds exact/secondary title matches; when there are none it widens
    to every staff member on the same kitchen/FOH side as the role.
    """
    classifications = {
        staff.id: classify_for_role(staff, role_title, role_is_kitchen, role_lookup) for staff in ranked_staff
    }
    direct = [
        staff
        for staff in ranked_staff
        if classifications[staff.id].kind in (MatchKind.EXACT, MatchKind.SECONDARY)
    ]
    if direct:
        return direct, classifications, False
    compatible = [staff for staff in ranked_staff if classifications[staff.id].kind is MatchKind.CATEGORY]
    return compatible, classifications, True


def matches_staff_type(staff: StaffMember, staff_type: str, role_lookup: Dict[str, JobRole]) -> bool:
    title = normalize_role(staff.job_title)
    record = role_lookup.get(title)
    has_porter = PORTER_KEYWORD in title
    if staff_type == "foh":
        if record is not None and not record.is_kitchen:
            return True
        return not any(keyword in title for keyword in KITCHEN_KEYWORDS)
    if staff_type == "kitchen":
        if record is not None and record.is_kitchen and not has_porter:
            return True
        return not has_porter and any(keyword in title for keyword in CHEF_KEYWORDS)
    if staff_type == "kp":
        return has_porter
    raise ValueError(f"Unknown staff type '{staff_type}'.")


def eligible_for_staff_type(
    ranked_staff: Sequence[StaffMember],
    staff_type: str,
    role_lookup: Dict[str, JobRole],
) -> Tuple[List[StaffMember], str]:
    """Eligible pool for a threshold staff type and the tier that produced it.

    Tiers: ``"role"`` (title/job-role match), ``"side"`` (kitchen/non-kitchen
    only), ``"all"`` (whole ranked pool).
    """
    primary = [staff for staff in ranked_staff if matches_staff_type(staff, staff_type, role_lookup)]
    if primary:
        return primary, "role"
    wants_kitchen = staff_type != "foh"
    side = [staff for staff in ranked_staff if staff_is_kitchen(staff, role_lookup)[0] == wants_kitchen]
    if side:
        return side, "side"
    return list(ranked_staff), "all"


def resolve_staff_type_role(job_roles: Sequence[JobRole], staff_type: str) -> JobRole:
    """Job role attached to fallback shifts; a non-persisted placeholder when none is configured."""
    keywords, is_kitchen = CATEGORY_ROLE_KEYWORDS[staff_type]
    for keyword in keywords:
        for role in job_roles:
            if role.is_kitchen == is_kitchen and keyword in normalize_role(role.title):
                return role
    return JobRole(
        id=f"placeholder-{staff_type}",
        title=PLACEHOLDER_TITLES[staff_type],
        is_kitchen=is_kitchen,
        placeholder=True,
    )


def is_manager_title(title: Optional[str]) -> bool:
    return "manager" in normalize_role(title)

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from models import Shift, StaffMember
from policy_defaults import MAX_DAYS_PER_WEEK


@dataclass
class WeeklyAllocation:
    hours_worked: float = 0.0
    days_worked: List[datetime.date] = field(default_factory=list)
    shifts: List[Shift] = field(default_factory=list)

    def remaining_hours(self, max_hours: float) -> float:
        return max(0.0, max_hours - self.hours_worked)


class AllocationLedger:
    """Per-run record of hours, dates and shifts committed for each staff member.

    This is the only mutable structure of a run. Lookups are side-effect free;
    :meth:`commit` is the single place allocations change.
    """

    def __init__(self, staff: Iterable[StaffMember], *, max_days: int = MAX_DAYS_PER_WEEK) -> None:
        self.max_days = max_days
        self._entries: Dict[str, WeeklyAllocation] = {member.id: WeeklyAllocation() for member in staff}

    def get(self, staff_id: str) -> Optional[WeeklyAllocation]:
        return self._entries.get(staff_id)

    def __contains__(self, staff_id: object) -> bool:
        return staff_id in self._entries

    def can_work(self, staff: StaffMember, date_: datetime.date, hours: float) -> bool:
        allocation = self._entries.get(staff.id)
        if allocation is None:
            return False
        if date_ in allocation.days_worked:
            return False
        if allocation.hours_worked + hours > staff.max_hours_per_week:
            return False
        return len(allocation.days_worked) < self.max_days

    def commit(self, staff: StaffMember, shift: Shift) -> None:
        allocation = self._entries.get(staff.id)
        if allocation is None:
            raise KeyError(f"No allocation record for staff member {staff.id!r}.")
        if shift.date in allocation.days_worked:
            raise ValueError(f"Staff member {staff.id!r} already works on {shift.date.isoformat()}.")
        if allocation.hours_worked + shift.hours > staff.max_hours_per_week:
            raise ValueError(f"Shift would exceed weekly hours for staff member {staff.id!r}.")
        allocation.hours_worked += shift.hours
        allocation.days_worked.append(shift.date)
        allocation.shifts.append(shift)


def find_best_staff(
    pool: Sequence[StaffMember],
    date_: datetime.date,
    hours: float,
    ledger: AllocationLedger,
) -> Optional[StaffMember]:
    """Highest-ranked member of ``pool`` who can take a shift of ``hours`` on ``date_``."""
    for staff in pool:
        if ledger.can_work(staff, date_, hours):
            return staff
    return None


def find_part_shift_staff(
    pool: Sequence[StaffMember],
    date_: datetime.date,
    min_hours: float,
    ledger: AllocationLedger,
) -> Optional[StaffMember]:
    """Highest-ranked member with at least ``min_hours`` of weekly capacity left."""
    for staff in pool:
        allocation = ledger.get(staff.id)
        if allocation is None:
            continue
        if allocation.remaining_hours(staff.max_hours_per_week) < min_hours:
            continue
        if ledger.can_work(staff, date_, min_hours):
            return staff
    return None

from __future__ import annotations

import datetime
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple


EMPLOYMENT_TYPES = {"hourly", "salary", "contractor"}
DAY_CODES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
DEFAULT_MAX_HOURS_PER_WEEK = 40.0


class ScheduleInputError(ValueError):
    """Raised when external data handed to the scheduler is malformed."""

    def __init__(self, message: str, *, record: Optional[str] = None) -> None:
        self.record = record
        if record:
            message = f"{record}: {message}"
        super().__init__(message)


class TimeParseError(ScheduleInputError):
    pass


class RevenueForecastError(ScheduleInputError):
    pass


class RecordError(ScheduleInputError):
    pass


class ConfigurationError(ValueError):
    pass


def _require(payload: Mapping[str, Any], key: str, record: str) -> Any:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise RecordError(f"missing required field '{key}'", record=record)
    return value


def _optional_float(payload: Mapping[str, Any], key: str, record: str) -> Optional[float]:
    value = payload.get(key)
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise RecordError(f"field '{key}' must be numeric, got {value!r}", record=record) from None
    if math.isnan(number) or math.isinf(number):
        raise RecordError(f"field '{key}' must be finite, got {value!r}", record=record)
    return number


def _int_field(payload: Mapping[str, Any], key: str, record: str, default: int = 0) -> int:
    value = payload.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise RecordError(f"field '{key}' must be an integer, got {value!r}", record=record)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise RecordError(f"field '{key}' must be an integer, got {value!r}", record=record) from None
    if number < 0:
        raise RecordError(f"field '{key}' must not be negative", record=record)
    return number


def _date_field(value: Any, key: str, record: str) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value))
    except ValueError:
        raise RecordError(f"field '{key}' must be an ISO date, got {value!r}", record=record) from None


@dataclass(frozen=True)
class JobRole:
    id: str
    title: str
    is_kitchen: bool = False
    default_wage_rate: Optional[float] = None
    placeholder: bool = False

    @classmethod
    def from_record(cls, payload: Mapping[str, Any]) -> "JobRole":
        record = f"job role {payload.get('id')!r}"
        return cls(
            id=str(_require(payload, "id", record)),
            title=str(_require(payload, "title", record)).strip(),
            is_kitchen=bool(payload.get("is_kitchen", False)),
            default_wage_rate=_optional_float(payload, "default_wage_rate", record),
        )


@dataclass(frozen=True)
class StaffMember:
    id: str
    first_name: str
    last_name: str
    job_title: str
    secondary_job_roles: Tuple[str, ...] = ()
    wage_rate: Optional[float] = None
    employment_type: str = "hourly"
    max_hours_per_week: float = DEFAULT_MAX_HOURS_PER_WEEK
    available: bool = True
    hi_score: float = 0.0
    annual_salary: Optional[float] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_record(cls, payload: Mapping[str, Any]) -> "StaffMember":
        record = f"staff member {payload.get('id')!r}"
        employment_type = str(payload.get("employment_type") or "hourly").strip().lower()
        if employment_type not in EMPLOYMENT_TYPES:
            raise RecordError(f"unknown employment type {employment_type!r}", record=record)
        secondary = payload.get("secondary_job_roles") or ()
        if isinstance(secondary, str):
            secondary = [part for part in secondary.split(",")]
        max_hours = _optional_float(payload, "max_hours_per_week", record)
        if max_hours is not None and max_hours < 0:
            raise RecordError("field 'max_hours_per_week' must not be negative", record=record)
        wage_rate = _optional_float(payload, "wage_rate", record)
        if wage_rate is not None and wage_rate < 0:
            raise RecordError("field 'wage_rate' must not be negative", record=record)
        return cls(
            id=str(_require(payload, "id", record)),
            first_name=str(payload.get("first_name") or ""),
            last_name=str(payload.get("last_name") or ""),
            job_title=str(payload.get("job_title") or "").strip(),
            secondary_job_roles=tuple(str(role).strip() for role in secondary if str(role).strip()),
            wage_rate=wage_rate,
            employment_type=employment_type,
            max_hours_per_week=DEFAULT_MAX_HOURS_PER_WEEK if max_hours is None else max_hours,
            available=payload.get("available_for_rota", payload.get("available", True)) is not False,
            hi_score=_optional_float(payload, "hi_score", record) or 0.0,
            annual_salary=_optional_float(payload, "annual_salary", record),
        )


@dataclass(frozen=True)
class ShiftRule:
    id: str
    day_of_week: str
    start_time: Any
    end_time: Any
    min_staff: int = 1
    max_staff: int = 1
    job_role_id: Optional[str] = None
    job_role: Optional[JobRole] = None
    name: Optional[str] = None
    archived: bool = False

    @property
    def label(self) -> str:
        return f"shift rule {self.name or self.id!r}"

    @classmethod
    def from_record(cls, payload: Mapping[str, Any]) -> "ShiftRule":
        record = f"shift rule {payload.get('id')!r}"
        day_code = str(_require(payload, "day_of_week", record)).strip().lower()[:3]
        if day_code not in DAY_CODES:
            raise RecordError(f"unknown day of week {payload.get('day_of_week')!r}", record=record)
        embedded = payload.get("job_roles") or payload.get("job_role")
        job_role = JobRole.from_record(embedded) if isinstance(embedded, Mapping) else None
        job_role_id = payload.get("job_role_id")
        return cls(
            id=str(_require(payload, "id", record)),
            day_of_week=day_code,
            start_time=_require(payload, "start_time", record),
            end_time=_require(payload, "end_time", record),
            min_staff=_int_field(payload, "min_staff", record, default=1),
            max_staff=_int_field(payload, "max_staff", record, default=1),
            job_role_id=str(job_role_id) if job_role_id is not None else (job_role.id if job_role else None),
            job_role=job_role,
            name=payload.get("name"),
            archived=payload.get("archived") is True,
        )


@dataclass(frozen=True)
class RevenueThreshold:
    revenue_min: float
    revenue_max: float
    foh_min_staff: int = 0
    foh_max_staff: int = 0
    kitchen_min_staff: int = 0
    kitchen_max_staff: int = 0
    kp_min_staff: int = 0
    kp_max_staff: int = 0
    name: str = ""
    id: Optional[str] = None
    target_cost_percentage: Optional[float] = None
    staff_evening: bool = True

    def contains(self, revenue: float) -> bool:
        return self.revenue_min <= revenue <= self.revenue_max

    def min_staff(self, staff_type: str) -> int:
        return int(getattr(self, f"{staff_type}_min_staff"))

    def max_staff(self, staff_type: str) -> int:
        return int(getattr(self, f"{staff_type}_max_staff"))

    @classmethod
    def from_record(cls, payload: Mapping[str, Any]) -> "RevenueThreshold":
        record = f"revenue threshold {payload.get('name') or payload.get('id')!r}"
        revenue_min = _optional_float(payload, "revenue_min", record)
        revenue_max = _optional_float(payload, "revenue_max", record)
        if revenue_min is None or revenue_max is None:
            raise RecordError("revenue_min and revenue_max are required", record=record)
        if revenue_max < revenue_min:
            raise RecordError("revenue_max must not be below revenue_min", record=record)
        counts = {
            key: _int_field(payload, key, record)
            for key in (
                "foh_min_staff",
                "foh_max_staff",
                "kitchen_min_staff",
                "kitchen_max_staff",
                "kp_min_staff",
                "kp_max_staff",
            )
        }
        return cls(
            revenue_min=revenue_min,
            revenue_max=revenue_max,
            name=str(payload.get("name") or ""),
            id=str(payload["id"]) if payload.get("id") is not None else None,
            target_cost_percentage=_optional_float(payload, "target_cost_percentage", record),
            **counts,
        )


@dataclass(frozen=True)
class ScheduleRequest:
    week_start_date: datetime.date
    week_end_date: datetime.date
    revenue_forecast: Mapping[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    def dates(self) -> List[datetime.date]:
        days = (self.week_end_date - self.week_start_date).days
        return [self.week_start_date + datetime.timedelta(days=offset) for offset in range(days + 1)]

    @classmethod
    def from_record(cls, payload: Mapping[str, Any]) -> "ScheduleRequest":
        record = f"rota request {payload.get('id')!r}"
        start = _date_field(_require(payload, "week_start_date", record), "week_start_date", record)
        end_raw = payload.get("week_end_date")
        end = _date_field(end_raw, "week_end_date", record) if end_raw else start + datetime.timedelta(days=6)
        if end < start:
            raise RecordError("week_end_date is before week_start_date", record=record)
        forecast = payload.get("revenue_forecast") or {}
        if not isinstance(forecast, Mapping):
            raise RevenueForecastError("revenue_forecast must be a mapping of date to revenue", record=record)
        return cls(
            week_start_date=start,
            week_end_date=end,
            revenue_forecast=dict(forecast),
            id=str(payload["id"]) if payload.get("id") is not None else None,
        )


@dataclass(frozen=True)
class Shift:
    staff_id: str
    date: datetime.date
    day_of_week: str
    start_time: datetime.time
    end_time: datetime.time
    break_minutes: int
    job_role_id: str
    is_secondary_role: bool
    hi_score: float
    hours: float
    wage_cost: float
    employer_ni_cost: float
    employer_pension_cost: float
    total_cost: float
    shift_rule_id: Optional[str] = None
    shift_rule_name: Optional[str] = None
    staff_type: Optional[str] = None
    segment: Optional[str] = None
    is_part_shift: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "profile_id": self.staff_id,
            "date": self.date.isoformat(),
            "day_of_week": self.day_of_week,
            "start_time": self.start_time.strftime("%H:%M:%S"),
            "end_time": self.end_time.strftime("%H:%M:%S"),
            "break_minutes": self.break_minutes,
            "job_role_id": self.job_role_id,
            "is_secondary_role": self.is_secondary_role,
            "hi_score": self.hi_score,
            "hours": self.hours,
            "shift_cost": self.wage_cost,
            "employer_ni_cost": self.employer_ni_cost,
            "employer_pension_cost": self.employer_pension_cost,
            "total_cost": self.total_cost,
            "shift_rule_id": self.shift_rule_id,
            "shift_rule_name": self.shift_rule_name,
            "staff_type": self.staff_type,
            "segment": self.segment,
            "is_part_shift": self.is_part_shift,
        }


@dataclass(frozen=True)
class DaySummary:
    date: datetime.date
    day_of_week: str
    revenue: float
    source: str
    shift_count: int = 0
    cost: float = 0.0
    threshold_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "day_of_week": self.day_of_week,
            "revenue": self.revenue,
            "source": self.source,
            "threshold_name": self.threshold_name,
            "shift_count": self.shift_count,
            "cost": self.cost,
        }


@dataclass(frozen=True)
class ScheduleResult:
    shifts: Tuple[Shift, ...]
    total_cost: float
    revenue_forecast: float
    cost_percentage: float
    days: Tuple[DaySummary, ...] = ()
    warnings: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shifts": [shift.to_dict() for shift in self.shifts],
            "total_cost": self.total_cost,
            "revenue_forecast": self.revenue_forecast,
            "cost_percentage": self.cost_percentage,
            "days": [day.to_dict() for day in self.days],
            "warnings": list(self.warnings),
        }

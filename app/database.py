from __future__ import annotations

import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional
import json

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker
from sqlalchemy.types import Time

from models import (
    JobRole,
    RevenueThreshold,
    ScheduleRequest,
    ScheduleResult,
    ShiftRule,
    StaffMember,
)
from policy_defaults import default_revenue_bands


DATA_DIR = Path(__file__).resolve().parent / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)
ROTA_DATABASE_URL = f"sqlite:///{(DATA_DIR / 'rota.db').as_posix()}"
REQUEST_STATUS_CHOICES = {"pending", "generated", "approved", "rejected", "failed"}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _load_json(raw: Optional[str], default: Any) -> Any:
    try:
        value = json.loads(raw or "null")
    except json.JSONDecodeError:
        return default
    return default if value is None else value


class Base(DeclarativeBase):
    """Metadata for every rota table living in rota.db."""

    pass


class TeamMember(Base):
    __tablename__ = "team_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location: Mapped[str] = mapped_column(String(80), nullable=False, default="default", index=True)
    first_name: Mapped[str] = mapped_column(String(60), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(60), nullable=False, default="")
    job_title: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    secondary_job_roles: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    wage_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    annual_salary: Mapped[float | None] = mapped_column(Float, nullable=True)
    employment_type: Mapped[str] = mapped_column(String(16), nullable=False, default="hourly")
    max_hours_per_week: Mapped[float] = mapped_column(Float, nullable=False, default=40.0)
    available_for_rota: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    hi_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    @property
    def role_list(self) -> List[str]:
        return [role.strip() for role in self.secondary_job_roles.split(",") if role.strip()]

    @role_list.setter
    def role_list(self, roles: Iterable[str]) -> None:
        self.secondary_job_roles = ", ".join(sorted({role.strip() for role in roles if role.strip()}))

    def as_record(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "first_name": self.first_name,
            "last_name": self.last_name,
            "job_title": self.job_title,
            "secondary_job_roles": self.role_list,
            "wage_rate": self.wage_rate,
            "annual_salary": self.annual_salary,
            "employment_type": self.employment_type,
            "max_hours_per_week": self.max_hours_per_week,
            "available_for_rota": self.available_for_rota,
            "hi_score": self.hi_score,
        }


class JobRoleRecord(Base):
    __tablename__ = "job_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location: Mapped[str] = mapped_column(String(80), nullable=False, default="default", index=True)
    title: Mapped[str] = mapped_column(String(80), nullable=False)
    is_kitchen: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    default_wage_rate: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("location", "title", name="uq_job_roles_location_title"),
    )

    def as_record(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "title": self.title,
            "is_kitchen": self.is_kitchen,
            "default_wage_rate": self.default_wage_rate,
        }


class ShiftRuleRecord(Base):
    __tablename__ = "shift_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location: Mapped[str] = mapped_column(String(80), nullable=False, default="default", index=True)
    name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    day_of_week: Mapped[str] = mapped_column(String(3), nullable=False)
    # Labels are stored as entered so malformed values surface as input errors at generation time.
    start_time: Mapped[str] = mapped_column(String(8), nullable=False)
    end_time: Mapped[str] = mapped_column(String(8), nullable=False)
    min_staff: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_staff: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    job_role_id: Mapped[int | None] = mapped_column(
        ForeignKey("job_roles.id", ondelete="SET NULL"), nullable=True
    )
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    job_role: Mapped[Optional[JobRoleRecord]] = relationship()

    def as_record(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "day_of_week": self.day_of_week,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "min_staff": self.min_staff,
            "max_staff": self.max_staff,
            "job_role_id": str(self.job_role_id) if self.job_role_id is not None else None,
            "job_roles": self.job_role.as_record() if self.job_role else None,
            "archived": self.archived,
        }


class RevenueThresholdRecord(Base):
    __tablename__ = "rota_revenue_thresholds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location: Mapped[str] = mapped_column(String(80), nullable=False, default="default", index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    revenue_min: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    revenue_max: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    foh_min_staff: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    foh_max_staff: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    kitchen_min_staff: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    kitchen_max_staff: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    kp_min_staff: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    kp_max_staff: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    target_cost_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)

    def as_record(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "revenue_min": self.revenue_min,
            "revenue_max": self.revenue_max,
            "foh_min_staff": self.foh_min_staff,
            "foh_max_staff": self.foh_max_staff,
            "kitchen_min_staff": self.kitchen_min_staff,
            "kitchen_max_staff": self.kitchen_max_staff,
            "kp_min_staff": self.kp_min_staff,
            "kp_max_staff": self.kp_max_staff,
            "target_cost_percentage": self.target_cost_percentage,
        }


class RotaRequest(Base):
    __tablename__ = "rota_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location: Mapped[str] = mapped_column(String(80), nullable=False, default="default", index=True)
    week_start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    week_end_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    revenueForecastJSON: Mapped[str] = mapped_column(String(4000), nullable=False, default="{}")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    error_message: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    created_by: Mapped[str] = mapped_column(String(60), nullable=False, default="system")
    reviewed_by: Mapped[str | None] = mapped_column(String(60), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    schedules: Mapped[List["RotaSchedule"]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="RotaSchedule.id",
    )

    def forecast_dict(self) -> Dict[str, Any]:
        value = _load_json(self.revenueForecastJSON, {})
        return value if isinstance(value, dict) else {}

    def as_record(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "week_start_date": self.week_start_date,
            "week_end_date": self.week_end_date,
            "revenue_forecast": self.forecast_dict(),
        }


class RotaSchedule(Base):
    __tablename__ = "rota_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rota_request_id: Mapped[int] = mapped_column(
        ForeignKey("rota_requests.id", ondelete="CASCADE"), nullable=False
    )
    location: Mapped[str] = mapped_column(String(80), nullable=False, default="default")
    week_start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    week_end_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    total_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    revenue_forecast: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    published_by: Mapped[str | None] = mapped_column(String(60), nullable=True)
    published_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    daysJSON: Mapped[str] = mapped_column(String(8000), nullable=False, default="[]")
    warningsJSON: Mapped[str] = mapped_column(String(8000), nullable=False, default="[]")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    request: Mapped[RotaRequest] = relationship(back_populates="schedules")
    shifts: Mapped[List["RotaScheduleShift"]] = relationship(
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="RotaScheduleShift.id",
    )


class RotaScheduleShift(Base):
    __tablename__ = "rota_schedule_shifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    schedule_id: Mapped[int] = mapped_column(ForeignKey("rota_schedules.id", ondelete="CASCADE"), nullable=False)
    profile_id: Mapped[str] = mapped_column(String(40), nullable=False)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    day_of_week: Mapped[str] = mapped_column(String(12), nullable=False)
    start_time: Mapped[datetime.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[datetime.time] = mapped_column(Time, nullable=False)
    break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    job_role_id: Mapped[str] = mapped_column(String(40), nullable=False, default="")
    is_secondary_role: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hi_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    shift_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    employer_ni_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    employer_pension_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    shift_rule_id: Mapped[str | None] = mapped_column(String(40), nullable=True)
    shift_rule_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    staff_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    segment: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_part_shift: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    schedule: Mapped[RotaSchedule] = relationship(back_populates="shifts")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "date": self.date.isoformat(),
            "day_of_week": self.day_of_week,
            "start_time": self.start_time.strftime("%H:%M:%S"),
            "end_time": self.end_time.strftime("%H:%M:%S"),
            "break_minutes": self.break_minutes,
            "job_role_id": self.job_role_id,
            "is_secondary_role": self.is_secondary_role,
            "hi_score": self.hi_score,
            "hours": self.hours,
            "shift_cost": self.shift_cost,
            "employer_ni_cost": self.employer_ni_cost,
            "employer_pension_cost": self.employer_pension_cost,
            "total_cost": self.total_cost,
            "shift_rule_id": self.shift_rule_id,
            "shift_rule_name": self.shift_rule_name,
            "staff_type": self.staff_type,
            "segment": self.segment,
            "is_part_shift": self.is_part_shift,
        }


class Policy(Base):
    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location: Mapped[str] = mapped_column(String(80), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False, default="Rota algorithm")
    paramsJSON: Mapped[str] = mapped_column(String(8000), nullable=False, default="{}")
    lastEditedBy: Mapped[str] = mapped_column(String(60), nullable=False, default="system")
    lastEditedAt: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("location", name="uq_policies_location"),
    )

    def params_dict(self) -> Dict:
        value = _load_json(self.paramsJSON, {})
        return value if isinstance(value, dict) else {}


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="RotaRequest")
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


rota_engine = create_engine(
    ROTA_DATABASE_URL,
    echo=False,
    future=True,
)
SessionLocal = sessionmaker(bind=rota_engine, expire_on_commit=False, future=True)


def init_database(bind=None) -> None:
    Base.metadata.create_all(bind or rota_engine)


def _require_request(session, request_id: int) -> RotaRequest:
    request = session.get(RotaRequest, request_id)
    if request is None:
        raise ValueError(f"RotaRequest with id {request_id} was not found.")
    return request


def create_rota_request(
    session,
    location: str,
    week_start_date: datetime.date,
    revenue_forecast: Optional[Mapping[str, Any]] = None,
    *,
    week_end_date: Optional[datetime.date] = None,
    created_by: str = "system",
) -> RotaRequest:
    """Persist a pending request after checking its dates and forecast shape."""
    parsed = ScheduleRequest.from_record(
        {
            "week_start_date": week_start_date,
            "week_end_date": week_end_date,
            "revenue_forecast": revenue_forecast or {},
        }
    )
    forecast = {str(key): value for key, value in parsed.revenue_forecast.items()}
    request = RotaRequest(
        location=location,
        week_start_date=parsed.week_start_date,
        week_end_date=parsed.week_end_date,
        revenueForecastJSON=json.dumps(forecast, default=str),
        status="pending",
        created_by=created_by,
    )
    session.add(request)
    session.commit()
    session.refresh(request)
    return request


def list_rota_requests(session, location: Optional[str] = None) -> List[RotaRequest]:
    stmt = select(RotaRequest).order_by(RotaRequest.week_start_date.desc(), RotaRequest.id.desc())
    if location:
        stmt = stmt.where(RotaRequest.location == location)
    return list(session.scalars(stmt))


def rota_request_to_dict(request: RotaRequest) -> Dict[str, Any]:
    return {
        "id": request.id,
        "location": request.location,
        "week_start_date": request.week_start_date.isoformat(),
        "week_end_date": request.week_end_date.isoformat(),
        "revenue_forecast": request.forecast_dict(),
        "status": request.status,
        "error_message": request.error_message,
        "created_by": request.created_by,
        "reviewed_by": request.reviewed_by,
    }


def load_request_inputs(session, request_id: int) -> Dict[str, Any]:
    """Load one request and its location's scheduling inputs as domain records."""
    request = _require_request(session, request_id)
    location = request.location
    members = session.scalars(
        select(TeamMember).where(TeamMember.location == location).order_by(TeamMember.id.asc())
    )
    roles = session.scalars(
        select(JobRoleRecord).where(JobRoleRecord.location == location).order_by(JobRoleRecord.id.asc())
    )
    rules = session.scalars(
        select(ShiftRuleRecord).where(ShiftRuleRecord.location == location).order_by(ShiftRuleRecord.id.asc())
    )
    thresholds = session.scalars(
        select(RevenueThresholdRecord)
        .where(RevenueThresholdRecord.location == location)
        .order_by(RevenueThresholdRecord.revenue_min.asc(), RevenueThresholdRecord.id.asc())
    )
    return {
        "location": location,
        "request": ScheduleRequest.from_record(request.as_record()),
        "staff": [StaffMember.from_record(member.as_record()) for member in members],
        "job_roles": [JobRole.from_record(role.as_record()) for role in roles],
        "shift_rules": [ShiftRule.from_record(rule.as_record()) for rule in rules],
        "thresholds": [RevenueThreshold.from_record(band.as_record()) for band in thresholds],
    }


def set_request_status(session, request_id: int, status: str, *, error: str = "") -> RotaRequest:
    normalized = (status or "").strip().lower()
    if normalized not in REQUEST_STATUS_CHOICES:
        raise ValueError(f"Unsupported rota request status '{status}'.")
    request = _require_request(session, request_id)
    request.status = normalized
    request.error_message = error[:500]
    session.commit()
    session.refresh(request)
    return request


def save_schedule_result(session, request_id: int, result: ScheduleResult) -> RotaSchedule:
    """Store a generated schedule, replacing any earlier one for the request."""
    request = _require_request(session, request_id)
    request.schedules.clear()
    session.flush()
    schedule = RotaSchedule(
        location=request.location,
        week_start_date=request.week_start_date,
        week_end_date=request.week_end_date,
        total_cost=result.total_cost,
        revenue_forecast=result.revenue_forecast,
        cost_percentage=result.cost_percentage,
        status="draft",
        daysJSON=json.dumps([day.to_dict() for day in result.days]),
        warningsJSON=json.dumps(list(result.warnings)),
    )
    for shift in result.shifts:
        schedule.shifts.append(
            RotaScheduleShift(
                profile_id=shift.staff_id,
                date=shift.date,
                day_of_week=shift.day_of_week,
                start_time=shift.start_time,
                end_time=shift.end_time,
                break_minutes=shift.break_minutes,
                job_role_id=shift.job_role_id,
                is_secondary_role=shift.is_secondary_role,
                hi_score=shift.hi_score,
                hours=shift.hours,
                shift_cost=shift.wage_cost,
                employer_ni_cost=shift.employer_ni_cost,
                employer_pension_cost=shift.employer_pension_cost,
                total_cost=shift.total_cost,
                shift_rule_id=shift.shift_rule_id,
                shift_rule_name=shift.shift_rule_name,
                staff_type=shift.staff_type,
                segment=shift.segment,
                is_part_shift=shift.is_part_shift,
            )
        )
    request.schedules.append(schedule)
    request.status = "generated"
    request.error_message = ""
    session.commit()
    session.refresh(schedule)
    return schedule


def get_latest_schedule(session, request_id: int) -> Optional[RotaSchedule]:
    stmt = (
        select(RotaSchedule)
        .where(RotaSchedule.rota_request_id == request_id)
        .order_by(RotaSchedule.id.desc())
    )
    return session.scalars(stmt).first()


def get_schedule_summary(session, request_id: int) -> Optional[Dict[str, Any]]:
    schedule = get_latest_schedule(session, request_id)
    if schedule is None:
        return None
    return {
        "schedule_id": schedule.id,
        "rota_request_id": schedule.rota_request_id,
        "location": schedule.location,
        "week_start_date": schedule.week_start_date.isoformat(),
        "week_end_date": schedule.week_end_date.isoformat(),
        "status": schedule.status,
        "published_by": schedule.published_by,
        "published_at": schedule.published_at.isoformat() if schedule.published_at else None,
        "total_cost": schedule.total_cost,
        "revenue_forecast": schedule.revenue_forecast,
        "cost_percentage": schedule.cost_percentage,
        "days": _load_json(schedule.daysJSON, []),
        "warnings": _load_json(schedule.warningsJSON, []),
        "shifts": [shift.to_dict() for shift in schedule.shifts],
    }


def approve_rota_request(session, request_id: int, approved_by: str) -> RotaSchedule:
    """Approve a generated request and publish its schedule."""
    request = _require_request(session, request_id)
    if request.status != "generated":
        raise ValueError(f"Only generated rota requests can be approved (status is '{request.status}').")
    schedule = get_latest_schedule(session, request_id)
    if schedule is None:
        raise ValueError(f"RotaRequest {request_id} has no generated schedule.")
    request.status = "approved"
    request.reviewed_by = approved_by
    schedule.status = "published"
    schedule.published_by = approved_by
    schedule.published_at = _utcnow()
    session.commit()
    session.refresh(schedule)
    return schedule


def reject_rota_request(session, request_id: int, rejected_by: str, reason: str = "") -> RotaRequest:
    request = _require_request(session, request_id)
    if request.status not in {"pending", "generated"}:
        raise ValueError(f"Rota request in status '{request.status}' cannot be rejected.")
    request.status = "rejected"
    request.reviewed_by = rejected_by
    request.error_message = (reason or "")[:500]
    session.commit()
    session.refresh(request)
    return request


def delete_rota_request(session, request_id: int) -> bool:
    request = session.get(RotaRequest, request_id)
    if request is None:
        return False
    session.delete(request)
    session.commit()
    return True


def get_active_policy(session, location: str) -> Optional[Policy]:
    stmt = select(Policy).where(Policy.location == location)
    return session.scalars(stmt).first()


def upsert_policy(session, location: str, params_dict: Dict, *, edited_by: str = "system") -> Policy:
    existing = get_active_policy(session, location)
    payload = params_dict if isinstance(params_dict, dict) else {}
    if existing:
        existing.paramsJSON = json.dumps(payload)
        existing.lastEditedBy = edited_by
        existing.lastEditedAt = _utcnow()
        session.commit()
        session.refresh(existing)
        return existing
    policy = Policy(
        location=location,
        paramsJSON=json.dumps(payload),
        lastEditedBy=edited_by,
        lastEditedAt=_utcnow(),
    )
    session.add(policy)
    session.commit()
    session.refresh(policy)
    return policy


def list_revenue_thresholds(session, location: str) -> List[RevenueThresholdRecord]:
    stmt = (
        select(RevenueThresholdRecord)
        .where(RevenueThresholdRecord.location == location)
        .order_by(RevenueThresholdRecord.revenue_min.asc(), RevenueThresholdRecord.id.asc())
    )
    return list(session.scalars(stmt))


def seed_default_thresholds(session, location: str) -> int:
    """Insert the default revenue bands for a location that has none; returns rows added."""
    if list_revenue_thresholds(session, location):
        return 0
    bands = default_revenue_bands()
    for band in bands:
        session.add(RevenueThresholdRecord(location=location, **band))
    session.commit()
    return len(bands)


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "RotaRequest",
    target_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payloadJSON=json.dumps(payload or {}, default=str),
    )
    session.add(log)
    session.commit()
    return log

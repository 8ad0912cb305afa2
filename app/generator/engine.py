from __future__ import annotations

import datetime
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from models import (
    DaySummary,
    JobRole,
    RecordError,
    RevenueForecastError,
    RevenueThreshold,
    ScheduleRequest,
    ScheduleResult,
    Shift,
    ShiftRule,
    StaffMember,
)
from policy import (
    RotaConfig,
    SegmentTimes,
    day_code,
    day_name,
    is_weekend,
    minutes_to_time,
    parse_time_label,
    resolve_revenue_threshold,
    segment_times,
    shift_hours,
    synthesize_threshold,
)
from policy_defaults import RULE_BREAK_MINUTES, SEGMENTS, STAFF_TYPES
from roles import (
    eligible_for_role,
    eligible_for_staff_type,
    is_manager_title,
    normalize_role,
    resolve_staff_type_role,
    roles_by_title,
)
from wages import calculate_shift_cost, resolve_wage_rate

from .allocation import AllocationLedger, find_best_staff, find_part_shift_staff

logger = logging.getLogger(__name__)

STAFF_TYPE_LABELS = {"foh": "FOH", "kitchen": "kitchen", "kp": "KP"}


@dataclass
class _RunState:
    """Accumulator for one run: the allocation ledger, emitted shifts, cost and diagnostics."""

    ledger: AllocationLedger
    shifts: List[Shift] = field(default_factory=list)
    total_cost: float = 0.0
    warnings: List[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def add(self, staff: StaffMember, shift: Shift) -> None:
        self.ledger.commit(staff, shift)
        self.shifts.append(shift)
        self.total_cost += shift.total_cost


def _parse_revenue(key: Any, value: Any) -> Tuple[datetime.date, float]:
    record = f"revenue forecast {key!r}"
    if isinstance(key, datetime.datetime):
        date_ = key.date()
    elif isinstance(key, datetime.date):
        date_ = key
    else:
        try:
            date_ = datetime.date.fromisoformat(str(key))
        except ValueError:
            raise RevenueForecastError("forecast keys must be ISO dates", record=record) from None
    if value is None or value == "":
        return date_, 0.0
    if isinstance(value, bool):
        raise RevenueForecastError(f"revenue must be numeric, got {value!r}", record=record)
    try:
        revenue = float(value)
    except (TypeError, ValueError):
        raise RevenueForecastError(f"revenue must be numeric, got {value!r}", record=record) from None
    if math.isnan(revenue) or math.isinf(revenue):
        raise RevenueForecastError(f"revenue must be finite, got {value!r}", record=record)
    if revenue < 0:
        raise RevenueForecastError(f"revenue must not be negative, got {value!r}", record=record)
    return date_, revenue


def parse_revenue_forecast(forecast: Mapping[Any, Any]) -> Dict[datetime.date, float]:
    parsed: Dict[datetime.date, float] = {}
    for key, value in forecast.items():
        date_, revenue = _parse_revenue(key, value)
        parsed[date_] = revenue
    return parsed


def validate_shift_rules(shift_rules: Sequence[ShiftRule]) -> None:
    for rule in shift_rules:
        if rule.archived:
            continue
        shift_hours(rule.start_time, rule.end_time, RULE_BREAK_MINUTES, record=rule.label)
        if rule.min_staff < 0 or rule.max_staff < 0:
            raise RecordError("staff counts must not be negative", record=rule.label)


class ScheduleGenerator:
    """Rule-first greedy rota builder with revenue-threshold fallback.

    The generator only holds its immutable :class:`RotaConfig`; all per-run
    state lives in a :class:`_RunState` created by :meth:`generate`, so one
    instance can serve any number of independent runs.
    """

    def __init__(self, config: Optional[RotaConfig] = None) -> None:
        self.config = config or RotaConfig()

    def generate(
        self,
        request: ScheduleRequest,
        staff: Sequence[StaffMember],
        job_roles: Sequence[JobRole],
        thresholds: Sequence[RevenueThreshold] = (),
        shift_rules: Sequence[ShiftRule] = (),
    ) -> ScheduleResult:
        forecast = parse_revenue_forecast(request.revenue_forecast)
        validate_shift_rules(shift_rules)
        seen_ids = set()
        for member in staff:
            if member.id in seen_ids:
                raise RecordError("duplicate staff id", record=f"staff member {member.id!r}")
            seen_ids.add(member.id)

        role_lookup = roles_by_title(job_roles)
        roles_by_id = {role.id: role for role in job_roles}
        warnings: List[str] = []
        ranked = self._rank_staff(self._prepare_staff(staff, role_lookup, warnings))
        state = _RunState(ledger=AllocationLedger(ranked), warnings=warnings)

        days: List[DaySummary] = []
        total_revenue = 0.0
        for date_ in request.dates():
            revenue = forecast.get(date_, 0.0)
            total_revenue += revenue
            name = day_name(date_)
            if revenue <= 0:
                days.append(DaySummary(date=date_, day_of_week=name, revenue=revenue, source="skipped"))
                continue

            first_shift = len(state.shifts)
            threshold_name: Optional[str] = None
            code = day_code(date_)
            day_rules = [rule for rule in shift_rules if rule.day_of_week == code and not rule.archived]
            if day_rules:
                source = "rules"
                for rule in day_rules:
                    self._assign_rule(state, rule, date_, ranked, role_lookup, roles_by_id)
            else:
                source = "threshold"
                threshold = resolve_revenue_threshold(thresholds, revenue)
                if threshold is None:
                    source = "synthesized"
                    threshold = synthesize_threshold(revenue)
                    state.warn(
                        f"No shift rules or revenue thresholds for {name} {date_.isoformat()}; "
                        f"using synthesized headcounts for revenue {revenue:.2f}."
                    )
                else:
                    state.warn(
                        f"No shift rules for {name} {date_.isoformat()}; "
                        f"using threshold '{threshold.name}' for revenue {revenue:.2f}."
                    )
                threshold_name = threshold.name
                self._assign_threshold_day(state, date_, threshold, ranked, job_roles, role_lookup)

            day_shifts = state.shifts[first_shift:]
            days.append(
                DaySummary(
                    date=date_,
                    day_of_week=name,
                    revenue=revenue,
                    source=source,
                    shift_count=len(day_shifts),
                    cost=sum(shift.total_cost for shift in day_shifts),
                    threshold_name=threshold_name,
                )
            )

        if not state.shifts:
            state.warn(
                f"No shifts generated for {request.week_start_date.isoformat()} "
                f"to {request.week_end_date.isoformat()}."
            )
        cost_percentage = state.total_cost / total_revenue * 100 if total_revenue > 0 else 0.0
        return ScheduleResult(
            shifts=tuple(state.shifts),
            total_cost=state.total_cost,
            revenue_forecast=total_revenue,
            cost_percentage=cost_percentage,
            days=tuple(days),
            warnings=tuple(state.warnings),
        )

    def _prepare_staff(
        self,
        staff: Sequence[StaffMember],
        role_lookup: Dict[str, JobRole],
        warnings: List[str],
    ) -> List[StaffMember]:
        prepared: List[StaffMember] = []
        for member in staff:
            if not member.available:
                continue
            rate, source = resolve_wage_rate(member, role_lookup)
            if source is not None:
                message = (
                    f"Staff member {member.full_name or member.id} has no wage rate; "
                    f"using {source} of {rate:.2f}."
                )
                logger.info(message)
                warnings.append(message)
                member = replace(member, wage_rate=rate)
            prepared.append(member)
        return prepared

    def _rank_staff(self, staff: List[StaffMember]) -> List[StaffMember]:
        priority = self.config.priority
        if not priority.enabled:
            return sorted(staff, key=lambda member: member.hi_score or 0.0, reverse=True)

        def _score(member: StaffMember) -> float:
            score = (member.hi_score or 0.0) * priority.hi_score_weight
            if member.employment_type == "salary":
                score += priority.salaried_weight
            if is_manager_title(member.job_title):
                score += priority.manager_weight
            return score

        return sorted(staff, key=_score, reverse=True)

    def _assign_rule(
        self,
        state: _RunState,
        rule: ShiftRule,
        date_: datetime.date,
        ranked: List[StaffMember],
        role_lookup: Dict[str, JobRole],
        roles_by_id: Dict[str, JobRole],
    ) -> int:
        role = rule.job_role or roles_by_id.get(rule.job_role_id or "")
        if role is None:
            state.warn(
                f"{rule.label} references unknown job role {rule.job_role_id!r}; "
                "matching front-of-house staff only."
            )
        role_title = role.title if role else None
        role_is_kitchen = role.is_kitchen if role else False
        pool, classifications, broadened = eligible_for_role(ranked, role_title, role_is_kitchen, role_lookup)
        if broadened and role is not None:
            side = "kitchen" if role_is_kitchen else "front-of-house"
            state.warn(
                f"No staff hold the '{role_title}' role for {rule.label}; using {len(pool)} {side} staff instead."
            )

        start_minutes = parse_time_label(rule.start_time, record=rule.label)
        end_minutes = parse_time_label(rule.end_time, record=rule.label)
        window = SegmentTimes(
            segment="rule",
            start=minutes_to_time(start_minutes),
            end=minutes_to_time(end_minutes),
            break_minutes=RULE_BREAK_MINUTES,
        )
        return self._fill_slots(
            state,
            pool=pool,
            date_=date_,
            slots=rule.min_staff,
            window=window,
            describe=rule.label,
            is_secondary=lambda member: classifications[member.id].is_secondary,
            job_role_id=rule.job_role_id or (role.id if role else ""),
            shift_rule_id=rule.id,
            shift_rule_name=rule.name,
        )

    def _assign_threshold_day(
        self,
        state: _RunState,
        date_: datetime.date,
        threshold: RevenueThreshold,
        ranked: List[StaffMember],
        job_roles: Sequence[JobRole],
        role_lookup: Dict[str, JobRole],
    ) -> None:
        weekend = is_weekend(date_)
        segments = SEGMENTS if threshold.staff_evening else SEGMENTS[:1]
        pools: Dict[str, List[StaffMember]] = {}
        roles: Dict[str, JobRole] = {}
        for segment in segments:
            window = segment_times(segment, weekend)
            for staff_type in STAFF_TYPES:
                slots = threshold.min_staff(staff_type)
                if slots <= 0:
                    continue
                label = STAFF_TYPE_LABELS[staff_type]
                if staff_type not in pools:
                    pool, tier = eligible_for_staff_type(ranked, staff_type, role_lookup)
                    if tier == "side":
                        state.warn(f"No {label} staff by title on {date_.isoformat()}; widening to same-side staff.")
                    elif tier == "all":
                        state.warn(f"No {label} staff by title on {date_.isoformat()}; widening to all staff.")
                    role = resolve_staff_type_role(job_roles, staff_type)
                    if role.placeholder:
                        state.warn(f"No job role configured for {label} shifts; using placeholder '{role.title}'.")
                    pools[staff_type] = pool
                    roles[staff_type] = role
                role = roles[staff_type]
                self._fill_slots(
                    state,
                    pool=pools[staff_type],
                    date_=date_,
                    slots=slots,
                    window=window,
                    describe=f"{label} {segment} segment",
                    is_secondary=self._threshold_secondary(role),
                    job_role_id=role.id,
                    staff_type=staff_type,
                    allow_part_shifts=True,
                )

    @staticmethod
    def _threshold_secondary(role: JobRole) -> Callable[[StaffMember], bool]:
        if role.placeholder:
            return lambda member: True
        title = normalize_role(role.title)
        return lambda member: normalize_role(member.job_title) != title

    def _fill_slots(
        self,
        state: _RunState,
        *,
        pool: Sequence[StaffMember],
        date_: datetime.date,
        slots: int,
        window: SegmentTimes,
        describe: str,
        is_secondary: Callable[[StaffMember], bool],
        job_role_id: str,
        shift_rule_id: Optional[str] = None,
        shift_rule_name: Optional[str] = None,
        staff_type: Optional[str] = None,
        allow_part_shifts: bool = False,
    ) -> int:
        full_hours = shift_hours(window.start, window.end, window.break_minutes)
        filled = 0
        for _ in range(slots):
            end_time = window.end
            hours = full_hours
            part_shift = False
            member = find_best_staff(pool, date_, full_hours, state.ledger)
            if member is None and allow_part_shifts and self.config.part_shifts.enabled:
                part = self._part_shift(pool, date_, window, full_hours, state.ledger)
                if part is not None:
                    member, hours, end_time = part
                    part_shift = True
            if member is None:
                state.warn(
                    f"Could not find available staff for {describe} on {date_.isoformat()}; "
                    f"filled {filled} of {slots}."
                )
                break
            cost = calculate_shift_cost(member, hours)
            shift = Shift(
                staff_id=member.id,
                date=date_,
                day_of_week=day_name(date_),
                start_time=window.start,
                end_time=end_time,
                break_minutes=window.break_minutes,
                job_role_id=job_role_id,
                is_secondary_role=is_secondary(member),
                hi_score=member.hi_score or 0.0,
                hours=hours,
                wage_cost=cost.wage_cost,
                employer_ni_cost=cost.ni_cost,
                employer_pension_cost=cost.pension_cost,
                total_cost=cost.total_cost,
                shift_rule_id=shift_rule_id,
                shift_rule_name=shift_rule_name,
                staff_type=staff_type,
                segment=None if window.segment == "rule" else window.segment,
                is_part_shift=part_shift,
            )
            state.add(member, shift)
            filled += 1
        return filled

    def _part_shift(
        self,
        pool: Sequence[StaffMember],
        date_: datetime.date,
        window: SegmentTimes,
        full_hours: float,
        ledger: AllocationLedger,
    ) -> Optional[Tuple[StaffMember, float, datetime.time]]:
        cfg = self.config.part_shifts
        if window.start > cfg.latest_start(window.segment):
            return None
        # Capacity is floored to quarter hours below, so candidates need the rounded-up minimum.
        member = find_part_shift_staff(pool, date_, math.ceil(cfg.min_hours * 4) / 4, ledger)
        if member is None:
            return None
        allocation = ledger.get(member.id)
        remaining = allocation.remaining_hours(member.max_hours_per_week) if allocation else 0.0
        # Quarter-hour granularity keeps end times on the clock grid.
        hours = math.floor(min(remaining, cfg.max_hours, full_hours) * 4) / 4
        if hours < cfg.min_hours or hours >= full_hours:
            return None
        start_minutes = window.start.hour * 60 + window.start.minute
        end_time = minutes_to_time(start_minutes + int(round(hours * 60)) + window.break_minutes)
        return member, shift_hours(window.start, end_time, window.break_minutes), end_time


def generate_schedule(
    request: ScheduleRequest,
    staff: Sequence[StaffMember],
    job_roles: Sequence[JobRole],
    thresholds: Sequence[RevenueThreshold] = (),
    shift_rules: Sequence[ShiftRule] = (),
    *,
    config: Optional[RotaConfig] = None,
) -> ScheduleResult:
    return ScheduleGenerator(config).generate(request, staff, job_roles, thresholds, shift_rules)

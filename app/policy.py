from __future__ import annotations

import copy
import datetime
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence

from models import DAY_CODES, ConfigurationError, RevenueThreshold, TimeParseError
from policy_defaults import (
    BASELINE_WEEKDAY_REVENUE,
    DEFAULT_ALGORITHM_CONFIG,
    SEGMENT_TIMES,
    SYNTHESIZED_EVENING_REVENUE,
    SYNTHESIZED_HEADCOUNT,
    SYNTHESIZED_KP_REVENUE,
)


DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
TIME_PATTERN = re.compile(r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?$")


def day_name(date_: datetime.date) -> str:
    return DAY_NAMES[date_.weekday()]


def day_code(date_: datetime.date) -> str:
    return DAY_CODES[date_.weekday()]


def is_weekend(date_: datetime.date) -> bool:
    return date_.weekday() >= 5


def parse_time_label(value: Any, *, record: Optional[str] = None) -> int:
    """Return minutes after midnight for an ``HH:MM`` or ``HH:MM:SS`` label.

    Unlike a lenient parser this never falls back to zero: anything that is not
    a valid wall-clock time raises :class:`TimeParseError`.
    """
    if isinstance(value, datetime.time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise TimeParseError(f"time must be a 'HH:MM' string, got {value!r}", record=record)
    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise TimeParseError(f"unparseable time {value!r}", record=record)
    hours = int(match.group("hour"))
    minutes = int(match.group("minute"))
    seconds = int(match.group("second") or 0)
    if hours > 23 or minutes > 59 or seconds > 59:
        raise TimeParseError(f"time out of range {value!r}", record=record)
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> datetime.time:
    minutes = int(minutes) % (24 * 60)
    return datetime.time(minutes // 60, minutes % 60)


def shift_hours(start: Any, end: Any, break_minutes: int = 0, *, record: Optional[str] = None) -> float:
    """Duration in decimal hours; an end before the start wraps past midnight.

    A window that is not longer than its break raises :class:`TimeParseError`
    rather than producing a zero-hour shift.
    """
    start_minutes = parse_time_label(start, record=record)
    end_minutes = parse_time_label(end, record=record)
    duration = end_minutes - start_minutes
    if duration < 0:
        duration += 24 * 60
    duration -= int(break_minutes or 0)
    if duration <= 0:
        raise TimeParseError(
            f"shift window {start!s}-{end!s} is not longer than its {int(break_minutes or 0)} minute break",
            record=record,
        )
    return duration / 60


@dataclass(frozen=True)
class SegmentTimes:
    segment: str
    start: datetime.time
    end: datetime.time
    break_minutes: int

    @property
    def hours(self) -> float:
        return shift_hours(self.start, self.end, self.break_minutes)


def segment_times(segment: str, weekend: bool) -> SegmentTimes:
    table = SEGMENT_TIMES.get(segment)
    if table is None:
        raise ValueError(f"Unknown shift segment '{segment}'.")
    start, end, break_minutes = table["weekend" if weekend else "weekday"]
    return SegmentTimes(
        segment=segment,
        start=minutes_to_time(parse_time_label(start)),
        end=minutes_to_time(parse_time_label(end)),
        break_minutes=break_minutes,
    )


@dataclass(frozen=True)
class PriorityConfig:
    enabled: bool = False
    salaried_weight: float = 100.0
    manager_weight: float = 50.0
    hi_score_weight: float = 1.0


@dataclass(frozen=True)
class PartShiftConfig:
    enabled: bool = False
    min_hours: float = 3.0
    max_hours: float = 5.0
    day_latest_start: datetime.time = datetime.time(12, 0)
    evening_latest_start: datetime.time = datetime.time(18, 0)

    def latest_start(self, segment: str) -> datetime.time:
        return self.day_latest_start if segment == "day" else self.evening_latest_start


@dataclass(frozen=True)
class RotaConfig:
    priority: PriorityConfig = field(default_factory=PriorityConfig)
    part_shifts: PartShiftConfig = field(default_factory=PartShiftConfig)


def _deep_update(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_update(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _weight(section: Mapping[str, Any], key: str) -> float:
    value = section.get(key)
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {value!r}") from None
    if math.isnan(number) or math.isinf(number) or number < 0:
        raise ConfigurationError(f"{key} must be a finite, non-negative number")
    return number


def _flag(section: Mapping[str, Any], key: str) -> bool:
    value = section.get(key)
    if not isinstance(value, bool):
        raise ConfigurationError(f"{key} must be true or false, got {value!r}")
    return value


def resolve_rota_config(payload: Optional[Mapping[str, Any]] = None) -> RotaConfig:
    """Merge a stored policy payload over the defaults and validate it."""
    if payload is not None and not isinstance(payload, Mapping):
        raise ConfigurationError("algorithm configuration must be a mapping")
    merged = _deep_update(DEFAULT_ALGORITHM_CONFIG, payload or {})
    priority_cfg = merged.get("staff_priority")
    part_cfg = merged.get("part_shifts")
    if not isinstance(priority_cfg, dict) or not isinstance(part_cfg, dict):
        raise ConfigurationError("staff_priority and part_shifts must be mappings")

    priority = PriorityConfig(
        enabled=_flag(priority_cfg, "enabled"),
        salaried_weight=_weight(priority_cfg, "salaried_weight"),
        manager_weight=_weight(priority_cfg, "manager_weight"),
        hi_score_weight=_weight(priority_cfg, "hi_score_weight"),
    )
    min_hours = _weight(part_cfg, "min_hours")
    max_hours = _weight(part_cfg, "max_hours")
    if not 0 < min_hours <= max_hours <= 24:
        raise ConfigurationError("part shift hours must satisfy 0 < min_hours <= max_hours <= 24")
    try:
        day_latest = parse_time_label(part_cfg.get("day_latest_start"), record="part_shifts.day_latest_start")
        evening_latest = parse_time_label(
            part_cfg.get("evening_latest_start"), record="part_shifts.evening_latest_start"
        )
    except TimeParseError as exc:
        raise ConfigurationError(str(exc)) from exc
    part_shifts = PartShiftConfig(
        enabled=_flag(part_cfg, "enabled"),
        min_hours=min_hours,
        max_hours=max_hours,
        day_latest_start=minutes_to_time(day_latest),
        evening_latest_start=minutes_to_time(evening_latest),
    )
    return RotaConfig(priority=priority, part_shifts=part_shifts)


def config_to_payload(config: RotaConfig) -> Dict[str, Dict[str, Any]]:
    return {
        "staff_priority": {
            "enabled": config.priority.enabled,
            "salaried_weight": config.priority.salaried_weight,
            "manager_weight": config.priority.manager_weight,
            "hi_score_weight": config.priority.hi_score_weight,
        },
        "part_shifts": {
            "enabled": config.part_shifts.enabled,
            "min_hours": config.part_shifts.min_hours,
            "max_hours": config.part_shifts.max_hours,
            "day_latest_start": config.part_shifts.day_latest_start.strftime("%H:%M"),
            "evening_latest_start": config.part_shifts.evening_latest_start.strftime("%H:%M"),
        },
    }


def resolve_revenue_threshold(
    thresholds: Sequence[RevenueThreshold], revenue: float
) -> Optional[RevenueThreshold]:
    """Pick the first band containing ``revenue``; clamp to the lowest/highest band otherwise."""
    if not thresholds:
        return None
    ordered = sorted(thresholds, key=lambda band: band.revenue_min)
    for band in ordered:
        if band.contains(revenue):
            return band
    if revenue < ordered[0].revenue_min:
        return ordered[0]
    return ordered[-1]


def synthesize_threshold(revenue: float) -> RevenueThreshold:
    """Default headcounts derived purely from revenue when no bands are configured."""

    def _count(staff_type: str) -> int:
        spec = SYNTHESIZED_HEADCOUNT[staff_type]
        raw = math.floor(revenue / spec["per_revenue"])
        return int(max(spec["min"], min(spec["max"], raw)))

    foh = _count("foh")
    kitchen = _count("kitchen")
    kp = 1 if revenue > SYNTHESIZED_KP_REVENUE else 0
    return RevenueThreshold(
        revenue_min=revenue,
        revenue_max=revenue,
        foh_min_staff=foh,
        foh_max_staff=foh,
        kitchen_min_staff=kitchen,
        kitchen_max_staff=kitchen,
        kp_min_staff=kp,
        kp_max_staff=kp,
        name="Synthesized defaults",
        staff_evening=revenue > SYNTHESIZED_EVENING_REVENUE,
    )


def baseline_revenue_forecast(week_start: datetime.date, days: int = 7) -> Dict[str, float]:
    """Fixed weekday amounts for a week, for callers that explicitly ask for a starting forecast."""
    forecast: Dict[str, float] = {}
    for offset in range(days):
        date_ = week_start + datetime.timedelta(days=offset)
        forecast[date_.isoformat()] = BASELINE_WEEKDAY_REVENUE[day_code(date_)]
    return forecast

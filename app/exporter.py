from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Any, Dict, Optional

from database import get_schedule_summary


DATA_DIR = Path(__file__).resolve().parent / "data" / "exports"
DATA_DIR.mkdir(parents=True, exist_ok=True)
CSV_COLUMNS = [
    "date",
    "day_of_week",
    "profile_id",
    "staff_name",
    "job_role_id",
    "start_time",
    "end_time",
    "break_minutes",
    "hours",
    "shift_cost",
    "employer_ni_cost",
    "employer_pension_cost",
    "total_cost",
    "is_secondary_role",
    "is_part_shift",
    "shift_rule_name",
    "staff_type",
    "segment",
]


def schedule_csv_text(summary: Dict[str, Any], staff_names: Optional[Dict[str, str]] = None) -> str:
    """Render a stored schedule summary as CSV, one row per shift ordered by date."""
    names = staff_names or {}
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for shift in sorted(summary.get("shifts", []), key=lambda item: (item["date"], item["start_time"])):
        row = dict(shift)
        row["staff_name"] = names.get(shift["profile_id"], "")
        for key in ("hours", "shift_cost", "employer_ni_cost", "employer_pension_cost", "total_cost"):
            row[key] = f"{float(shift.get(key) or 0.0):.2f}"
        writer.writerow(row)
    return buffer.getvalue()


def export_schedule_csv(
    session,
    request_id: int,
    *,
    staff_names: Optional[Dict[str, str]] = None,
    directory: Optional[Path] = None,
) -> Path:
    summary = get_schedule_summary(session, request_id)
    if summary is None:
        raise ValueError(f"RotaRequest {request_id} has no generated schedule.")
    target_dir = directory or DATA_DIR
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = target_dir / f"rota_{summary['location']}_{summary['week_start_date']}_{request_id}.csv"
    filename.write_text(schedule_csv_text(summary, staff_names), encoding="utf-8")
    return filename

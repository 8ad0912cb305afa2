from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from .engine import ScheduleGenerator
from database import (
    get_active_policy,
    load_request_inputs,
    record_audit_log,
    save_schedule_result,
    set_request_status,
)
from models import ScheduleInputError
from policy import resolve_rota_config
from validation import validate_schedule

logger = logging.getLogger(__name__)


def generate_schedule_for_request(
    session_factory: Callable,
    request_id: int,
    actor: str,
) -> Dict[str, Any]:
    """Generate, validate and store the schedule for one rota request.

    Malformed inputs mark the request ``failed`` and are audited before the
    error propagates; nothing is stored for a failed run.
    """
    actor = actor or "system"
    with session_factory() as session:
        try:
            inputs = load_request_inputs(session, request_id)
            policy = get_active_policy(session, inputs["location"])
            config = resolve_rota_config(policy.params_dict() if policy else None)
            result = ScheduleGenerator(config).generate(
                inputs["request"],
                inputs["staff"],
                inputs["job_roles"],
                inputs["thresholds"],
                inputs["shift_rules"],
            )
            validation_report = validate_schedule(result, inputs["staff"], inputs["request"])
        except ScheduleInputError as exc:
            session.rollback()
            logger.warning("Rota request %s failed: %s", request_id, exc)
            set_request_status(session, request_id, "failed", error=str(exc))
            record_audit_log(
                session,
                user_id=actor,
                action="ROTA_GENERATE_FAILED",
                target_id=request_id,
                payload={"error": str(exc)},
            )
            raise

        schedule = save_schedule_result(session, request_id, result)
        record_audit_log(
            session,
            user_id=actor,
            action="ROTA_GENERATE",
            target_id=request_id,
            payload={
                "schedule_id": schedule.id,
                "shifts": len(result.shifts),
                "total_cost": round(result.total_cost, 2),
            },
        )
        logger.info(
            "Generated %d shifts for rota request %s (cost %.2f, %.1f%% of revenue)",
            len(result.shifts),
            request_id,
            result.total_cost,
            result.cost_percentage,
        )
        summary = result.to_dict()
        summary["rota_request_id"] = request_id
        summary["schedule_id"] = schedule.id
        summary["validation"] = validation_report
        return summary

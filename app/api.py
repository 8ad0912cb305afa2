"""FastAPI wrapper over the rota database and generator.

Endpoints stay thin: parse the request, call the database/generator helpers,
audit the change and return ``jsonable_encoder`` payloads.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import datetime
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

# Ensure absolute imports (e.g., "import database") resolve when served from the repo root.
APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from database import (  # noqa: E402
    RotaRequest,
    SessionLocal,
    TeamMember,
    approve_rota_request,
    create_rota_request,
    delete_rota_request,
    get_active_policy,
    get_schedule_summary,
    init_database,
    list_revenue_thresholds,
    list_rota_requests,
    record_audit_log,
    reject_rota_request,
    rota_request_to_dict,
    seed_default_thresholds,
    upsert_policy,
)
from exporter import schedule_csv_text  # noqa: E402
from generator.api import generate_schedule_for_request  # noqa: E402
from models import ConfigurationError, ScheduleInputError  # noqa: E402
from policy import baseline_revenue_forecast, config_to_payload, resolve_rota_config  # noqa: E402
from validation import validate_rota_request  # noqa: E402


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_database()
    yield


app = FastAPI(title="Rota Scheduler API", version="0.1", lifespan=lifespan)


def get_session_factory():
    return SessionLocal


def get_db(session_factory=Depends(get_session_factory)):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def _parse_date(value: Any, field: str) -> datetime.date:
    try:
        return datetime.date.fromisoformat(str(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be YYYY-MM-DD")


def _actor(payload: Optional[Dict[str, Any]]) -> str:
    return ((payload or {}).get("actor") or "api").strip() or "api"


def _require_request(db: Session, request_id: int) -> RotaRequest:
    request = db.get(RotaRequest, request_id)
    if request is None:
        raise HTTPException(status_code=404, detail="Rota request not found")
    return request


def _audit(db: Session, actor: str, action: str, target_id: Optional[int], payload: Optional[Dict[str, Any]] = None) -> None:
    record_audit_log(db, user_id=actor, action=action, target_type="RotaRequest", target_id=target_id, payload=payload)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/api/v1/rota-requests")
def create_request(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    location = (payload.get("location") or "default").strip() or "default"
    week_start_raw = payload.get("weekStart") or payload.get("week_start_date")
    if not week_start_raw:
        raise HTTPException(status_code=400, detail="weekStart is required")
    week_start = _parse_date(week_start_raw, "weekStart")
    week_end_raw = payload.get("weekEnd") or payload.get("week_end_date")
    week_end = _parse_date(week_end_raw, "weekEnd") if week_end_raw else None
    forecast = payload.get("revenueForecast", payload.get("revenue_forecast")) or {}
    actor = _actor(payload)
    try:
        request = create_rota_request(
            db,
            location,
            week_start,
            forecast,
            week_end_date=week_end,
            created_by=actor,
        )
    except ScheduleInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    _audit(db, actor, "ROTA_REQUEST_CREATE", request.id, {"location": location})
    return JSONResponse(status_code=201, content=jsonable_encoder(rota_request_to_dict(request)))


@app.get("/api/v1/rota-requests")
def list_requests(location: Optional[str] = Query(None), db=Depends(get_db)) -> JSONResponse:
    requests = [rota_request_to_dict(request) for request in list_rota_requests(db, location)]
    return JSONResponse(content=jsonable_encoder({"requests": requests}))


@app.post("/api/v1/rota-requests/{request_id}/generate")
def generate_request(
    request_id: int,
    payload: Optional[Dict[str, Any]] = None,
    db=Depends(get_db),
    session_factory=Depends(get_session_factory),
) -> JSONResponse:
    _require_request(db, request_id)
    try:
        summary = generate_schedule_for_request(session_factory, request_id, _actor(payload))
    except ScheduleInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=f"invalid algorithm configuration: {exc}") from exc
    return JSONResponse(content=jsonable_encoder(summary))


@app.get("/api/v1/rota-requests/{request_id}/schedule")
def request_schedule(request_id: int, db=Depends(get_db)) -> JSONResponse:
    _require_request(db, request_id)
    summary = get_schedule_summary(db, request_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="No schedule generated for this request")
    return JSONResponse(content=jsonable_encoder(summary))


@app.get("/api/v1/rota-requests/{request_id}/validate")
def validate_request(request_id: int, db=Depends(get_db)) -> JSONResponse:
    _require_request(db, request_id)
    try:
        report = validate_rota_request(db, request_id)
    except ScheduleInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return JSONResponse(content=jsonable_encoder(report))


@app.post("/api/v1/rota-requests/{request_id}/approve")
def approve_request(request_id: int, payload: Optional[Dict[str, Any]] = None, db=Depends(get_db)) -> JSONResponse:
    _require_request(db, request_id)
    actor = _actor(payload)
    try:
        schedule = approve_rota_request(db, request_id, approved_by=actor)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    _audit(db, actor, "ROTA_APPROVE", request_id, {"schedule_id": schedule.id})
    return JSONResponse(
        content=jsonable_encoder(
            {
                "rota_request_id": request_id,
                "status": "approved",
                "schedule_id": schedule.id,
                "published_by": schedule.published_by,
                "published_at": schedule.published_at.isoformat() if schedule.published_at else None,
            }
        )
    )


@app.post("/api/v1/rota-requests/{request_id}/reject")
def reject_request(request_id: int, payload: Optional[Dict[str, Any]] = None, db=Depends(get_db)) -> JSONResponse:
    _require_request(db, request_id)
    actor = _actor(payload)
    reason = ((payload or {}).get("reason") or "").strip()
    try:
        request = reject_rota_request(db, request_id, rejected_by=actor, reason=reason)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    _audit(db, actor, "ROTA_REJECT", request_id, {"reason": reason})
    return JSONResponse(content=jsonable_encoder(rota_request_to_dict(request)))


@app.delete("/api/v1/rota-requests/{request_id}")
def delete_request(request_id: int, actor: str = Query("api"), db=Depends(get_db)) -> JSONResponse:
    if not delete_rota_request(db, request_id):
        raise HTTPException(status_code=404, detail="Rota request not found")
    _audit(db, actor, "ROTA_REQUEST_DELETE", request_id)
    return JSONResponse(content={"deleted": True, "rota_request_id": request_id})


@app.get("/api/v1/rota-requests/{request_id}/export")
def export_request(request_id: int, db=Depends(get_db)) -> Response:
    _require_request(db, request_id)
    summary = get_schedule_summary(db, request_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="No schedule generated for this request")
    profile_ids = {shift["profile_id"] for shift in summary["shifts"]}
    member_ids = [int(value) for value in profile_ids if value.isdigit()]
    names = {
        str(member.id): f"{member.first_name} {member.last_name}".strip()
        for member in db.scalars(select(TeamMember).where(TeamMember.id.in_(member_ids)))
    }
    filename = f"rota_{summary['location']}_{summary['week_start_date']}.csv"
    return Response(
        content=schedule_csv_text(summary, names),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _policy_payload(location: str, db: Session) -> Dict[str, Any]:
    policy = get_active_policy(db, location)
    stored = policy.params_dict() if policy else {}
    return {
        "location": location,
        "params": config_to_payload(resolve_rota_config(stored)),
        "lastEditedBy": policy.lastEditedBy if policy else None,
        "lastEditedAt": policy.lastEditedAt.isoformat() if policy and policy.lastEditedAt else None,
    }


@app.get("/api/v1/locations/{location}/algorithm-config")
def get_algorithm_config(location: str, db=Depends(get_db)) -> JSONResponse:
    try:
        payload = _policy_payload(location, db)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=f"stored configuration is invalid: {exc}") from exc
    return JSONResponse(content=jsonable_encoder(payload))


@app.put("/api/v1/locations/{location}/algorithm-config")
def set_algorithm_config(location: str, payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    params = payload.get("params")
    if not isinstance(params, dict):
        raise HTTPException(status_code=400, detail="params must be an object")
    try:
        resolve_rota_config(params)
    except ConfigurationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    actor = _actor(payload)
    policy = upsert_policy(db, location, params, edited_by=actor)
    record_audit_log(
        db, user_id=actor, action="POLICY_EDIT", target_type="Policy", target_id=policy.id, payload=params
    )
    return JSONResponse(content=jsonable_encoder(_policy_payload(location, db)))


@app.post("/api/v1/locations/{location}/thresholds/defaults")
def seed_thresholds(location: str, payload: Optional[Dict[str, Any]] = None, db=Depends(get_db)) -> JSONResponse:
    created = seed_default_thresholds(db, location)
    if created:
        record_audit_log(
            db,
            user_id=_actor(payload),
            action="THRESHOLDS_SEED",
            target_type="Location",
            payload={"location": location, "created": created},
        )
    thresholds = [band.as_record() for band in list_revenue_thresholds(db, location)]
    return JSONResponse(content=jsonable_encoder({"location": location, "created": created, "thresholds": thresholds}))


@app.get("/api/v1/forecasts/baseline")
def baseline_forecast(weekStart: str = Query(...)) -> JSONResponse:
    week_start = _parse_date(weekStart, "weekStart")
    forecast = baseline_revenue_forecast(week_start)
    return JSONResponse(content={"week_start": week_start.isoformat(), "revenue_forecast": forecast})

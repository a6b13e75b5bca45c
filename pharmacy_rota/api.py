"""Lightweight FastAPI wrapper around the rota generator.

Schedules are not stored: each request carries the month plus its holiday,
leave and swap lists and gets the regenerated grid back. Only the policy and
the audit log live in the database.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import datetime
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from pharmacy_rota.data_exchange import (
    parse_holidays,
    parse_leave_records,
    parse_swaps,
    serialize_schedule,
    serialize_weekly_hours,
)
from pharmacy_rota.database import (
    PolicySessionLocal,
    get_active_policy,
    init_database,
    record_audit_log,
    upsert_policy,
)
from pharmacy_rota.generator.api import generate_schedule as build_schedule
from pharmacy_rota.generator.api import generate_schedule_for_month
from pharmacy_rota.holidays import PUBLIC_HOLIDAYS_2025
from pharmacy_rota.hours import calculate_weekly_hours
from pharmacy_rota.policy import ensure_default_policy, load_active_policy

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    init_database()
    ensure_default_policy(PolicySessionLocal)
    yield


app = FastAPI(title="Pharmacy Rota API", version="0.1", lifespan=lifespan)


def get_db():
    db = PolicySessionLocal()
    try:
        yield db
    finally:
        db.close()


def _parse_month(value: Any) -> datetime.date:
    label = str(value or "").strip()
    try:
        if len(label) == 7:
            return datetime.date.fromisoformat(f"{label}-01")
        return datetime.date.fromisoformat(label).replace(day=1)
    except ValueError:
        raise HTTPException(status_code=400, detail="month must be YYYY-MM or YYYY-MM-DD")


def _audit(db: Session, actor: str, action: str, target: Optional[str], payload: Optional[Dict[str, Any]] = None) -> None:
    record_audit_log(db, user_id=actor, action=action, target_type="API", target_id=target, payload=payload)


def _policy_payload(policy) -> Dict[str, Any]:
    return {
        "id": policy.id,
        "name": policy.name,
        "params": policy.params_dict(),
        "lastEditedBy": policy.lastEditedBy,
        "lastEditedAt": policy.lastEditedAt.isoformat() if policy.lastEditedAt else None,
    }


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/api/v1/schedules/generate")
def generate_schedule(payload: Dict[str, Any]) -> JSONResponse:
    month_raw = payload.get("month") or payload.get("targetMonth")
    actor = (payload.get("actor") or "api").strip() or "api"
    if not month_raw:
        raise HTTPException(status_code=400, detail="month is required")
    month = _parse_month(month_raw)
    try:
        holidays = parse_holidays(payload.get("publicHolidays") or [])
        leave = parse_leave_records(payload.get("annualLeave") or [])
        swaps = parse_swaps(payload.get("swaps") or [])
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        result = generate_schedule_for_month(
            PolicySessionLocal,
            month,
            [holiday.date for holiday in holidays],
            leave,
            swaps,
            actor=actor,
        )
    except Exception as exc:  # pragma: no cover - surface generator errors
        logger.exception("Schedule generation failed for %s", month.strftime("%Y-%m"))
        raise HTTPException(status_code=500, detail=f"schedule generation failed: {exc}") from exc
    schedule = result.pop("schedule")
    result["days"] = serialize_schedule(schedule)
    result["weeklyHours"] = serialize_weekly_hours(calculate_weekly_hours(schedule))
    return JSONResponse(content=jsonable_encoder(result))


@app.post("/api/v1/schedules/weekly-hours")
def weekly_hours(
    payload: Dict[str, Any],
    staff_id: Optional[str] = Query(None),
    db=Depends(get_db),
) -> JSONResponse:
    month = _parse_month(payload.get("month") or payload.get("targetMonth"))
    try:
        holidays = parse_holidays(payload.get("publicHolidays") or [])
        leave = parse_leave_records(payload.get("annualLeave") or [])
        swaps = parse_swaps(payload.get("swaps") or [])
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    policy = load_active_policy(db)
    schedule = build_schedule(month, [holiday.date for holiday in holidays], leave, swaps, policy=policy)
    logs = calculate_weekly_hours(schedule)
    if staff_id:
        logs = [log for log in logs if log.staff_id == staff_id]
    return JSONResponse(
        content=jsonable_encoder({"month": month.strftime("%Y-%m"), "weeklyHours": serialize_weekly_hours(logs)})
    )


@app.get("/api/v1/holidays")
def list_holidays(month: Optional[str] = Query(None)) -> JSONResponse:
    holidays = PUBLIC_HOLIDAYS_2025
    if month:
        target = _parse_month(month)
        holidays = [item for item in holidays if (item.date.year, item.date.month) == (target.year, target.month)]
    return JSONResponse(
        content=jsonable_encoder({"holidays": [{"date": item.date.isoformat(), "name": item.name} for item in holidays]})
    )


@app.get("/api/v1/policy/active")
def active_policy(db=Depends(get_db)) -> JSONResponse:
    policy = get_active_policy(db)
    if not policy:
        raise HTTPException(status_code=404, detail="No active policy found")
    return JSONResponse(content=jsonable_encoder(_policy_payload(policy)))


@app.put("/api/v1/policy/active")
def set_active_policy(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    name = payload.get("name")
    params = payload.get("params") or {}
    actor = (payload.get("actor") or "api").strip() or "api"
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    if not isinstance(params, dict):
        raise HTTPException(status_code=400, detail="params must be an object")
    policy = upsert_policy(db, name=name, params_dict=params, edited_by=actor)
    _audit(db, actor=actor, action="POLICY_EDIT", target=str(policy.id), payload={"name": policy.name})
    return JSONResponse(content=jsonable_encoder(_policy_payload(policy)))

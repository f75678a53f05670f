"""FastAPI surface over the crew scheduling store.

Each endpoint parses its inputs, delegates to the resolver modules and
returns JSON. Input and legality errors come back as 400 responses.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from crew_scheduler.assignments import (
    AssignmentBlocked,
    add_assignment,
    check_assignment,
    delete_assignment,
    eligible_people,
    move_assignment,
)
from crew_scheduler.coverage import coverage_for_day, move_suggestions
from crew_scheduler.database import (
    SessionLocal,
    get_active_policy,
    get_assignment,
    init_database,
    record_audit_log,
    upsert_policy,
)
from crew_scheduler.dates import parse_date, parse_month
from crew_scheduler.exporter import rows_as_dicts, rows_for
from crew_scheduler.monthly import apply_monthly_defaults, monthly_template
from crew_scheduler.policy import ensure_default_policy, load_active_policy, seed_catalog
from crew_scheduler.segments import segment_windows_for_person
from crew_scheduler.validation import validate_schedule


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_database()
    ensure_default_policy(SessionLocal)
    with SessionLocal() as session:
        seed_catalog(session, load_active_policy(session))
    yield


app = FastAPI(title="Crew Scheduler API", version="0.1", lifespan=lifespan)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _bad_request(exc: ValueError) -> HTTPException:
    if isinstance(exc, AssignmentBlocked):
        return HTTPException(status_code=400, detail={"reason": exc.reason, "message": str(exc)})
    return HTTPException(status_code=400, detail=str(exc))


def _parse_day(value: str):
    try:
        return parse_date(value)
    except ValueError as exc:
        raise _bad_request(exc) from exc


def _required(payload: Dict[str, Any], *keys: str) -> None:
    missing = [key for key in keys if payload.get(key) in (None, "")]
    if missing:
        raise HTTPException(status_code=400, detail=f"{', '.join(missing)} required")


def _actor(payload: Dict[str, Any]) -> str:
    value = payload.get("actor")
    if value is None:
        return "api"
    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail="actor must be a string")
    return value.strip() or "api"


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


@app.get("/api/v1/days/{day}/windows")
def day_windows(day: str, person_id: int = Query(...), db=Depends(get_db)) -> JSONResponse:
    date_value = _parse_day(day)
    windows = segment_windows_for_person(db, date_value, person_id)
    payload = {
        "date": date_value.isoformat(),
        "person_id": person_id,
        "windows": {
            name: {"start": window.start.isoformat(timespec="minutes"), "end": window.end.isoformat(timespec="minutes")}
            for name, window in windows.items()
        },
    }
    return JSONResponse(content=jsonable_encoder(payload))


@app.get("/api/v1/days/{day}/coverage")
def day_coverage(day: str, segment: Optional[str] = Query(None), db=Depends(get_db)) -> JSONResponse:
    date_value = _parse_day(day)
    cells = coverage_for_day(db, date_value, segment)
    return JSONResponse(
        content=jsonable_encoder({"date": date_value.isoformat(), "cells": [cell.to_dict() for cell in cells]})
    )


@app.get("/api/v1/days/{day}/moves")
def day_moves(day: str, segment: str = Query(...), db=Depends(get_db)) -> JSONResponse:
    date_value = _parse_day(day)
    suggestions = move_suggestions(db, date_value, segment)
    return JSONResponse(
        content=jsonable_encoder({"date": date_value.isoformat(), "segment": segment, "moves": suggestions})
    )


@app.get("/api/v1/days/{day}/candidates")
def day_candidates(
    day: str,
    segment: str = Query(...),
    role_id: Optional[int] = Query(None),
    db=Depends(get_db),
) -> JSONResponse:
    date_value = _parse_day(day)
    people = eligible_people(db, date_value, segment, role_id=role_id)
    return JSONResponse(content=jsonable_encoder({"date": date_value.isoformat(), "people": people}))


@app.post("/api/v1/assignments/check")
def assignment_check(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    _required(payload, "date", "person_id", "role_id", "segment")
    date_value = _parse_day(payload["date"])
    try:
        person_id, role_id = int(payload["person_id"]), int(payload["role_id"])
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail="person_id and role_id must be integers") from exc
    verdict = check_assignment(db, date_value, person_id, role_id, payload["segment"])
    return JSONResponse(content=jsonable_encoder(verdict.to_dict()))


@app.post("/api/v1/assignments", status_code=201)
def assignment_create(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    _required(payload, "date", "person_id", "role_id", "segment")
    actor = _actor(payload)
    try:
        record = add_assignment(
            db,
            payload["date"],
            int(payload["person_id"]),
            int(payload["role_id"]),
            payload["segment"],
            actor=actor,
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return JSONResponse(
        status_code=201,
        content=jsonable_encoder(
            {
                "id": record.id,
                "date": record.date.isoformat(),
                "person_id": record.person_id,
                "role_id": record.role_id,
                "segment": record.segment,
            }
        ),
    )


@app.post("/api/v1/assignments/{assignment_id}/move")
def assignment_move(assignment_id: int, payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    _required(payload, "role_id")
    if get_assignment(db, assignment_id) is None:
        raise HTTPException(status_code=404, detail="Assignment not found")
    actor = _actor(payload)
    try:
        record = move_assignment(db, assignment_id, int(payload["role_id"]), actor=actor)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return JSONResponse(content=jsonable_encoder({"id": record.id, "role_id": record.role_id}))


@app.delete("/api/v1/assignments/{assignment_id}")
def assignment_delete(assignment_id: int, actor: str = Query("api"), db=Depends(get_db)) -> JSONResponse:
    if not delete_assignment(db, assignment_id, actor=actor):
        raise HTTPException(status_code=404, detail="Assignment not found")
    return JSONResponse(content={"deleted": assignment_id})


@app.get("/api/v1/months/{month}/template")
def month_template(month: str, db=Depends(get_db)) -> JSONResponse:
    try:
        key = parse_month(month)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return JSONResponse(content=jsonable_encoder({"month": key, "people": monthly_template(db, key)}))


@app.post("/api/v1/months/{month}/apply")
def month_apply(month: str, payload: Dict[str, Any] | None = None, db=Depends(get_db)) -> JSONResponse:
    actor = _actor(payload or {})
    try:
        summary = apply_monthly_defaults(db, month, actor=actor)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return JSONResponse(content=jsonable_encoder(summary))


@app.get("/api/v1/shifts")
def shifts(start: str = Query(...), end: str = Query(...), db=Depends(get_db)) -> JSONResponse:
    start_date = _parse_day(start)
    end_date = _parse_day(end)
    try:
        rows = rows_for(db, start_date, end_date)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return JSONResponse(
        content=jsonable_encoder(
            {"start": start_date.isoformat(), "end": end_date.isoformat(), "rows": rows_as_dicts(rows)}
        )
    )


@app.get("/api/v1/validation")
def validation_report(start: str = Query(...), end: str = Query(...), db=Depends(get_db)) -> JSONResponse:
    try:
        report = validate_schedule(db, start, end)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return JSONResponse(content=jsonable_encoder(report))


@app.get("/api/v1/policy/active")
def active_policy(db=Depends(get_db)) -> JSONResponse:
    policy = get_active_policy(db)
    if not policy:
        raise HTTPException(status_code=404, detail="No active policy found")
    return JSONResponse(content=jsonable_encoder(_policy_payload(policy)))


@app.put("/api/v1/policy/active")
def set_active_policy(payload: Dict[str, Any], db: Session = Depends(get_db)) -> JSONResponse:
    name = payload.get("name")
    params = payload.get("params") or {}
    actor = _actor(payload)
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    policy = upsert_policy(db, name=name, params_dict=params, edited_by=actor)
    record_audit_log(db, user_id=actor, action="POLICY_EDIT", target_type="Policy", target_id=policy.id, payload={"name": policy.name})
    return JSONResponse(content=jsonable_encoder(_policy_payload(policy)))

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from attendance_engine.api.dependencies import get_engine
from attendance_engine.core.security import control_auth
from attendance_engine.models.attendance import DailyAttendanceState
from attendance_engine.models.common import LocationPayload, SyncOutcome, SyncStatus
from attendance_engine.services.engine import AttendanceEngine

router = APIRouter()
logger = logging.getLogger(__name__)

STATUS_CODES = {
    SyncStatus.SUCCESS: 200,
    SyncStatus.RECONCILED: 200,
    SyncStatus.REJECTED: 422,
    SyncStatus.BUSY: 409,
    SyncStatus.ROLLED_BACK: 502,
    SyncStatus.DISCARDED: 410,
}

def outcome_response(outcome: SyncOutcome, engine: AttendanceEngine) -> JSONResponse:
    """Outcome plus the state after it, with an HTTP status matching how it ended"""
    content = {
        "outcome": outcome.model_dump(mode="json"),
        "state": engine.state().model_dump(mode="json"),
    }
    return JSONResponse(status_code=STATUS_CODES.get(outcome.status, 500), content=content)

@router.get("/attendance/state", response_model=DailyAttendanceState)
async def get_state(engine: AttendanceEngine = Depends(get_engine)):
    return engine.state()

@router.get("/attendance/worked-time")
async def get_worked_time(engine: AttendanceEngine = Depends(get_engine)):
    """Worked time and shortage for the effective shift"""
    worked = engine.worked_time()
    if worked is None:
        return {"has_shift": False}
    return {
        "has_shift": True,
        "worked": worked.format_worked(),
        "shortage": worked.format_shortage(),
        **worked.model_dump(mode="json"),
    }

@router.post("/attendance/refresh", dependencies=[Depends(control_auth)])
def refresh(engine: AttendanceEngine = Depends(get_engine)):
    applied = engine.refresh()
    return {"applied": applied, "state": engine.state().model_dump(mode="json")}

@router.post("/attendance/check-in", dependencies=[Depends(control_auth)])
def check_in(payload: Optional[LocationPayload] = None, engine: AttendanceEngine = Depends(get_engine)):
    """Validate locally, apply optimistically, then confirm with the backend"""
    outcome = engine.check_in(payload)
    logger.info(f"Check-in finished: {outcome.status.value} {outcome.code}")
    return outcome_response(outcome, engine)

@router.post("/attendance/check-out", dependencies=[Depends(control_auth)])
def check_out(payload: Optional[LocationPayload] = None, engine: AttendanceEngine = Depends(get_engine)):
    outcome = engine.check_out(payload)
    logger.info(f"Check-out finished: {outcome.status.value} {outcome.code}")
    return outcome_response(outcome, engine)

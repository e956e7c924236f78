import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from attendance_engine.api.dependencies import get_engine
from attendance_engine.core.errors import AttendanceEngineError
from attendance_engine.models.metrics import AttendanceMetrics
from attendance_engine.services.engine import AttendanceEngine
from attendance_engine.services.metrics_service import generate_metrics_csv

router = APIRouter()
logger = logging.getLogger(__name__)

def parse_range(start: Optional[str], end: Optional[str]):
    """Parse YYYY-MM-DD bounds; defaults to the current month up to today"""
    try:
        end_date = datetime.strptime(end, "%Y-%m-%d").date() if end else date.today()
        start_date = datetime.strptime(start, "%Y-%m-%d").date() if start else end_date.replace(day=1)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="start must not be after end")
    return start_date, end_date

def load_metrics(engine: AttendanceEngine, start_date: date, end_date: date) -> AttendanceMetrics:
    try:
        return engine.metrics(start_date, end_date)
    except AttendanceEngineError as e:
        logger.error(f"Failed to load attendance history: {e}")
        raise HTTPException(status_code=502, detail=e.message)

@router.get("/attendance/metrics", response_model=AttendanceMetrics)
def get_metrics(start: Optional[str] = None, end: Optional[str] = None,
                engine: AttendanceEngine = Depends(get_engine)):
    """Hour-based attendance percentage for a date range"""
    start_date, end_date = parse_range(start, end)
    return load_metrics(engine, start_date, end_date)

@router.get("/attendance/metrics.csv")
def get_metrics_csv(start: Optional[str] = None, end: Optional[str] = None,
                    engine: AttendanceEngine = Depends(get_engine)):
    start_date, end_date = parse_range(start, end)
    metrics = load_metrics(engine, start_date, end_date)
    return Response(
        content=generate_metrics_csv(metrics),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=attendance_{start_date}_to_{end_date}.csv"}
    )

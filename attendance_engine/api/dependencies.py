from fastapi import HTTPException, Request

from attendance_engine.services.engine import AttendanceEngine

def get_engine(request: Request) -> AttendanceEngine:
    """The engine built by the application lifespan"""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Attendance engine not started")
    return engine

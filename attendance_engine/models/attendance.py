from pydantic import BaseModel, Field
from datetime import date, datetime
from enum import Enum
from typing import Optional, List, Tuple

from attendance_engine.models.schedule import ShiftSchedule

class AttendancePhase(str, Enum):
    NOT_CHECKED_IN = "NOT_CHECKED_IN"
    CHECKED_IN_OPEN = "CHECKED_IN_OPEN"
    CHECKED_OUT_CLOSABLE = "CHECKED_OUT_CLOSABLE"

class AttendanceRecord(BaseModel):
    """One check-in (and optional check-out) cycle"""
    id: Optional[int] = None
    schedule_id: Optional[int] = None
    date: date
    time_in: Optional[datetime] = None
    time_out: Optional[datetime] = None
    status: Optional[str] = None  # "present" or "late"
    is_optimistic: bool = False

    @property
    def is_open(self) -> bool:
        return self.time_in is not None and self.time_out is None

class LocationFix(BaseModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: datetime = Field(default_factory=datetime.now)

class GeofenceResult(BaseModel):
    distance_meters: Optional[float] = None
    within_radius: bool = False

class OperationEligibility(BaseModel):
    """Whether a check-in or check-out may be attempted now, with the reason code"""
    allowed: bool
    code: str
    message: str
    distance_meters: Optional[float] = None

class WorkedTime(BaseModel):
    """Worked time and shortage for one shift, all values non-negative"""
    worked_ms: int = 0
    duration_ms: int = 0
    shortage_ms: int = 0
    progress_percent: float = 0.0
    effective_in: Optional[datetime] = None
    effective_out: Optional[datetime] = None
    is_open: bool = False

    def format_worked(self) -> str:
        return format_duration_ms(self.worked_ms)

    def format_shortage(self) -> str:
        return format_duration_ms(self.shortage_ms)

def format_duration_ms(value_ms: int) -> str:
    """Render milliseconds as HH:MM:SS"""
    total_seconds = max(0, int(value_ms // 1000))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"

class DailyAttendanceState(BaseModel):
    """Read-model derived from today's schedules and records; never authoritative"""
    phase: AttendancePhase = AttendancePhase.NOT_CHECKED_IN
    effective_shift: Optional[ShiftSchedule] = None
    checkin_window: Optional[Tuple[datetime, datetime]] = None
    today_records: List[AttendanceRecord] = Field(default_factory=list)
    is_checked_in: bool = False
    can_check_in: bool = False
    can_check_out: bool = False
    is_on_duty: bool = False
    checkout_overdue: bool = False  # open past shift end plus checkout tolerance; informational only
    work_location_assigned: bool = False
    last_refreshed_at: Optional[datetime] = None

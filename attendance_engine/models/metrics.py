from pydantic import BaseModel
from datetime import date
from typing import Optional, List

from attendance_engine.models.attendance import AttendanceRecord
from attendance_engine.models.schedule import ShiftTemplate

class HistoryRecord(BaseModel):
    """Historical attendance record with the shift it was scheduled against"""
    record: AttendanceRecord
    template: Optional[ShiftTemplate] = None

class RecordMetrics(BaseModel):
    date: date
    schedule_id: Optional[int] = None
    scheduled_hours: float
    attended_hours: float
    status: str  # present, late, absent

class AttendanceMetrics(BaseModel):
    """Hour-based attendance statistics for a date range"""
    range_start: date
    range_end: date
    scheduled_hours: float = 0.0
    attended_hours: float = 0.0
    attendance_percentage: float = 0.0
    present_days: int = 0
    late_days: int = 0
    absent_days: int = 0
    total_records: int = 0
    records: List[RecordMetrics] = []

from pydantic import BaseModel, Field
import datetime
from typing import Optional, Tuple

class ShiftTemplate(BaseModel):
    """Canonical shift hours; end_time before start_time means the shift runs overnight"""
    start_time: datetime.time
    end_time: datetime.time
    duration_hours: Optional[float] = None
    name: Optional[str] = None

    @property
    def is_overnight(self) -> bool:
        return self.end_time < self.start_time

class ShiftSchedule(BaseModel):
    """One scheduled shift for a staff member on a given day"""
    id: int
    date: Optional[datetime.date] = None
    template: ShiftTemplate
    sequence: int = 0
    unit: Optional[str] = None

class ToleranceSettings(BaseModel):
    checkin_before_shift_minutes: int = 30
    late_tolerance_minutes: int = 15
    checkout_after_shift_minutes: int = 60

class WorkLocation(BaseModel):
    id: int
    name: Optional[str] = None
    latitude: float
    longitude: float
    radius_meters: float = 100.0
    tolerance: ToleranceSettings = Field(default_factory=ToleranceSettings)

class ShiftWindow(BaseModel):
    """A shift anchored to concrete datetimes for one evaluation"""
    schedule: ShiftSchedule
    start: datetime.datetime
    end: datetime.datetime
    buffered_start: datetime.datetime
    is_current: bool = False
    is_upcoming: bool = False

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.end - self.start).total_seconds())

class ShiftResolution(BaseModel):
    """Result of picking the effective shift out of today's schedules"""
    effective_shift: Optional[ShiftSchedule] = None
    window: Optional[ShiftWindow] = None
    checkin_window: Optional[Tuple[datetime.datetime, datetime.datetime]] = None
    reason: str = "none"  # open_record, current, upcoming, past, fallback, none

    @property
    def is_resolved(self) -> bool:
        return self.effective_shift is not None

from pydantic import BaseModel
from datetime import datetime
from enum import Enum
from typing import Optional, Any

from attendance_engine.models.attendance import AttendanceRecord

class LocationPayload(BaseModel):
    """Coordinates posted to the local check-in/check-out routes"""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None

class ApiEnvelope(BaseModel):
    """Backend response envelope"""
    success: bool
    code: Optional[str] = None
    message: Optional[str] = None
    data: Optional[Any] = None

class SyncStatus(str, Enum):
    SUCCESS = "success"
    RECONCILED = "reconciled"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"
    BUSY = "busy"
    DISCARDED = "discarded"

class SyncOutcome(BaseModel):
    action: str  # "check_in" or "check_out"
    status: SyncStatus
    code: Optional[str] = None
    message: str
    severity: str = "low"
    record: Optional[AttendanceRecord] = None
    timestamp: datetime

    @property
    def ok(self) -> bool:
        return self.status in (SyncStatus.SUCCESS, SyncStatus.RECONCILED)

from typing import Optional

class AttendanceEngineError(Exception):
    """Base error for everything the engine raises internally"""

    default_code = "SYSTEM_UNKNOWN"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

class ValidationError(AttendanceEngineError):
    """Check-in precondition failed (window, geofence, location, accuracy)"""
    default_code = "VALIDATION_FAILED"

class ConflictError(AttendanceEngineError):
    """Server reported an existing state the client did not expect"""
    default_code = "CONFLICT"

class RemoteRejectedError(AttendanceEngineError):
    """Server answered success=false with a code that is not informational"""
    default_code = "REMOTE_REJECTED"

class TransportError(AttendanceEngineError):
    """Network failure, timeout, server error or unreadable response"""
    default_code = "NETWORK_ERROR"

class DataError(AttendanceEngineError):
    """Malformed schedule or record payload"""
    default_code = "DATA_INVALID"

class LocationUnavailableError(AttendanceEngineError):
    """Location provider could not produce a fix"""
    default_code = "GPS_UNAVAILABLE"

# Severity of the transient notice shown for each outcome code
SEVERITY_BY_CODE = {
    "VALID": "low",
    "VALID_BUT_LATE": "low",
    "VALID_CHECKOUT": "low",
    "ALREADY_CHECKED_IN": "low",
    "ALREADY_CHECKED_IN_OPEN": "low",
    "ACTIVE_SESSION_EXISTS": "low",
    "HAS_UNCLOSED_SESSION": "low",
    "ALREADY_CHECKED_OUT": "low",
    "OPERATION_BUSY": "low",
    "SESSION_CLOSED": "low",
    "OUTSIDE_CHECKIN_WINDOW": "medium",
    "NO_SCHEDULE": "medium",
    "NOT_CHECKED_IN": "medium",
    "GPS_NOT_ACCURATE": "medium",
    "NETWORK_TIMEOUT": "medium",
    "OUTSIDE_GEOFENCE": "high",
    "NO_WORK_LOCATION": "high",
    "GPS_UNAVAILABLE": "high",
    "NETWORK_CONNECTION": "high",
    "NETWORK_SERVER_ERROR": "high",
    "CHECKOUT_NOT_ALLOWED": "high",
    "SYSTEM_UNKNOWN": "high",
}

def severity_for(code: Optional[str]) -> str:
    return SEVERITY_BY_CODE.get(code or "", "high")

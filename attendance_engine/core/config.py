
import os
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

def parse_list_env(env_var: str, default: List[str] = None) -> List[str]:
    """Parse comma-separated environment variable into list"""
    if default is None:
        default = []

    value = os.getenv(env_var, "")
    if not value.strip():
        return default

    # Split by comma and strip whitespace
    return [item.strip() for item in value.split(",") if item.strip()]

def parse_bool_env(env_var: str, default: bool = False) -> bool:
    """Parse boolean environment variable"""
    return os.getenv(env_var, str(default)).lower() in ("true", "1", "yes", "on")

def parse_float_env(env_var: str, default: Optional[float] = None) -> Optional[float]:
    """Parse float environment variable, falling back to default when unset or invalid"""
    value = os.getenv(env_var, "")
    if not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        return default

class AttendanceConfig:
    """Attendance Rules and Engine Timing from Environment"""

    # Tolerance defaults, used when the work location carries no settings
    CHECKIN_BEFORE_SHIFT_MINUTES = int(os.getenv("CHECKIN_BEFORE_SHIFT_MINUTES", "30"))
    LATE_TOLERANCE_MINUTES = int(os.getenv("LATE_TOLERANCE_MINUTES", "15"))
    CHECKOUT_AFTER_SHIFT_MINUTES = int(os.getenv("CHECKOUT_AFTER_SHIFT_MINUTES", "60"))

    # GPS accuracy gate for check-in (0 disables)
    MAX_GPS_ACCURACY_METERS = float(os.getenv("MAX_GPS_ACCURACY_METERS", "0"))

    # Background timers
    POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "30"))
    TICK_INTERVAL_SECONDS = float(os.getenv("TICK_INTERVAL_SECONDS", "1"))

    # Fixed kiosk position, used when a command arrives without coordinates
    STATIC_LATITUDE = parse_float_env("STATIC_LATITUDE")
    STATIC_LONGITUDE = parse_float_env("STATIC_LONGITUDE")
    STATIC_ACCURACY = parse_float_env("STATIC_ACCURACY", 10.0)

class BackendConfig:
    """Attendance Backend API Settings from Environment"""

    BASE_URL = os.getenv("ATTENDANCE_API_BASE_URL", "http://localhost:8080")
    API_TOKEN = os.getenv("ATTENDANCE_API_TOKEN", "")
    VERIFY_TLS = parse_bool_env("ATTENDANCE_API_VERIFY_TLS", True)

    # Every call is bounded; only GET reads are retried
    REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "5"))
    READ_RETRY_TOTAL = int(os.getenv("READ_RETRY_TOTAL", "3"))
    READ_RETRY_BACKOFF_FACTOR = float(os.getenv("READ_RETRY_BACKOFF_FACTOR", "0.5"))

    # Endpoint paths
    TODAY_SCHEDULE_PATH = os.getenv("TODAY_SCHEDULE_PATH", "/api/v2/attendance/today-schedule")
    TODAY_RECORDS_PATH = os.getenv("TODAY_RECORDS_PATH", "/api/v2/attendance/today-records")
    WORK_LOCATION_PATH = os.getenv("WORK_LOCATION_PATH", "/api/v2/attendance/work-location")
    HISTORY_PATH = os.getenv("HISTORY_PATH", "/api/v2/attendance/history")
    CHECKIN_PATH = os.getenv("CHECKIN_PATH", "/api/v2/attendance/checkin")
    CHECKOUT_PATH = os.getenv("CHECKOUT_PATH", "/api/v2/attendance/checkout")

    # Failure codes that report a real server state rather than an error
    SOFT_FAILURE_CODES = parse_list_env(
        "SOFT_FAILURE_CODES",
        [
            "ALREADY_CHECKED_IN",
            "ALREADY_CHECKED_IN_OPEN",
            "ACTIVE_SESSION_EXISTS",
            "HAS_UNCLOSED_SESSION",
            "ALREADY_CHECKED_OUT",
        ]
    )

class ServerConfig:
    """Local Engine Server Configuration from Environment"""

    # Server settings
    HOST = os.getenv("ENGINE_HOST", "127.0.0.1")
    PORT = int(os.getenv("ENGINE_PORT", "8000"))
    LOG_LEVEL = os.getenv("ENGINE_LOG_LEVEL", "info")

    # Security settings
    ENGINE_SECRET = os.getenv("ENGINE_SECRET", "")
    LOCALHOST_ONLY_CONTROL = parse_bool_env("LOCALHOST_ONLY_CONTROL", True)

    # Development settings
    START_SCHEDULER = parse_bool_env("START_SCHEDULER", True)
    ENABLE_DEBUG_ENDPOINTS = parse_bool_env("ENABLE_DEBUG_ENDPOINTS", True)
    ENABLE_API_DOCS = parse_bool_env("ENABLE_API_DOCS", True)

    # CORS settings
    CORS_ORIGINS = parse_list_env("CORS_ORIGINS", ["*"])
    CORS_ALLOW_CREDENTIALS = parse_bool_env("CORS_ALLOW_CREDENTIALS", True)

    # App metadata
    APP_NAME = os.getenv("APP_NAME", "Attendance Engine")
    APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
    APP_DESCRIPTION = os.getenv("APP_DESCRIPTION", "Shift-aware check-in/check-out reconciliation for hospital staff")

"""
Normalization of backend payloads into canonical models.

The backend has shipped several field layouts over time (``jam_masuk`` at the
top level, nested under ``shift_template`` or formatted under ``shift_info``).
Everything is folded into one shape here so the resolver and state machine
never branch on naming variants. Malformed entries are dropped with a warning.
"""
import logging
import math
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import ValidationError as ModelValidationError

from attendance_engine.core.errors import DataError
from attendance_engine.models.attendance import AttendanceRecord
from attendance_engine.models.metrics import HistoryRecord
from attendance_engine.models.schedule import ShiftSchedule, ShiftTemplate, ToleranceSettings, WorkLocation

logger = logging.getLogger(__name__)

START_TIME_FIELDS = (
    "start_time", "jam_masuk",
    "shift_template.jam_masuk", "shift_template.start_time",
    "shift_info.jam_masuk_format", "shift_info.jam_masuk",
)
END_TIME_FIELDS = (
    "end_time", "jam_pulang", "jam_keluar",
    "shift_template.jam_pulang", "shift_template.jam_keluar", "shift_template.end_time",
    "shift_info.jam_pulang_format", "shift_info.jam_pulang",
)
DURATION_FIELDS = ("duration_hours", "durasi_jam", "shift_template.durasi_jam", "shift_template.duration_hours")
NAME_FIELDS = ("name", "nama_shift", "shift_template.nama_shift", "shift_info.nama_shift")
DATE_FIELDS = ("date", "tanggal_jaga", "tanggal")
SEQUENCE_FIELDS = ("sequence", "shift_sequence", "urutan")
HISTORY_SHIFT_KEYS = ("shift_template", "shift_info", "start_time", "end_time", "duration_hours", "durasi_jam")

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_HOURS_MINUTES_RE = re.compile(r"^(?:(\d+(?:\.\d+)?)\s*h)?\s*(?:(\d+)\s*m)?$", re.IGNORECASE)

def _lookup(raw: Dict[str, Any], *paths: str) -> Any:
    """Return the first non-empty value found at any of the dotted paths"""
    for path in paths:
        value: Any = raw
        for part in path.split("."):
            if not isinstance(value, dict):
                value = None
                break
            value = value.get(part)
        if value is not None and value != "":
            return value
    return None

def _unwrap_list(payload: Any, keys=("data", "schedules", "records", "items", "history")) -> List[Dict]:
    """Find the list of entries inside a response payload"""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        for key in keys:
            if key in payload:
                return _unwrap_list(payload[key], keys)
    return []

def _is_time_only(value: Any) -> bool:
    return isinstance(value, time) or (isinstance(value, str) and bool(_CLOCK_RE.match(value.strip())))

def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value

def parse_clock_time(value: Any) -> Optional[time]:
    """Parse HH:MM, HH:MM:SS or the time part of a datetime string"""
    if isinstance(value, datetime):
        return _to_local_naive(value).time()
    if isinstance(value, time):
        return value.replace(microsecond=0)
    if not isinstance(value, str):
        return None

    text = value.strip()
    match = _CLOCK_RE.match(text)
    if match:
        hour, minute, second = int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)
        if hour > 23 or minute > 59 or second > 59:
            return None
        return time(hour, minute, second)

    parsed = parse_datetime(text)
    return parsed.time() if parsed else None

def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a full datetime (ISO or 'YYYY-MM-DD HH:MM[:SS]')"""
    if isinstance(value, datetime):
        return _to_local_naive(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _to_local_naive(datetime.fromisoformat(text))
    except ValueError:
        return None

def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None

def parse_timestamp(value: Any, on_date: Optional[date]) -> Optional[datetime]:
    """Parse a record timestamp; time-only values are anchored to on_date"""
    if value is None or value == "":
        return None
    if _is_time_only(value):
        clock = parse_clock_time(value)
        if clock is None or on_date is None:
            return None
        return datetime.combine(on_date, clock)
    return parse_datetime(value)

class DurationParse(NamedTuple):
    """Result of parse_duration: exactly one of duration or error is set"""
    duration: Optional[timedelta]
    error: Optional[str]

    @property
    def ok(self) -> bool:
        return self.error is None

def parse_duration(value: Any) -> DurationParse:
    """Parse a shift duration without ever raising"""
    if value is None or value == "":
        return DurationParse(None, "missing duration")

    if isinstance(value, bool):
        return DurationParse(None, f"unsupported duration type: {type(value).__name__}")

    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value) or value < 0:
            return DurationParse(None, f"invalid duration: {value}")
        return DurationParse(timedelta(hours=value), None)

    if not isinstance(value, str):
        return DurationParse(None, f"unsupported duration type: {type(value).__name__}")

    text = value.strip()
    try:
        return parse_duration(float(text))
    except ValueError:
        pass

    match = _CLOCK_RE.match(text)
    if match:
        hours, minutes, seconds = int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)
        return DurationParse(timedelta(hours=hours, minutes=minutes, seconds=seconds), None)

    match = _HOURS_MINUTES_RE.match(text)
    if match and (match.group(1) or match.group(2)):
        hours = float(match.group(1) or 0)
        minutes = int(match.group(2) or 0)
        return DurationParse(timedelta(hours=hours, minutes=minutes), None)

    return DurationParse(None, f"unrecognized duration: {value!r}")

def duration_or_zero(value: Any) -> timedelta:
    result = parse_duration(value)
    return result.duration if result.ok else timedelta(0)

def normalize_shift_template(raw: Dict[str, Any]) -> Optional[ShiftTemplate]:
    """Build a ShiftTemplate from any supported layout, or None when times are unusable"""
    start = parse_clock_time(_lookup(raw, *START_TIME_FIELDS))
    end = parse_clock_time(_lookup(raw, *END_TIME_FIELDS))
    if start is None or end is None:
        return None

    duration = parse_duration(_lookup(raw, *DURATION_FIELDS))
    duration_hours = round(duration.duration.total_seconds() / 3600, 4) if duration.ok else None

    try:
        return ShiftTemplate(
            start_time=start,
            end_time=end,
            duration_hours=duration_hours,
            name=_lookup(raw, *NAME_FIELDS),
        )
    except ModelValidationError as e:
        logger.warning(f"Unusable shift template: {e.error_count()} invalid field(s)")
        return None

def normalize_schedule(raw: Dict[str, Any]) -> ShiftSchedule:
    schedule_id = _lookup(raw, "id", "jadwal_jaga_id", "schedule_id")
    try:
        schedule_id = int(schedule_id)
    except (TypeError, ValueError):
        raise DataError(f"Schedule without usable id: {schedule_id!r}", "INVALID_SCHEDULE")

    template = normalize_shift_template(raw)
    if template is None:
        raise DataError(f"Schedule {schedule_id} has malformed or missing shift times", "INVALID_SHIFT_TIMES")

    try:
        sequence = int(_lookup(raw, *SEQUENCE_FIELDS) or 0)
    except (TypeError, ValueError):
        sequence = 0

    try:
        return ShiftSchedule(
            id=schedule_id,
            date=parse_date(_lookup(raw, *DATE_FIELDS)),
            template=template,
            sequence=sequence,
            unit=_lookup(raw, "unit", "unit_kerja"),
        )
    except ModelValidationError as e:
        raise DataError(f"Schedule {schedule_id} has invalid fields: {e}", "INVALID_SCHEDULE")

def normalize_schedules(payload: Any) -> List[ShiftSchedule]:
    """Normalize a schedule response; malformed entries degrade to being absent"""
    schedules = []
    for raw in _unwrap_list(payload):
        try:
            schedules.append(normalize_schedule(raw))
        except DataError as e:
            logger.warning(f"Dropping schedule entry: {e}")
    return schedules

def normalize_tolerance(raw: Optional[Dict[str, Any]], defaults: Optional[ToleranceSettings] = None) -> ToleranceSettings:
    """Tolerance settings with per-field fallback to defaults"""
    defaults = defaults or ToleranceSettings()
    raw = raw or {}
    values = {}
    for field in ("checkin_before_shift_minutes", "late_tolerance_minutes", "checkout_after_shift_minutes"):
        value = _lookup(raw, field, f"tolerance_settings.{field}")
        try:
            values[field] = int(value) if value is not None else getattr(defaults, field)
        except (TypeError, ValueError):
            values[field] = getattr(defaults, field)
    return ToleranceSettings(**values)

def normalize_work_location(payload: Any, defaults: Optional[ToleranceSettings] = None) -> Optional[WorkLocation]:
    """Normalize the assigned work location; None when the payload carries none, DataError when it is malformed"""
    raw = payload
    if isinstance(raw, dict) and isinstance(raw.get("data"), (dict, list)):
        raw = raw["data"]
    if isinstance(raw, dict) and isinstance(raw.get("work_location"), dict):
        raw = raw["work_location"]
    if isinstance(raw, list):
        raw = raw[0] if raw else None
    if not isinstance(raw, dict):
        return None

    try:
        latitude = float(_lookup(raw, "latitude", "lat"))
        longitude = float(_lookup(raw, "longitude", "lng", "lon"))
    except (TypeError, ValueError):
        logger.warning(f"Work location without usable coordinates: {raw.get('id')}")
        return None

    try:
        radius = float(_lookup(raw, "radius_meters", "radius") or 100)
    except (TypeError, ValueError):
        radius = 100.0

    try:
        return WorkLocation(
            id=int(_lookup(raw, "id") or 0),
            name=_lookup(raw, "name", "nama"),
            latitude=latitude,
            longitude=longitude,
            radius_meters=radius,
            tolerance=normalize_tolerance(raw, defaults),
        )
    except (TypeError, ValueError) as e:
        raise DataError(f"Work location {raw.get('id')!r} has invalid fields: {e}", "INVALID_WORK_LOCATION")

def normalize_record(raw: Dict[str, Any], default_date: Optional[date] = None) -> AttendanceRecord:
    record_date = parse_date(_lookup(raw, "date", "tanggal")) or default_date
    if record_date is None:
        raise DataError("Attendance record without a date", "INVALID_RECORD")

    raw_in = _lookup(raw, "time_in", "check_in_time", "jam_masuk")
    raw_out = _lookup(raw, "time_out", "check_out_time", "jam_keluar")
    time_in = parse_timestamp(raw_in, record_date)
    time_out = parse_timestamp(raw_out, record_date)

    if raw_in is not None and time_in is None:
        raise DataError(f"Unreadable time_in: {raw_in!r}", "INVALID_RECORD")

    # A time-only checkout earlier than check-in belongs to the next day
    if time_in and time_out and time_out < time_in and _is_time_only(raw_out):
        time_out += timedelta(days=1)

    schedule_id = _lookup(raw, "schedule_id", "jadwal_jaga_id")
    record_id = _lookup(raw, "id")
    try:
        schedule_id = int(schedule_id) if schedule_id is not None else None
        record_id = int(record_id) if record_id is not None else None
    except (TypeError, ValueError):
        raise DataError(f"Attendance record with non-numeric ids: {raw!r}", "INVALID_RECORD")

    try:
        return AttendanceRecord(
            id=record_id,
            schedule_id=schedule_id,
            date=record_date,
            time_in=time_in,
            time_out=time_out,
            status=_lookup(raw, "status"),
        )
    except ModelValidationError as e:
        raise DataError(f"Attendance record {record_id} has invalid fields: {e}", "INVALID_RECORD")

def normalize_records(payload: Any, default_date: Optional[date] = None) -> List[AttendanceRecord]:
    records = []
    for raw in _unwrap_list(payload):
        try:
            records.append(normalize_record(raw, default_date))
        except DataError as e:
            logger.warning(f"Dropping attendance record: {e}")
    return records

def normalize_history(payload: Any) -> List[HistoryRecord]:
    """Normalize attendance history; each entry keeps the shift it was scheduled against"""
    history = []
    for raw in _unwrap_list(payload):
        try:
            record = normalize_record(raw)
        except DataError as e:
            logger.warning(f"Dropping history record: {e}")
            continue
        # Top-level jam_masuk is the check-in time here, so shift hours only come from shift blocks
        if isinstance(raw.get("shift"), dict):
            shift_raw = raw["shift"]
        else:
            shift_raw = {key: raw[key] for key in HISTORY_SHIFT_KEYS if key in raw}
        history.append(HistoryRecord(record=record, template=normalize_shift_template(shift_raw)))
    return history

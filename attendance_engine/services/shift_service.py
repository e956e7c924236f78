import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from attendance_engine.core.config import AttendanceConfig
from attendance_engine.models.attendance import AttendanceRecord
from attendance_engine.models.schedule import ShiftResolution, ShiftSchedule, ShiftTemplate, ShiftWindow, ToleranceSettings

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

def default_tolerance() -> ToleranceSettings:
    """Tolerance used when the work location carries no settings"""
    return ToleranceSettings(
        checkin_before_shift_minutes=AttendanceConfig.CHECKIN_BEFORE_SHIFT_MINUTES,
        late_tolerance_minutes=AttendanceConfig.LATE_TOLERANCE_MINUTES,
        checkout_after_shift_minutes=AttendanceConfig.CHECKOUT_AFTER_SHIFT_MINUTES,
    )

def anchor_shift(template: ShiftTemplate, on_date: date) -> Tuple[datetime, datetime]:
    """Concrete start/end for a template on a date; overnight ends roll to the next day"""
    start = datetime.combine(on_date, template.start_time)
    end = datetime.combine(on_date, template.end_time)
    if end < start:
        end += ONE_DAY
    return start, end

def build_shift_window(schedule: ShiftSchedule, now: datetime, tolerance: ToleranceSettings,
                       reference: Optional[datetime] = None) -> ShiftWindow:
    """
    Anchor a schedule around a reference time and flag it against now.

    Undated schedules are anchored to the reference day. For an undated
    overnight shift, a reference in the early-morning tail of the previous
    night's occurrence is matched to that occurrence instead.
    """
    reference = reference or now
    buffer = timedelta(minutes=tolerance.checkin_before_shift_minutes)
    start, end = anchor_shift(schedule.template, schedule.date or reference.date())

    if schedule.date is None and schedule.template.is_overnight and reference < start - buffer:
        if start - ONE_DAY - buffer <= reference <= end - ONE_DAY:
            start, end = start - ONE_DAY, end - ONE_DAY

    buffered_start = start - buffer
    is_current = buffered_start <= now <= end
    return ShiftWindow(
        schedule=schedule,
        start=start,
        end=end,
        buffered_start=buffered_start,
        is_current=is_current,
        is_upcoming=not is_current and start > now,
    )

def _select_window(schedules: List[ShiftSchedule], now: datetime, tolerance: ToleranceSettings) -> Tuple[Optional[ShiftWindow], str]:
    windows = [build_shift_window(s, now, tolerance) for s in schedules]
    if not windows:
        return None, "none"

    current = [w for w in windows if w.is_current]
    if current:
        return min(current, key=lambda w: (w.start, w.schedule.sequence)), "current"

    upcoming = [w for w in windows if w.is_upcoming]
    if upcoming:
        return min(upcoming, key=lambda w: (w.start - now, w.schedule.sequence)), "upcoming"

    past = [w for w in windows if w.start <= now]
    if past:
        return max(past, key=lambda w: (w.start, -w.schedule.sequence)), "past"

    return windows[0], "fallback"

def _resolution(window: Optional[ShiftWindow], reason: str) -> ShiftResolution:
    if window is None:
        return ShiftResolution(reason="none")
    return ShiftResolution(
        effective_shift=window.schedule,
        window=window,
        checkin_window=(window.buffered_start, window.end),
        reason=reason,
    )

def resolve_effective_shift(today_shifts: List[ShiftSchedule], now: datetime,
                            open_record: Optional[AttendanceRecord] = None,
                            tolerance: Optional[ToleranceSettings] = None) -> ShiftResolution:
    """Pick the single shift relevant to now, or to the open record when there is one"""
    tolerance = tolerance or default_tolerance()
    shifts = [s for s in (today_shifts or []) if s is not None]
    if not shifts:
        return ShiftResolution(reason="none")

    if open_record is not None and open_record.is_open:
        if open_record.schedule_id is not None:
            for schedule in shifts:
                if schedule.id == open_record.schedule_id:
                    window = build_shift_window(schedule, now, tolerance, reference=open_record.time_in)
                    return _resolution(window, "open_record")
            logger.warning(f"Open record {open_record.id} points at schedule {open_record.schedule_id} which is not in today's list, matching by check-in time")

        window, _ = _select_window(shifts, open_record.time_in, tolerance)
        if window is not None:
            # Re-flag against now; the selection itself used the check-in time
            window = build_shift_window(window.schedule, now, tolerance, reference=open_record.time_in)
        return _resolution(window, "open_record")

    window, reason = _select_window(shifts, now, tolerance)
    return _resolution(window, reason)

def is_within_checkin_window(resolution: ShiftResolution, now: datetime) -> bool:
    """Check-in is allowed from the buffered start up to shift end; late tolerance plays no part"""
    if resolution.checkin_window is None:
        return False
    earliest, latest = resolution.checkin_window
    return earliest <= now <= latest

def classify_checkin(shift_start: datetime, time_in: datetime, tolerance: ToleranceSettings) -> str:
    """Status label for a check-in: 'late' once past start plus late tolerance"""
    grace_end = shift_start + timedelta(minutes=tolerance.late_tolerance_minutes)
    return "late" if time_in > grace_end else "present"

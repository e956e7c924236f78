from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from attendance_engine.models.attendance import AttendanceRecord, WorkedTime
from attendance_engine.models.schedule import ShiftWindow

Session = Tuple[Optional[datetime], Optional[datetime]]

def _ms(delta_seconds: float) -> int:
    return max(0, int(round(delta_seconds * 1000)))

def calculate_worked_time(shift_start: datetime, shift_end: datetime,
                          sessions: Iterable[Session], now: datetime) -> WorkedTime:
    """
    Worked time and shortage for one shift window.

    sessions are (time_in, time_out) pairs; a missing time_out marks the open
    session, whose checkout is taken as now. Worked time is clamped to
    [shift_start, shift_end]. Shortage counts from shift start, not from the
    actual check-in, up to the checkout (or now while open).
    """
    duration_ms = _ms((shift_end - shift_start).total_seconds())
    pairs: List[Session] = [(t_in, t_out) for t_in, t_out in sessions if t_in is not None]
    is_open = any(t_out is None for _, t_out in pairs)

    # Shortage only depends on how far into the shift we are
    closed_outs = [t_out for _, t_out in pairs if t_out is not None]
    checkout = None if is_open or not closed_outs else max(closed_outs)
    elapsed_until = min(now, checkout) if checkout else now
    elapsed_ms = min(duration_ms, _ms((elapsed_until - shift_start).total_seconds()))
    shortage_ms = max(0, duration_ms - elapsed_ms)

    if not pairs:
        return WorkedTime(duration_ms=duration_ms, shortage_ms=shortage_ms)

    effective_in = max(min(t_in for t_in, _ in pairs), shift_start)

    candidate_outs = closed_outs + ([now] if is_open else [])
    valid_outs = [t for t in candidate_outs if t <= shift_end]
    if valid_outs:
        effective_out = max(valid_outs)
    else:
        effective_out = min(max(candidate_outs), shift_end)

    worked_ms = min(duration_ms, _ms((effective_out - effective_in).total_seconds()))
    progress = min(100.0, worked_ms / duration_ms * 100) if duration_ms else 0.0

    return WorkedTime(
        worked_ms=worked_ms,
        duration_ms=duration_ms,
        shortage_ms=shortage_ms,
        progress_percent=round(progress, 2),
        effective_in=effective_in,
        effective_out=effective_out,
        is_open=is_open,
    )

def worked_time_for_window(window: Optional[ShiftWindow], records: List[AttendanceRecord],
                           now: datetime) -> Optional[WorkedTime]:
    """Worked time for the effective shift using the records attached to it"""
    if window is None:
        return None
    schedule_id = window.schedule.id
    sessions = [
        (r.time_in, r.time_out) for r in records
        if r.time_in is not None and (r.schedule_id == schedule_id or r.schedule_id is None)
    ]
    return calculate_worked_time(window.start, window.end, sessions, now)

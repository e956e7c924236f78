from datetime import timedelta

from attendance_engine.models.attendance import AttendanceRecord
from attendance_engine.models.schedule import ShiftSchedule, ShiftTemplate, ToleranceSettings
from attendance_engine.services.shift_service import (
    anchor_shift, classify_checkin, is_within_checkin_window, resolve_effective_shift
)
from conftest import DAY, at, make_schedule

TOLERANCE = ToleranceSettings(checkin_before_shift_minutes=30, late_tolerance_minutes=15,
                              checkout_after_shift_minutes=60)


class TestAnchorShift:

    def test_day_shift(self):
        start, end = anchor_shift(make_schedule(1, "08:00", "16:00").template, DAY)
        assert start == at(8)
        assert end == at(16)

    def test_overnight_end_rolls_to_next_day(self):
        start, end = anchor_shift(make_schedule(1, "22:00", "06:00").template, DAY)
        assert start == at(22)
        assert end == at(6, day=DAY + timedelta(days=1))


class TestCheckInWindow:

    def test_within_pre_shift_buffer(self):
        resolution = resolve_effective_shift([make_schedule(1, "08:00", "16:00")], at(7, 35), tolerance=TOLERANCE)
        assert resolution.is_resolved
        assert is_within_checkin_window(resolution, at(7, 35))

    def test_before_buffer_is_blocked(self):
        resolution = resolve_effective_shift([make_schedule(1, "08:00", "16:00")], at(7, 25), tolerance=TOLERANCE)
        assert resolution.is_resolved
        assert resolution.reason == "upcoming"
        assert not is_within_checkin_window(resolution, at(7, 25))

    def test_window_extends_to_shift_end(self):
        resolution = resolve_effective_shift([make_schedule(1, "08:00", "16:00")], at(15, 59), tolerance=TOLERANCE)
        assert is_within_checkin_window(resolution, at(15, 59))
        assert resolution.checkin_window == (at(7, 30), at(16))

    def test_late_tolerance_only_affects_label(self):
        assert classify_checkin(at(8), at(8, 15), TOLERANCE) == "present"
        assert classify_checkin(at(8), at(8, 16), TOLERANCE) == "late"


class TestResolveEffectiveShift:

    def test_no_shifts(self):
        resolution = resolve_effective_shift([], at(9))
        assert not resolution.is_resolved
        assert resolution.reason == "none"

    def test_overnight_shift_late_evening(self):
        resolution = resolve_effective_shift([make_schedule(7, "22:00", "06:00")], at(23, 30), tolerance=TOLERANCE)
        assert resolution.effective_shift.id == 7
        assert resolution.window.start == at(22)
        assert resolution.window.end == at(6, day=DAY + timedelta(days=1))
        assert resolution.window.is_current

    def test_undated_overnight_shift_after_midnight(self):
        undated = ShiftSchedule(id=8, template=ShiftTemplate(start_time=at(22).time(), end_time=at(6).time()))
        now = at(2, day=DAY + timedelta(days=1))
        resolution = resolve_effective_shift([undated], now, tolerance=TOLERANCE)
        assert resolution.window.start == at(22)
        assert resolution.window.is_current

    def test_gap_between_shifts_picks_upcoming(self):
        shifts = [make_schedule(1, "08:00", "12:00"), make_schedule(2, "14:00", "18:00")]
        resolution = resolve_effective_shift(shifts, at(13), tolerance=TOLERANCE)
        assert resolution.effective_shift.id == 2
        assert resolution.reason == "upcoming"

    def test_order_of_shifts_does_not_matter(self):
        shifts = [make_schedule(1, "08:00", "12:00"), make_schedule(2, "14:00", "18:00")]
        for now in (at(7, 45), at(10), at(13), at(15), at(19)):
            forward = resolve_effective_shift(shifts, now, tolerance=TOLERANCE)
            backward = resolve_effective_shift(list(reversed(shifts)), now, tolerance=TOLERANCE)
            assert forward.effective_shift.id == backward.effective_shift.id

    def test_current_beats_upcoming(self):
        shifts = [make_schedule(1, "08:00", "12:00"), make_schedule(2, "14:00", "18:00")]
        assert resolve_effective_shift(shifts, at(11), tolerance=TOLERANCE).effective_shift.id == 1

    def test_after_all_shifts_picks_latest_past(self):
        shifts = [make_schedule(1, "08:00", "12:00"), make_schedule(2, "14:00", "18:00")]
        resolution = resolve_effective_shift(shifts, at(20), tolerance=TOLERANCE)
        assert resolution.effective_shift.id == 2
        assert resolution.reason == "past"

    def test_overlapping_current_shifts_pick_earliest_start(self):
        shifts = [make_schedule(2, "10:00", "18:00"), make_schedule(1, "08:00", "16:00")]
        assert resolve_effective_shift(shifts, at(11), tolerance=TOLERANCE).effective_shift.id == 1

    def test_open_record_forces_its_shift(self):
        shifts = [make_schedule(1, "08:00", "12:00"), make_schedule(2, "14:00", "18:00")]
        open_record = AttendanceRecord(id=5, schedule_id=1, date=DAY, time_in=at(8))
        resolution = resolve_effective_shift(shifts, at(13, 45), open_record=open_record, tolerance=TOLERANCE)
        assert resolution.effective_shift.id == 1
        assert resolution.reason == "open_record"

    def test_open_record_without_schedule_matches_by_check_in_time(self):
        shifts = [make_schedule(1, "08:00", "12:00"), make_schedule(2, "14:00", "18:00")]
        open_record = AttendanceRecord(id=5, date=DAY, time_in=at(8, 10))
        resolution = resolve_effective_shift(shifts, at(14, 5), open_record=open_record, tolerance=TOLERANCE)
        assert resolution.effective_shift.id == 1
        assert not resolution.window.is_current

from attendance_engine.models.attendance import AttendancePhase, AttendanceRecord, LocationFix
from attendance_engine.models.schedule import ToleranceSettings
from attendance_engine.services.state_machine import AttendanceStateMachine
from conftest import DAY, HOSPITAL_LAT, HOSPITAL_LNG, at, make_location, make_schedule

ON_SITE = LocationFix(latitude=HOSPITAL_LAT, longitude=HOSPITAL_LNG, accuracy=8)
FAR_AWAY = LocationFix(latitude=HOSPITAL_LAT + 0.01, longitude=HOSPITAL_LNG, accuracy=8)


class TestDerivedFlags:

    def test_fresh_day(self, machine):
        state = machine.derive()
        assert state.phase == AttendancePhase.NOT_CHECKED_IN
        assert state.can_check_in
        assert not state.can_check_out
        assert state.is_on_duty
        assert state.work_location_assigned

    def test_open_record(self, machine):
        machine.update_records([AttendanceRecord(id=1, schedule_id=101, date=DAY, time_in=at(8))])
        state = machine.derive()
        assert state.phase == AttendancePhase.CHECKED_IN_OPEN
        assert state.is_checked_in
        assert not state.can_check_in
        assert state.can_check_out

    def test_closed_record_keeps_check_out_available(self, machine):
        machine.update_records([AttendanceRecord(id=1, schedule_id=101, date=DAY, time_in=at(8), time_out=at(12))])
        state = machine.derive()
        assert state.phase == AttendancePhase.CHECKED_OUT_CLOSABLE
        assert state.can_check_out
        assert state.can_check_in
        assert not state.is_checked_in

    def test_failed_fetch_keeps_last_known_state(self, machine):
        machine.update_records([AttendanceRecord(id=1, schedule_id=101, date=DAY, time_in=at(8))])
        before = machine.derive()
        machine.mark_fetch_failed("today records", RuntimeError("timeout"))
        after = machine.derive()
        assert after.can_check_out == before.can_check_out
        assert after.is_checked_in == before.is_checked_in
        assert after.today_records == before.today_records

    def test_checkout_overdue_after_tolerance(self, machine, clock):
        machine.update_records([AttendanceRecord(id=1, schedule_id=101, date=DAY, time_in=at(8))])
        clock.now = at(16, 59)
        assert not machine.derive().checkout_overdue

        clock.now = at(17, 1)
        state = machine.derive()
        assert state.checkout_overdue
        assert state.can_check_out
        assert machine.evaluate_check_out().allowed

    def test_closed_record_is_never_overdue(self, machine, clock):
        machine.update_records([AttendanceRecord(id=1, schedule_id=101, date=DAY, time_in=at(8), time_out=at(16))])
        clock.now = at(18)
        assert not machine.derive().checkout_overdue

    def test_no_schedule_means_off_duty(self, clock):
        machine = AttendanceStateMachine(tolerance_defaults=ToleranceSettings(), clock=clock)
        state = machine.derive()
        assert not state.is_on_duty
        assert state.effective_shift is None


class TestCheckInEligibility:

    def test_on_site_in_window(self, machine):
        eligibility = machine.evaluate_check_in(ON_SITE, at(7, 35))
        assert eligibility.allowed
        assert eligibility.code == "VALID"

    def test_late_check_in_is_allowed_and_labelled(self, machine):
        eligibility = machine.evaluate_check_in(ON_SITE, at(9))
        assert eligibility.allowed
        assert eligibility.code == "VALID_BUT_LATE"

    def test_too_early(self, machine):
        eligibility = machine.evaluate_check_in(ON_SITE, at(7, 25))
        assert not eligibility.allowed
        assert eligibility.code == "OUTSIDE_CHECKIN_WINDOW"
        assert "07:30" in eligibility.message

    def test_after_shift_end(self, machine):
        eligibility = machine.evaluate_check_in(ON_SITE, at(16, 1))
        assert eligibility.code == "OUTSIDE_CHECKIN_WINDOW"

    def test_outside_geofence(self, machine):
        eligibility = machine.evaluate_check_in(FAR_AWAY, at(8))
        assert not eligibility.allowed
        assert eligibility.code == "OUTSIDE_GEOFENCE"
        assert eligibility.distance_meters > 1000

    def test_no_work_location(self, machine):
        machine.update_work_location(None)
        assert machine.evaluate_check_in(ON_SITE, at(8)).code == "NO_WORK_LOCATION"

    def test_no_fix(self, machine):
        assert machine.evaluate_check_in(None, at(8)).code == "GPS_UNAVAILABLE"

    def test_no_schedule(self, clock):
        machine = AttendanceStateMachine(tolerance_defaults=ToleranceSettings(), clock=clock)
        machine.update_work_location(make_location())
        assert machine.evaluate_check_in(ON_SITE, at(8)).code == "NO_SCHEDULE"

    def test_already_checked_in(self, machine):
        machine.update_records([AttendanceRecord(id=1, schedule_id=101, date=DAY, time_in=at(8))])
        assert machine.evaluate_check_in(ON_SITE, at(8, 5)).code == "ALREADY_CHECKED_IN"

    def test_re_entry_after_checkout(self, machine):
        machine.update_records([AttendanceRecord(id=1, schedule_id=101, date=DAY, time_in=at(8), time_out=at(10))])
        assert machine.evaluate_check_in(ON_SITE, at(11)).allowed

    def test_accuracy_gate(self, clock):
        machine = AttendanceStateMachine(tolerance_defaults=ToleranceSettings(), max_gps_accuracy_meters=50, clock=clock)
        machine.update_schedules([make_schedule(101, "08:00", "16:00")])
        machine.update_work_location(make_location())
        blurry = ON_SITE.model_copy(update={"accuracy": 120})
        assert machine.evaluate_check_in(blurry, at(8)).code == "GPS_NOT_ACCURATE"


class TestCheckOutEligibility:

    def test_not_checked_in(self, machine):
        eligibility = machine.evaluate_check_out()
        assert not eligibility.allowed
        assert eligibility.code == "NOT_CHECKED_IN"

    def test_checkout_has_no_time_window(self, machine, clock):
        machine.update_records([AttendanceRecord(id=1, schedule_id=101, date=DAY, time_in=at(8))])
        clock.now = at(23, 50)
        assert machine.evaluate_check_out().allowed


class TestSnapshots:

    def test_restore_is_exact(self, machine):
        machine.update_records([AttendanceRecord(id=1, schedule_id=101, date=DAY, time_in=at(8))])
        snapshot = machine.snapshot()
        before = machine.derive()

        machine.add_record(AttendanceRecord(schedule_id=101, date=DAY, time_in=at(9), is_optimistic=True))
        machine.update_work_location(None)
        machine.restore(snapshot)

        assert machine.derive() == before

    def test_worked_time_tracks_open_record(self, machine, clock):
        machine.update_records([AttendanceRecord(id=1, schedule_id=101, date=DAY, time_in=at(8))])
        clock.now = at(10)
        worked = machine.worked_time()
        assert worked.worked_ms == 2 * 3_600_000
        assert worked.is_open

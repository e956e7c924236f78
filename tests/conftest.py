from datetime import date, datetime, time

import pytest

from attendance_engine.models.common import ApiEnvelope
from attendance_engine.models.schedule import ShiftSchedule, ShiftTemplate, ToleranceSettings, WorkLocation
from attendance_engine.services.state_machine import AttendanceStateMachine

DAY = date(2024, 5, 6)

# RS Harapan Kita, Jakarta
HOSPITAL_LAT = -6.1857
HOSPITAL_LNG = 106.7985


def at(hour, minute=0, day=DAY):
    return datetime.combine(day, time(hour, minute))


def make_schedule(schedule_id, start, end, day=DAY, sequence=0, duration_hours=None):
    return ShiftSchedule(
        id=schedule_id,
        date=day,
        template=ShiftTemplate(
            start_time=time.fromisoformat(start),
            end_time=time.fromisoformat(end),
            duration_hours=duration_hours,
        ),
        sequence=sequence,
    )


def make_location(radius=100.0):
    return WorkLocation(id=1, name="Ruang IGD", latitude=HOSPITAL_LAT, longitude=HOSPITAL_LNG,
                        radius_meters=radius, tolerance=ToleranceSettings())


class FakeClock:
    """Settable clock passed wherever the engine asks for now"""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class FakeApi:
    """
    In-memory backend. Each attribute holds an ApiEnvelope, an exception to
    raise, or a callable producing either.
    """

    def __init__(self):
        self.schedule = ApiEnvelope(success=True, data=[])
        self.records = ApiEnvelope(success=True, data=[])
        self.location = ApiEnvelope(success=True, data=None)
        self.history = ApiEnvelope(success=True, data=[])
        self.check_in_result = ApiEnvelope(success=True, data=None)
        self.check_out_result = ApiEnvelope(success=True, data=None)
        self.calls = []
        self.payloads = []
        self.closed = False

    def _answer(self, name, value):
        self.calls.append(name)
        if callable(value):
            value = value()
        if isinstance(value, Exception):
            raise value
        return value

    def get_today_schedule(self):
        return self._answer("schedule", self.schedule)

    def get_today_records(self):
        return self._answer("records", self.records)

    def get_work_location(self):
        return self._answer("location", self.location)

    def get_attendance_history(self, start, end):
        self.payloads.append({"start": start, "end": end})
        return self._answer("history", self.history)

    def check_in(self, payload):
        self.payloads.append(payload)
        return self._answer("check_in", self.check_in_result)

    def check_out(self, payload):
        self.payloads.append(payload)
        return self._answer("check_out", self.check_out_result)

    def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock(at(8, 5))


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def machine(clock):
    machine = AttendanceStateMachine(tolerance_defaults=ToleranceSettings(), max_gps_accuracy_meters=0, clock=clock)
    machine.update_schedules([make_schedule(101, "08:00", "16:00")])
    machine.update_work_location(make_location())
    return machine

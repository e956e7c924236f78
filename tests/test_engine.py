from datetime import date
from unittest.mock import MagicMock

import pytest

from attendance_engine.core.errors import RemoteRejectedError
from attendance_engine.models.common import ApiEnvelope, LocationPayload, SyncStatus
from attendance_engine.services.engine import AttendanceEngine
from attendance_engine.services.location_service import StaticLocationProvider, resolve_fix
from attendance_engine.services.scheduler import RefreshScheduler
from conftest import HOSPITAL_LAT, HOSPITAL_LNG, at

HISTORY = [
    {"date": "2024-04-01", "jam_masuk": "08:00", "jam_keluar": "16:00",
     "shift_template": {"jam_masuk": "08:00", "jam_pulang": "16:00"}},
    {"date": "2024-04-02", "jam_masuk": "08:00", "jam_keluar": "12:00",
     "shift_template": {"jam_masuk": "08:00", "jam_pulang": "16:00"}},
]


@pytest.fixture
def engine(api, machine, clock):
    return AttendanceEngine(api=api, machine=machine, clock=clock,
                            location_provider=StaticLocationProvider(HOSPITAL_LAT, HOSPITAL_LNG, 10),
                            poll_interval=60, tick_interval=60)


class TestAttendanceEngine:

    def test_check_in_falls_back_to_location_provider(self, engine, api):
        outcome = engine.check_in()
        assert outcome.status == SyncStatus.SUCCESS
        assert api.payloads[0]["latitude"] == HOSPITAL_LAT
        assert api.payloads[0]["accuracy"] == 10

    def test_caller_coordinates_win(self, engine, api):
        far_away = LocationPayload(latitude=HOSPITAL_LAT + 0.01, longitude=HOSPITAL_LNG)
        outcome = engine.check_in(far_away)
        assert outcome.status == SyncStatus.REJECTED
        assert outcome.code == "OUTSIDE_GEOFENCE"

    def test_check_in_without_any_position(self, api, machine, clock):
        engine = AttendanceEngine(api=api, machine=machine, clock=clock,
                                  location_provider=StaticLocationProvider(None, None))
        outcome = engine.check_in()
        assert outcome.status == SyncStatus.REJECTED
        assert outcome.code == "GPS_UNAVAILABLE"

    def test_metrics_from_history(self, engine, api):
        api.history = ApiEnvelope(success=True, data=HISTORY)
        metrics = engine.metrics(date(2024, 4, 1), date(2024, 4, 30))
        assert metrics.attendance_percentage == 75.0
        assert api.payloads[0] == {"start": date(2024, 4, 1), "end": date(2024, 4, 30)}

    def test_metrics_rejected_by_backend(self, engine, api):
        api.history = ApiEnvelope(success=False, code="UNAUTHORIZED", message="Token expired")
        with pytest.raises(RemoteRejectedError):
            engine.metrics(date(2024, 4, 1), date(2024, 4, 30))

    def test_tick_updates_worked_time(self, engine, api, clock):
        api.records = ApiEnvelope(success=True, data=[
            {"id": 1, "jadwal_jaga_id": 101, "date": "2024-05-06", "time_in": "2024-05-06 08:05:00"}
        ])
        engine.check_in()
        clock.now = at(9, 5)
        engine.tick()
        assert engine.latest_worked_time.worked_ms == 3_600_000

    def test_tick_without_open_record_is_a_no_op(self, engine, clock):
        clock.now = at(9, 5)
        engine.tick()
        assert engine.latest_worked_time is None

    def test_close_discards_and_closes_client(self, engine, api):
        engine.close()
        assert api.closed
        assert engine.check_in().status == SyncStatus.DISCARDED


class TestRefreshScheduler:

    def test_start_refreshes_immediately_and_stops(self):
        refresh = MagicMock()
        tick = MagicMock()
        scheduler = RefreshScheduler(refresh, tick, poll_interval=60, tick_interval=60)

        scheduler.start()
        try:
            assert scheduler.running
            refresh.assert_called_once()
            assert scheduler.last_refresh_time is not None
            assert scheduler.next_refresh_time is not None
        finally:
            scheduler.stop()
        assert not scheduler.running
        assert scheduler.jobs == []

    def test_jobs_registered_at_their_intervals(self):
        scheduler = RefreshScheduler(MagicMock(), MagicMock(), poll_interval=60, tick_interval=5)

        scheduler.start(refresh_now=False)
        try:
            intervals = sorted((job.interval, job.unit) for job in scheduler.jobs)
            assert intervals == [(5, "seconds"), (60, "seconds")]
        finally:
            scheduler.stop()

    def test_due_jobs_run_on_the_scheduler(self):
        refresh = MagicMock()
        tick = MagicMock()
        scheduler = RefreshScheduler(refresh, tick, poll_interval=60, tick_interval=5)

        scheduler.start(refresh_now=False)
        try:
            scheduler._scheduler.run_all()
        finally:
            scheduler.stop()
        refresh.assert_called_once()
        tick.assert_called_once()

    def test_without_tick_only_refresh_is_scheduled(self):
        scheduler = RefreshScheduler(MagicMock(), poll_interval=60)

        scheduler.start(refresh_now=False)
        try:
            assert len(scheduler.jobs) == 1
        finally:
            scheduler.stop()

    def test_overlapping_refresh_is_skipped(self):
        results = []
        scheduler = None

        def refresh():
            results.append(scheduler.run_refresh_job())

        scheduler = RefreshScheduler(refresh, poll_interval=60)
        assert scheduler.run_refresh_job()
        assert results == [False]

    def test_refresh_errors_are_contained(self):
        refresh = MagicMock(side_effect=RuntimeError("down"))
        scheduler = RefreshScheduler(refresh, poll_interval=60)
        assert not scheduler.run_refresh_job()
        assert not scheduler.run_refresh_job()
        assert refresh.call_count == 2
        assert scheduler.last_refresh_time is None


class TestResolveFix:

    def test_partial_coordinates_use_provider(self):
        provider = StaticLocationProvider(1.0, 2.0)
        fix = resolve_fix(5.0, None, None, provider)
        assert (fix.latitude, fix.longitude) == (1.0, 2.0)

    def test_no_provider(self):
        assert resolve_fix(None, None, None, None) is None

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, NamedTuple, Optional

from attendance_engine.core.config import AttendanceConfig
from attendance_engine.models.attendance import (
    AttendancePhase, AttendanceRecord, DailyAttendanceState, LocationFix, OperationEligibility, WorkedTime
)
from attendance_engine.models.schedule import ShiftResolution, ShiftSchedule, ToleranceSettings, WorkLocation
from attendance_engine.services.geofence_service import is_accuracy_acceptable, validate_work_location
from attendance_engine.services.shift_service import (
    classify_checkin, default_tolerance, is_within_checkin_window, resolve_effective_shift
)
from attendance_engine.services.worked_time_service import worked_time_for_window

logger = logging.getLogger(__name__)

class MachineSnapshot(NamedTuple):
    """Deep copy of everything the machine owns, for exact rollback"""
    schedules: List[ShiftSchedule]
    records: List[AttendanceRecord]
    work_location: Optional[WorkLocation]
    last_refreshed_at: Optional[datetime]

class AttendanceStateMachine:
    """
    Owns today's schedules, records and work location, and derives the gating
    flags from them. Check-in is gated by window, work location and geofence;
    check-out is never gated once any attendance exists today.

    A failed fetch never clears data: the last known good schedules, records
    and location stay in place so flags are preserved.
    """

    def __init__(self, tolerance_defaults: Optional[ToleranceSettings] = None,
                 max_gps_accuracy_meters: Optional[float] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self._lock = threading.RLock()
        self._tolerance_defaults = tolerance_defaults or default_tolerance()
        self._max_gps_accuracy = (AttendanceConfig.MAX_GPS_ACCURACY_METERS
                                  if max_gps_accuracy_meters is None else max_gps_accuracy_meters)
        self._clock = clock
        self._schedules: List[ShiftSchedule] = []
        self._records: List[AttendanceRecord] = []
        self._work_location: Optional[WorkLocation] = None
        self._last_refreshed_at: Optional[datetime] = None

    # Ingestion

    def update_schedules(self, schedules: List[ShiftSchedule]):
        with self._lock:
            self._schedules = list(schedules)
            self._last_refreshed_at = self._clock()

    def update_records(self, records: List[AttendanceRecord]):
        """Replace today's records with the server's set (full reconciliation, no merge)"""
        with self._lock:
            self._records = list(records)
            self._last_refreshed_at = self._clock()

    def update_work_location(self, work_location: Optional[WorkLocation]):
        with self._lock:
            self._work_location = work_location

    def mark_fetch_failed(self, source: str, error: Exception):
        logger.warning(f"Fetching {source} failed, keeping last known state: {error}")

    # Accessors

    @property
    def tolerance(self) -> ToleranceSettings:
        with self._lock:
            if self._work_location is not None:
                return self._work_location.tolerance
            return self._tolerance_defaults

    @property
    def tolerance_defaults(self) -> ToleranceSettings:
        return self._tolerance_defaults

    @property
    def work_location(self) -> Optional[WorkLocation]:
        with self._lock:
            return self._work_location

    @property
    def schedules(self) -> List[ShiftSchedule]:
        with self._lock:
            return list(self._schedules)

    @property
    def records(self) -> List[AttendanceRecord]:
        with self._lock:
            return [r.model_copy() for r in self._records]

    def open_record(self) -> Optional[AttendanceRecord]:
        """Most recent open record, if any"""
        with self._lock:
            open_records = [r for r in self._records if r.is_open]
            if not open_records:
                return None
            return max(open_records, key=lambda r: r.time_in)

    def latest_record(self) -> Optional[AttendanceRecord]:
        with self._lock:
            records = [r for r in self._records if r.time_in is not None]
            if not records:
                return None
            return max(records, key=lambda r: r.time_in)

    def resolve(self, now: Optional[datetime] = None) -> ShiftResolution:
        now = now or self._clock()
        with self._lock:
            return resolve_effective_shift(self._schedules, now, self.open_record(), self.tolerance)

    # Derivation

    def derive(self, now: Optional[datetime] = None) -> DailyAttendanceState:
        now = now or self._clock()
        with self._lock:
            resolution = self.resolve(now)
            has_open = any(r.is_open for r in self._records)
            has_any = any(r.time_in is not None for r in self._records)

            if has_open:
                phase = AttendancePhase.CHECKED_IN_OPEN
            elif has_any:
                phase = AttendancePhase.CHECKED_OUT_CLOSABLE
            else:
                phase = AttendancePhase.NOT_CHECKED_IN

            # Mirrors the server's auto-close threshold; check-out stays allowed
            overdue = False
            if has_open and resolution.window is not None:
                limit = resolution.window.end + timedelta(minutes=self.tolerance.checkout_after_shift_minutes)
                overdue = now > limit

            return DailyAttendanceState(
                phase=phase,
                effective_shift=resolution.effective_shift,
                checkin_window=resolution.checkin_window,
                today_records=self.records,
                is_checked_in=has_open,
                can_check_in=not has_open,
                can_check_out=has_open or has_any,
                is_on_duty=resolution.is_resolved,
                checkout_overdue=overdue,
                work_location_assigned=self._work_location is not None,
                last_refreshed_at=self._last_refreshed_at,
            )

    def evaluate_check_in(self, fix: Optional[LocationFix], now: Optional[datetime] = None) -> OperationEligibility:
        """Full check-in precondition: no open record, in window, location assigned, inside geofence"""
        now = now or self._clock()
        with self._lock:
            if self.open_record() is not None:
                return OperationEligibility(allowed=False, code="ALREADY_CHECKED_IN",
                                            message="Already checked in, check out first")

            resolution = self.resolve(now)
            if not resolution.is_resolved:
                return OperationEligibility(allowed=False, code="NO_SCHEDULE",
                                            message="No shift scheduled today")

            if not is_within_checkin_window(resolution, now):
                earliest, latest = resolution.checkin_window
                if now < earliest:
                    message = f"Check-in opens at {earliest.strftime('%H:%M')}"
                else:
                    message = f"Check-in closed at {latest.strftime('%H:%M')}"
                return OperationEligibility(allowed=False, code="OUTSIDE_CHECKIN_WINDOW", message=message)

            work_location = self._work_location
            if work_location is None:
                return OperationEligibility(allowed=False, code="NO_WORK_LOCATION",
                                            message="No work location assigned")

            if fix is None:
                return OperationEligibility(allowed=False, code="GPS_UNAVAILABLE",
                                            message="Location is required for check-in")

            if not is_accuracy_acceptable(fix, self._max_gps_accuracy):
                return OperationEligibility(allowed=False, code="GPS_NOT_ACCURATE",
                                            message=f"GPS accuracy {fix.accuracy:.0f}m exceeds {self._max_gps_accuracy:.0f}m")

            geofence = validate_work_location(fix, work_location)
            if not geofence.within_radius:
                distance = f"{geofence.distance_meters:.0f}m" if geofence.distance_meters is not None else "an unknown distance"
                return OperationEligibility(allowed=False, code="OUTSIDE_GEOFENCE",
                                            message=f"You are {distance} from {work_location.name or 'the work location'}, allowed radius {work_location.radius_meters:.0f}m",
                                            distance_meters=geofence.distance_meters)

            status = classify_checkin(resolution.window.start, now, self.tolerance)
            return OperationEligibility(
                allowed=True,
                code="VALID_BUT_LATE" if status == "late" else "VALID",
                message="Check-in allowed" if status != "late" else "Check-in allowed, marked late",
                distance_meters=geofence.distance_meters,
            )

    def evaluate_check_out(self) -> OperationEligibility:
        """Check-out has no time window; any attendance today keeps it available"""
        state = self.derive()
        if state.can_check_out:
            return OperationEligibility(allowed=True, code="VALID_CHECKOUT", message="Check-out allowed")
        return OperationEligibility(allowed=False, code="NOT_CHECKED_IN", message="Not checked in today")

    def worked_time(self, now: Optional[datetime] = None) -> Optional[WorkedTime]:
        now = now or self._clock()
        with self._lock:
            resolution = self.resolve(now)
            return worked_time_for_window(resolution.window, self._records, now)

    # Optimistic mutation support

    def add_record(self, record: AttendanceRecord):
        with self._lock:
            self._records.append(record)

    def replace_record(self, target: AttendanceRecord, replacement: AttendanceRecord) -> bool:
        """Swap the record identical to target for replacement; False when it is gone"""
        with self._lock:
            for index, record in enumerate(self._records):
                if record == target:
                    self._records[index] = replacement
                    return True
            return False

    def snapshot(self) -> MachineSnapshot:
        with self._lock:
            return MachineSnapshot(
                schedules=[s.model_copy(deep=True) for s in self._schedules],
                records=[r.model_copy(deep=True) for r in self._records],
                work_location=self._work_location.model_copy(deep=True) if self._work_location else None,
                last_refreshed_at=self._last_refreshed_at,
            )

    def restore(self, snapshot: MachineSnapshot):
        with self._lock:
            self._schedules = [s.model_copy(deep=True) for s in snapshot.schedules]
            self._records = [r.model_copy(deep=True) for r in snapshot.records]
            self._work_location = snapshot.work_location.model_copy(deep=True) if snapshot.work_location else None
            self._last_refreshed_at = snapshot.last_refreshed_at

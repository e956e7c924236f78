import logging
from datetime import date, datetime
from typing import Callable, Optional

from attendance_engine.core.errors import RemoteRejectedError
from attendance_engine.models.attendance import DailyAttendanceState, WorkedTime
from attendance_engine.models.common import LocationPayload, SyncOutcome
from attendance_engine.models.metrics import AttendanceMetrics
from attendance_engine.services.api_client import AttendanceApiClient
from attendance_engine.services.ingestion_service import normalize_history
from attendance_engine.services.location_service import LocationProvider, provider_from_config, resolve_fix
from attendance_engine.services.metrics_service import aggregate_attendance_metrics
from attendance_engine.services.scheduler import RefreshScheduler
from attendance_engine.services.state_machine import AttendanceStateMachine
from attendance_engine.services.sync_service import OperationLock, SyncController

logger = logging.getLogger(__name__)

class AttendanceEngine:
    """Wires the backend client, state machine, sync controller and timers for one session"""

    def __init__(self, api=None, machine: Optional[AttendanceStateMachine] = None,
                 location_provider: Optional[LocationProvider] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 poll_interval: float = None, tick_interval: float = None):
        self._clock = clock
        self.api = api if api is not None else AttendanceApiClient()
        self.machine = machine or AttendanceStateMachine(clock=clock)
        self.location_provider = location_provider if location_provider is not None else provider_from_config()
        self.lock = OperationLock()
        self.sync = SyncController(self.api, self.machine, self.lock, clock=clock)
        self.scheduler = RefreshScheduler(self.refresh, self.tick,
                                          poll_interval=poll_interval, tick_interval=tick_interval)
        self.latest_worked_time: Optional[WorkedTime] = None

    # Reads

    def state(self) -> DailyAttendanceState:
        return self.machine.derive()

    def worked_time(self) -> Optional[WorkedTime]:
        return self.machine.worked_time()

    def tick(self):
        # Closed sessions do not change with the clock
        if self.machine.open_record() is None:
            return
        self.latest_worked_time = self.machine.worked_time()

    def refresh(self) -> bool:
        return self.sync.refresh()

    # Commands

    def check_in(self, payload: Optional[LocationPayload] = None) -> SyncOutcome:
        payload = payload or LocationPayload()
        fix = resolve_fix(payload.latitude, payload.longitude, payload.accuracy, self.location_provider)
        return self.sync.request_check_in(fix)

    def check_out(self, payload: Optional[LocationPayload] = None) -> SyncOutcome:
        payload = payload or LocationPayload()
        fix = resolve_fix(payload.latitude, payload.longitude, payload.accuracy, self.location_provider)
        return self.sync.request_check_out(fix)

    # Statistics

    def metrics(self, start: date, end: date) -> AttendanceMetrics:
        """Fetch attendance history for the range and aggregate it by hours"""
        envelope = self.api.get_attendance_history(start, end)
        if not envelope.success:
            raise RemoteRejectedError(envelope.message or "History request rejected", envelope.code or "SYSTEM_UNKNOWN")
        history = normalize_history(envelope.data)
        logger.info(f"Aggregating {len(history)} history records for {start} to {end}")
        return aggregate_attendance_metrics(history, start, end, self.machine.tolerance)

    # Lifecycle

    def start(self):
        self.scheduler.start()

    def close(self):
        """Stop timers and discard the results of anything still in flight"""
        self.sync.close()
        self.scheduler.stop()
        close = getattr(self.api, "close", None)
        if close is not None:
            close()

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional

from attendance_engine.core.config import BackendConfig
from attendance_engine.core.errors import (
    AttendanceEngineError, ConflictError, DataError, RemoteRejectedError, TransportError,
    ValidationError, severity_for
)
from attendance_engine.models.attendance import AttendanceRecord, LocationFix
from attendance_engine.models.common import ApiEnvelope, SyncOutcome, SyncStatus
from attendance_engine.services.ingestion_service import (
    normalize_record, normalize_records, normalize_schedules, normalize_work_location
)
from attendance_engine.services.shift_service import classify_checkin
from attendance_engine.services.state_machine import AttendanceStateMachine

logger = logging.getLogger(__name__)

_FAILED = object()

class OperationLock:
    """
    Marks a check-in/check-out round-trip in flight.

    Acquisition never blocks: a second caller is told the lock is busy.
    Each acquisition bumps a generation counter so a refresh that started
    before an operation can tell its data is stale.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._held = False
        self._holder: Optional[str] = None
        self._generation = 0

    def try_acquire(self, holder: str) -> bool:
        with self._guard:
            if self._held:
                return False
            self._held = True
            self._holder = holder
            self._generation += 1
            return True

    def release(self):
        with self._guard:
            self._held = False
            self._holder = None

    @property
    def locked(self) -> bool:
        return self._held

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @property
    def generation(self) -> int:
        return self._generation

    def apply_if_idle(self, generation: int, apply: Callable[[], None]) -> bool:
        """Run apply only if no operation holds the lock or started since generation"""
        with self._guard:
            if self._held or generation != self._generation:
                return False
            apply()
            return True

class AttendanceCommand:
    """Optimistic local mutation with snapshot, apply, commit and rollback"""

    action = ""

    def __init__(self, machine: AttendanceStateMachine, now: datetime):
        self.machine = machine
        self.now = now
        self.snapshot = machine.snapshot()
        self.optimistic: Optional[AttendanceRecord] = None
        self.schedule_id: Optional[int] = None

    def apply(self):
        raise NotImplementedError

    def payload(self, fix: Optional[LocationFix]) -> Dict[str, Any]:
        return {
            "latitude": fix.latitude if fix else None,
            "longitude": fix.longitude if fix else None,
            "accuracy": fix.accuracy if fix else None,
            "schedule_id": self.schedule_id,
        }

    def commit(self, canonical: Optional[AttendanceRecord]):
        """Replace the tentative values with the server's canonical record"""
        if self.optimistic is None:
            return
        replacement = canonical or self.optimistic.model_copy(update={"is_optimistic": False})
        if not self.machine.replace_record(self.optimistic, replacement):
            logger.warning(f"Optimistic {self.action} record vanished before commit, relying on refresh")

    def rollback(self):
        self.machine.restore(self.snapshot)

class CheckInCommand(AttendanceCommand):
    action = "check_in"

    def apply(self):
        resolution = self.machine.resolve(self.now)
        status = None
        if resolution.is_resolved:
            self.schedule_id = resolution.effective_shift.id
            status = classify_checkin(resolution.window.start, self.now, self.machine.tolerance)
        self.optimistic = AttendanceRecord(
            schedule_id=self.schedule_id,
            date=self.now.date(),
            time_in=self.now,
            status=status,
            is_optimistic=True,
        )
        self.machine.add_record(self.optimistic)

class CheckOutCommand(AttendanceCommand):
    action = "check_out"

    def apply(self):
        target = self.machine.open_record() or self.machine.latest_record()
        if target is None:
            return
        self.schedule_id = target.schedule_id
        closed = target.model_copy(update={"time_out": self.now, "is_optimistic": True})
        if self.machine.replace_record(target, closed):
            self.optimistic = closed

class SyncController:
    """
    Runs check-in/check-out against the backend with optimistic local
    state, and runs the background refresh that the lock gates.
    """

    def __init__(self, api, machine: AttendanceStateMachine, lock: Optional[OperationLock] = None,
                 clock: Callable[[], datetime] = datetime.now, soft_codes: Optional[Iterable[str]] = None):
        self.api = api
        self.machine = machine
        self.lock = lock or OperationLock()
        self._clock = clock
        self.soft_codes = frozenset(BackendConfig.SOFT_FAILURE_CODES if soft_codes is None else soft_codes)
        self._closed = False
        self.last_outcome: Optional[SyncOutcome] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        """Tear down; in-flight operations finish but their results are discarded"""
        self._closed = True

    # Commands

    def request_check_in(self, fix: Optional[LocationFix]) -> SyncOutcome:
        return self._run(CheckInCommand, fix, self.api.check_in)

    def request_check_out(self, fix: Optional[LocationFix]) -> SyncOutcome:
        return self._run(CheckOutCommand, fix, self.api.check_out)

    def _validate(self, command_cls, fix: Optional[LocationFix], now: datetime):
        if command_cls is CheckInCommand:
            eligibility = self.machine.evaluate_check_in(fix, now)
        else:
            eligibility = self.machine.evaluate_check_out()
        if not eligibility.allowed:
            raise ValidationError(eligibility.message, eligibility.code)

    def _run(self, command_cls, fix: Optional[LocationFix], remote: Callable[[Dict[str, Any]], ApiEnvelope]) -> SyncOutcome:
        action = command_cls.action
        if self._closed:
            return self._outcome(action, SyncStatus.DISCARDED, "SESSION_CLOSED", "Session closed")

        now = self._clock()
        try:
            self._validate(command_cls, fix, now)
        except ValidationError as e:
            logger.info(f"{action} rejected locally: {e}")
            return self._outcome(action, SyncStatus.REJECTED, e.code, e.message)

        if not self.lock.try_acquire(action):
            logger.info(f"{action} ignored, {self.lock.holder} already in flight")
            return self._outcome(action, SyncStatus.BUSY, "OPERATION_BUSY", "Another attendance operation is in progress")

        command = None
        confirmed = False
        try:
            # State may have changed between the first check and acquiring the lock
            try:
                self._validate(command_cls, fix, now)
            except ValidationError as e:
                logger.info(f"{action} rejected after acquiring the lock: {e}")
                return self._outcome(action, SyncStatus.REJECTED, e.code, e.message)

            command = command_cls(self.machine, now)
            command.apply()

            try:
                envelope = remote(command.payload(fix))
                if not envelope.success:
                    if envelope.code in self.soft_codes:
                        raise ConflictError(envelope.message or envelope.code, envelope.code)
                    raise RemoteRejectedError(envelope.message or f"{action} failed", envelope.code or "SYSTEM_UNKNOWN")
            except ConflictError as e:
                confirmed = True
                if self._closed:
                    return self._outcome(action, SyncStatus.DISCARDED, "SESSION_CLOSED", "Session closed")
                logger.info(f"{action} reported existing server state {e.code}, reconciling")
                self._reload_records(now)
                return self._outcome(action, SyncStatus.RECONCILED, e.code, e.message)
            except (TransportError, RemoteRejectedError) as e:
                if self._closed:
                    return self._outcome(action, SyncStatus.DISCARDED, "SESSION_CLOSED", "Session closed")
                logger.warning(f"{action} failed, rolling back: {e}")
                command.rollback()
                return self._outcome(action, SyncStatus.ROLLED_BACK, e.code, e.message)

            confirmed = True
            if self._closed:
                return self._outcome(action, SyncStatus.DISCARDED, "SESSION_CLOSED", "Session closed")

            canonical = None
            try:
                canonical = self._canonical_record(envelope, now)
                command.commit(canonical)
                self._reload_records(now)
            except Exception as e:
                # The server accepted the operation; the optimistic state stays until the next refresh
                logger.exception(f"{action} confirmed but local reconciliation failed: {e}")

            logger.info(f"{action} confirmed by server at {now.strftime('%H:%M:%S')} (schedule {command.schedule_id})")
            message = envelope.message or ("Check-in successful" if action == "check_in" else "Check-out successful")
            return self._outcome(action, SyncStatus.SUCCESS, envelope.code, message, record=canonical or command.optimistic)

        except AttendanceEngineError as e:
            logger.error(f"{action} failed unexpectedly: {e}")
            if command is not None and not confirmed and not self._closed:
                command.rollback()
            return self._outcome(action, SyncStatus.ROLLED_BACK, e.code, e.message)
        except Exception as e:
            logger.exception(f"{action} crashed: {e}")
            if command is not None and not confirmed and not self._closed:
                command.rollback()
            return self._outcome(action, SyncStatus.ROLLED_BACK, "SYSTEM_UNKNOWN", "Unexpected error, changes were reverted")
        finally:
            self.lock.release()

    def _canonical_record(self, envelope: ApiEnvelope, now: datetime) -> Optional[AttendanceRecord]:
        data = envelope.data
        if isinstance(data, dict) and isinstance(data.get("attendance"), dict):
            data = data["attendance"]
        if not isinstance(data, dict):
            return None
        try:
            return normalize_record(data, now.date())
        except DataError as e:
            logger.warning(f"Server returned an unreadable record, keeping optimistic values: {e}")
            return None

    def _reload_records(self, now: datetime) -> bool:
        """Replace today's records with the server's while the caller holds the lock"""
        records = self._fetch("today records", self.api.get_today_records,
                              lambda data: normalize_records(data, now.date()))
        if records is _FAILED:
            return False
        self.machine.update_records(records)
        return True

    # Background refresh

    def refresh(self) -> bool:
        """Fetch schedule, records and location; skipped entirely while an operation is in flight"""
        if self._closed:
            return False
        if self.lock.locked:
            logger.debug(f"Refresh skipped, {self.lock.holder} in flight")
            return False

        generation = self.lock.generation
        now = self._clock()
        schedules = self._fetch("today schedule", self.api.get_today_schedule, normalize_schedules)
        records = self._fetch("today records", self.api.get_today_records,
                              lambda data: normalize_records(data, now.date()))
        location = self._fetch("work location", self.api.get_work_location,
                               lambda data: normalize_work_location(data, self.machine.tolerance_defaults))

        def apply():
            if schedules is not _FAILED:
                self.machine.update_schedules(schedules)
            if records is not _FAILED:
                self.machine.update_records(records)
            if location is not _FAILED:
                self.machine.update_work_location(location)

        if self._closed or not self.lock.apply_if_idle(generation, apply):
            logger.debug("Refresh results dropped, an operation started meanwhile")
            return False
        return True

    def _fetch(self, source: str, call: Callable[[], ApiEnvelope], normalize: Callable[[Any], Any]):
        try:
            envelope = call()
        except TransportError as e:
            self.machine.mark_fetch_failed(source, e)
            return _FAILED
        if not envelope.success:
            self.machine.mark_fetch_failed(source, RemoteRejectedError(envelope.message or "request rejected", envelope.code))
            return _FAILED
        try:
            return normalize(envelope.data)
        except DataError as e:
            self.machine.mark_fetch_failed(source, e)
            return _FAILED

    def _outcome(self, action: str, status: SyncStatus, code: Optional[str], message: str,
                 record: Optional[AttendanceRecord] = None) -> SyncOutcome:
        outcome = SyncOutcome(
            action=action,
            status=status,
            code=code,
            message=message,
            severity=severity_for(code) if status != SyncStatus.SUCCESS else "low",
            record=record,
            timestamp=self._clock(),
        )
        self.last_outcome = outcome
        return outcome

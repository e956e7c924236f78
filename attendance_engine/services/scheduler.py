import logging
import threading
from datetime import datetime
from typing import Callable, Optional

import schedule

from attendance_engine.core.config import AttendanceConfig

logger = logging.getLogger(__name__)

class RefreshScheduler:
    """
    Two periodic jobs on one background thread: a fast tick that recomputes
    derived values and a slower poll that refreshes from the backend.

    The tick never touches the network. A poll that finds the previous one
    still running is skipped rather than queued.
    """

    def __init__(self, refresh: Callable[[], object], tick: Optional[Callable[[], object]] = None,
                 poll_interval: float = None, tick_interval: float = None):
        self._refresh = refresh
        self._tick = tick
        self.poll_interval = poll_interval if poll_interval is not None else AttendanceConfig.POLL_INTERVAL_SECONDS
        self.tick_interval = tick_interval if tick_interval is not None else AttendanceConfig.TICK_INTERVAL_SECONDS
        self._scheduler = schedule.Scheduler()
        self._refresh_job: Optional[schedule.Job] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._refresh_running = threading.Lock()
        self.last_refresh_time: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def jobs(self):
        return list(self._scheduler.jobs)

    @property
    def next_refresh_time(self) -> Optional[datetime]:
        return self._refresh_job.next_run if self._refresh_job is not None else None

    def run_refresh_job(self) -> bool:
        """Execute a single refresh; False when one is already in progress"""
        if not self._refresh_running.acquire(blocking=False):
            logger.warning("Refresh already in progress, skipping this run")
            return False
        try:
            self._refresh()
            self.last_refresh_time = datetime.now()
            return True
        except Exception as e:
            logger.error(f"Scheduled refresh failed: {e}")
            return False
        finally:
            self._refresh_running.release()

    def run_tick_job(self):
        if self._tick is None:
            return
        try:
            self._tick()
        except Exception as e:
            logger.error(f"Tick failed: {e}")

    def _run_pending(self):
        # Wake often enough for the shorter of the two intervals
        idle = min(self.tick_interval if self._tick is not None else self.poll_interval, self.poll_interval, 1.0)
        while not self._stop.wait(idle):
            self._scheduler.run_pending()

    def start(self, refresh_now: bool = True):
        """Start the background scheduler"""
        if self.running:
            return
        self._stop.clear()
        logger.info(f"Starting attendance scheduler (poll every {self.poll_interval}s, tick every {self.tick_interval}s)")

        self._scheduler.clear()
        self._refresh_job = self._scheduler.every(self.poll_interval).seconds.do(self.run_refresh_job)
        if self._tick is not None:
            self._scheduler.every(self.tick_interval).seconds.do(self.run_tick_job)

        if refresh_now:
            logger.info("Running initial refresh")
            self.run_refresh_job()

        self._thread = threading.Thread(target=self._run_pending, name="attendance-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0):
        """Stop the scheduler thread and drop its jobs"""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        self._scheduler.clear()
        self._refresh_job = None
        logger.info("Attendance scheduler stopped")

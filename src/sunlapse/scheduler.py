"""Scheduler module for Sunlapse."""

from datetime import datetime, tzinfo
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from sunlapse.logger import get_logger
from sunlapse.solar import SolarCalcError

logger = get_logger(__name__)


class SchedulerError(Exception):
    """Exception raised for scheduler-related errors."""

    pass


class CaptureScheduler:
    """Periodic tick driver using APScheduler."""

    def __init__(
        self,
        period_s: int,
        timezone: tzinfo,
        on_tick: Callable[[datetime], object],
        on_fatal: Optional[Callable[[Exception], None]] = None,
    ):
        """Initialize the scheduler.

        Args:
            period_s: Seconds between ticks.
            timezone: Timezone the tick time is reported in.
            on_tick: Callback receiving the tick time.
            on_fatal: Callback for errors that must halt the process.
        """
        if period_s < 1:
            raise SchedulerError(f"Invalid period: {period_s}. Expected a positive number of seconds.")

        self.period_s = period_s
        self.on_tick = on_tick
        self.on_fatal = on_fatal
        self._timezone = timezone
        self._scheduler: Optional[BackgroundScheduler] = None
        self._job_id = "capture_tick"

    def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None and self._scheduler.running:
            logger.warning("Scheduler already running")
            return

        self._scheduler = BackgroundScheduler(timezone=self._timezone)

        # A tick still running when the next fires is skipped, not queued
        self._scheduler.add_job(
            self._tick_wrapper,
            trigger=IntervalTrigger(seconds=self.period_s, timezone=self._timezone),
            id=self._job_id,
            name="Capture Tick",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

        self._scheduler.start()
        logger.info(f"Scheduler started. Ticking every {self.period_s}s")

    def stop(self) -> None:
        """Stop the scheduler, waiting for a running tick to finish."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=True)
            self._scheduler = None
            logger.info("Scheduler stopped")

    def _tick_wrapper(self) -> None:
        """Wrapper for tick callback with error handling."""
        now = datetime.now(self._timezone)
        try:
            self.on_tick(now)
        except SolarCalcError as e:
            logger.critical(f"Cannot compute solar window, halting: {e}")
            if self.on_fatal is not None:
                self.on_fatal(e)
        except Exception as e:
            logger.error(f"Tick failed: {e}")

    def get_next_tick_time(self) -> Optional[datetime]:
        """Get the next scheduled tick time, or None if not running."""
        if self._scheduler is None or not self._scheduler.running:
            return None

        job = self._scheduler.get_job(self._job_id)
        if job is None:
            return None

        return job.next_run_time

    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._scheduler is not None and self._scheduler.running

    def get_status(self) -> dict:
        """Get scheduler status information."""
        next_tick = self.get_next_tick_time()

        return {
            "running": self.is_running(),
            "period_s": self.period_s,
            "next_tick": next_tick.isoformat() if next_tick else None,
        }

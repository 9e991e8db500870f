"""Main module for Sunlapse.

This module builds every component once from the configuration, wires them
together and runs the daemon.
"""

import signal
import threading
from datetime import date, datetime
from typing import Optional

import requests

from sunlapse.camera import WebcamSource
from sunlapse.capture import CaptureLoop, TickOutcome
from sunlapse.config import Config
from sunlapse.daystate import DayTracker
from sunlapse.handoff import HandoffQueue
from sunlapse.logger import get_logger
from sunlapse.remote import RemoteStore
from sunlapse.scheduler import CaptureScheduler
from sunlapse.solar import is_in_window
from sunlapse.storage import ImageStorage
from sunlapse.summary import PipelineOutcome, SummaryJob, SummaryPipeline

logger = get_logger(__name__)


class SunlapseSystem:
    """Main system class that integrates all components."""

    def __init__(
        self,
        config: Config,
        session: Optional[requests.Session] = None,
        connect_remote: bool = True,
    ):
        """Initialize the Sunlapse system.

        Args:
            config: System configuration. Location settings must be present.
            session: HTTP session for the image source. Created if None.
            connect_remote: Probe the configured remote; False forces local-only.

        Raises:
            StorageError: If the working directories cannot be created.
        """
        self.config = config
        self.storage = ImageStorage(config.storage)
        self.tracker = DayTracker(
            config.location.latitude,
            config.location.longitude,
            config.location.utc_offset,
        )
        self.source = WebcamSource(config.capture, session=session)
        self.handoff: HandoffQueue[SummaryJob] = HandoffQueue(capacity=1, rendezvous=True)
        self.remote = self._connect_remote() if connect_remote else None
        self.pipeline = SummaryPipeline(
            self.storage,
            self.handoff,
            video_config=config.video,
            remote=self.remote,
        )
        self.loop = CaptureLoop(self.tracker, self.source, self.storage, self.handoff)
        self.scheduler: Optional[CaptureScheduler] = None
        self.last_outcome: Optional[TickOutcome] = None
        self.fatal_error: Optional[Exception] = None
        self._stop_event = threading.Event()

    def _connect_remote(self) -> Optional[RemoteStore]:
        """Probe the remote store; None means local-only mode."""
        if not self.config.sync.enabled:
            return None

        remote = RemoteStore(self.config.sync)
        if not remote.probe():
            logger.error(f"Cannot reach remote {self.config.sync.remote}")
            logger.error("Running in local-only mode")
            return None

        logger.info(f"Remote sync enabled: {self.config.sync.remote}")
        return remote

    def now(self) -> datetime:
        """Current time at the configured location."""
        return datetime.now(self.tracker.timezone)

    def on_tick(self, now: datetime) -> TickOutcome:
        """Run one capture loop tick."""
        self.last_outcome = self.loop.tick(now)
        return self.last_outcome

    def on_fatal(self, error: Exception) -> None:
        """Record a fatal error and stop the daemon loop."""
        self.fatal_error = error
        self._stop_event.set()

    def summarize(self, day: date) -> PipelineOutcome:
        """Run the summary pipeline for one date in the calling thread."""
        return self.pipeline.process(SummaryJob(date=day))

    def run_daemon(self) -> int:
        """Run the system as a daemon until stopped.

        Returns:
            Process exit code: 0 on a requested stop, 1 after a fatal error.
        """
        logger.info("Starting Sunlapse daemon")

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            self._stop_event.set()

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

        # Fails fast on an uncomputable window, before any thread starts
        self.loop.start(self.now())

        self.pipeline.start()
        self.scheduler = CaptureScheduler(
            period_s=self.config.capture.period_s,
            timezone=self.tracker.timezone,
            on_tick=self.on_tick,
            on_fatal=self.on_fatal,
        )
        self.scheduler.start()

        logger.info("Daemon started")

        try:
            while not self._stop_event.wait(1):
                pass
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
        finally:
            self.stop()

        if self.fatal_error is not None:
            logger.critical(f"Daemon halted: {self.fatal_error}")
            return 1
        return 0

    def stop(self) -> None:
        """Stop the daemon.

        The scheduler goes first so a tick blocked handing off a job can
        complete. A summary already in progress is not waited for.
        """
        self._stop_event.set()
        if self.scheduler is not None:
            self.scheduler.stop()
            self.scheduler = None
        if self.pipeline.is_running():
            self.pipeline.stop()
        self.source.close()
        logger.info("Daemon stopped")

    def get_status(self) -> dict:
        """Get current system status.

        Returns:
            Dictionary with system status information.
        """
        storage_info = self.storage.get_storage_info()
        now = self.now()
        state = self.loop.state
        window = state.window if state is not None else self.tracker.initialize(now).window
        scheduler_status = (
            self.scheduler.get_status()
            if self.scheduler
            else {"running": False, "period_s": self.config.capture.period_s, "next_tick": None}
        )

        return {
            "daemon": {
                "running": self.scheduler is not None and self.scheduler.is_running(),
                "last_tick": self.last_outcome.value if self.last_outcome else None,
            },
            "scheduler": scheduler_status,
            "sun": {
                "date": window.for_date.isoformat(),
                "sunrise": window.sunrise.isoformat(),
                "sunset": window.sunset.isoformat(),
                "is_daytime": is_in_window(window, now),
            },
            "remote": {
                "enabled": self.remote is not None,
            },
            "storage": {
                "base_path": str(storage_info.base_path),
                "free_gb": round(storage_info.free_gb, 2),
                "total_gb": round(storage_info.total_gb, 2),
                "image_count": storage_info.image_count,
                "pending_days": self.storage.list_days(),
            },
        }


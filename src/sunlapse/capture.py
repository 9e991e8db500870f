"""Capture loop state machine for Sunlapse.

Every tick re-evaluates whether the tick time falls inside the current
solar window and moves between two states, Night and Day:

- Night -> Day: reset the image counter, create the day's directory.
- Day: fetch one image and store it under the next sequence number.
- Day -> Night: hand the day to the summary pipeline, compute tomorrow's window.
- Night: nothing.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sunlapse.camera import CaptureError, WebcamSource
from sunlapse.daystate import DayState, DayTracker
from sunlapse.handoff import HandoffQueue
from sunlapse.logger import get_logger, with_fields
from sunlapse.solar import is_in_window
from sunlapse.storage import ImageStorage, StorageError, date_key
from sunlapse.summary import SummaryJob

logger = get_logger(__name__)


class TickOutcome(Enum):
    """What a single tick did."""

    NIGHT = "night"
    SUNRISE = "sunrise"
    CAPTURED = "captured"
    CAPTURE_FAILED = "capture_failed"
    PERSIST_FAILED = "persist_failed"
    SUNSET = "sunset"


class CaptureLoop:
    """Day/night state machine driving image capture."""

    def __init__(
        self,
        tracker: DayTracker,
        source: WebcamSource,
        storage: ImageStorage,
        handoff: HandoffQueue,
    ):
        """Initialize the loop.

        Args:
            tracker: Solar window tracker for the location.
            source: Image source polled once per daytime tick.
            storage: Image storage.
            handoff: Queue that receives a SummaryJob at each sunset.
        """
        self.tracker = tracker
        self.source = source
        self.storage = storage
        self.handoff = handoff
        self.state: Optional[DayState] = None

    def start(self, now: datetime) -> DayState:
        """Compute the initial state for a process starting at ``now``.

        Raises:
            SolarCalcError: If the initial window cannot be computed.
        """
        self.state = self.tracker.initialize(now)
        if self.state.is_daytime:
            self._ensure_day_directory()
            self._resume_numbering()
        return self.state

    def tick(self, now: datetime) -> TickOutcome:
        """Advance the state machine by one timer firing.

        Raises:
            SolarCalcError: If tomorrow's window cannot be computed at sunset.
                The scheduler cannot continue without a window.
        """
        if self.state is None:
            self.start(now)

        state = self.state
        logger.debug(f"Current sunrise: {state.window.sunrise.isoformat()}")
        logger.debug(f"Current sunset: {state.window.sunset.isoformat()}")
        logger.debug(f"Current time: {now.isoformat()}")

        if is_in_window(state.window, now):
            if not state.is_daytime:
                logger.info("It has now passed sunrise")
                state.is_daytime = True
                state.image_index = 1
                self._ensure_day_directory()
                if not self.storage.check_capacity():
                    logger.warning("Low storage capacity, but proceeding with capture")
                return TickOutcome.SUNRISE
            return self._capture()

        if state.is_daytime:
            return self._sunset()

        if now >= state.window.sunset:
            logger.warning(
                f"Missed the daylight window for {date_key(state.window.for_date)}, "
                "moving to the next day"
            )
            self.state = self.tracker.advance_to_next_day(state, state.window.for_date)
            return TickOutcome.NIGHT

        logger.debug("Not currently daytime, sleeping...")
        return TickOutcome.NIGHT

    def _ensure_day_directory(self) -> None:
        day = self.state.window.for_date
        try:
            self.storage.ensure_day_directory(day)
        except StorageError as e:
            with_fields(logger, date=date_key(day), op="create_directory").error(str(e))

    def _resume_numbering(self) -> None:
        """Continue after images already stored today by an earlier run."""
        day = self.state.window.for_date
        try:
            last = self.storage.last_image_index(day)
        except StorageError as e:
            with_fields(logger, date=date_key(day), op="list_directory").error(str(e))
            return
        if last:
            logger.info(f"Found {last} images for {date_key(day)}, continuing at {last + 1}")
            self.state.image_index = last + 1

    def _capture(self) -> TickOutcome:
        state = self.state
        day = state.window.for_date
        log = with_fields(logger, date=date_key(day), index=state.image_index)

        log.info("Getting image")
        try:
            image = self.source.fetch()
        except CaptureError as e:
            log.error(f"Error while getting image: {e}")
            return TickOutcome.CAPTURE_FAILED

        log.info("Writing image")
        try:
            self.storage.write_image(day, state.image_index, image)
        except StorageError as e:
            log.error(f"Error while writing image: {e}")
            return TickOutcome.PERSIST_FAILED

        state.image_index += 1
        return TickOutcome.CAPTURED

    def _sunset(self) -> TickOutcome:
        state = self.state
        day = state.window.for_date

        logger.info("It has now passed sunset, beginning summary routine")
        self.handoff.put(SummaryJob(date=day))
        state.is_daytime = False

        logger.info("Calculating tomorrow's sunrise/sunset")
        self.state = self.tracker.advance_to_next_day(state, day)
        return TickOutcome.SUNSET

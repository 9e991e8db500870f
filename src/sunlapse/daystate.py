"""Day/night state tracking for Sunlapse."""

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Callable

from sunlapse.logger import get_logger
from sunlapse.solar import (
    SolarWindow,
    compute_solar_window,
    is_in_window,
    local_timezone,
)

logger = get_logger(__name__)

SolarCalculator = Callable[[float, float, float, date], SolarWindow]


@dataclass
class DayState:
    """Current solar bounds and day/night flag, owned by the capture loop."""

    window: SolarWindow
    is_daytime: bool
    image_index: int = 1


class DayTracker:
    """Computes and advances the solar window for a fixed location."""

    def __init__(
        self,
        latitude: float,
        longitude: float,
        utc_offset: float,
        calculator: SolarCalculator = compute_solar_window,
    ):
        """Initialize the tracker.

        Args:
            latitude: Latitude in degrees.
            longitude: Longitude in degrees.
            utc_offset: Local offset from UTC in hours.
            calculator: Solar window function, injectable for testing.
        """
        self.latitude = latitude
        self.longitude = longitude
        self.utc_offset = utc_offset
        self.timezone = local_timezone(utc_offset)
        self._calculator = calculator

    def window_for(self, for_date: date) -> SolarWindow:
        """Compute the window for a calendar date."""
        return self._calculator(self.latitude, self.longitude, self.utc_offset, for_date)

    def local_date(self, when: datetime) -> date:
        """Calendar date of ``when`` at the tracked location."""
        return when.astimezone(self.timezone).date()

    def initialize(self, now: datetime) -> DayState:
        """Build the starting state for a process starting at ``now``.

        If today's sunset has already passed, tomorrow's window is used so the
        remainder of today is spent at night.

        Raises:
            SolarCalcError: If the window cannot be computed.
        """
        today = self.local_date(now)
        window = self.window_for(today)

        if now >= window.sunset:
            logger.debug("Past today's sunset, using tomorrow's window")
            window = self.window_for(today + timedelta(days=1))

        state = DayState(window=window, is_daytime=is_in_window(window, now))
        logger.info(f"Sunrise: {window.sunrise.isoformat()}")
        logger.info(f"Sunset: {window.sunset.isoformat()}")
        logger.debug(f"It is currently {'daytime' if state.is_daytime else 'night'}")
        return state

    def advance_to_next_day(self, state: DayState, reference_date: date) -> DayState:
        """Return a new state holding the window for ``reference_date + 1``.

        ``is_daytime`` and ``image_index`` are carried over unchanged.

        Raises:
            SolarCalcError: If the next window cannot be computed.
        """
        next_date = reference_date + timedelta(days=1)
        window = self.window_for(next_date)
        logger.info(
            f"Window for {next_date.isoformat()}: "
            f"{window.sunrise.isoformat()} - {window.sunset.isoformat()}"
        )
        return replace(state, window=window)

"""Solar window calculation module for Sunlapse."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo

import astral.sun
from astral import Observer

from sunlapse.logger import get_logger, with_fields

logger = get_logger(__name__)


class SolarCalcError(Exception):
    """Exception raised when sunrise/sunset cannot be computed."""

    pass


@dataclass(frozen=True)
class SolarWindow:
    """Sunrise and sunset instants for one calendar date, in local time."""

    sunrise: datetime
    sunset: datetime
    for_date: date


def local_timezone(utc_offset: float) -> tzinfo:
    """Build the fixed-offset timezone for a UTC offset in hours."""
    return timezone(timedelta(hours=utc_offset))


def _project(raw: datetime, for_date: date, tz: tzinfo) -> datetime:
    """Keep the time of day of ``raw`` and place it on ``for_date``."""
    local = raw.astimezone(tz)
    return datetime(
        for_date.year,
        for_date.month,
        for_date.day,
        local.hour,
        local.minute,
        local.second,
        tzinfo=tz,
    )


def compute_solar_window(
    latitude: float,
    longitude: float,
    utc_offset: float,
    for_date: date,
) -> SolarWindow:
    """Compute the daytime window for a date at a location.

    astral works on UTC days, so with a non-zero offset the sunrise or sunset
    it returns can land on the neighbouring calendar date. Only the local
    time of day is kept; it is re-projected onto ``for_date``.

    Args:
        latitude: Latitude in degrees.
        longitude: Longitude in degrees.
        utc_offset: Local offset from UTC in hours.
        for_date: Calendar date of the window.

    Returns:
        SolarWindow with timezone-aware sunrise/sunset on ``for_date``.

    Raises:
        SolarCalcError: If the sun does not rise or set on that date
            (polar day/night) or the projected window is empty.
    """
    log = with_fields(
        logger,
        latitude=latitude,
        longitude=longitude,
        offset=utc_offset,
        date=for_date.isoformat(),
    )
    tz = local_timezone(utc_offset)

    observer = Observer(latitude, longitude)
    try:
        raw_sunrise = astral.sun.sunrise(observer, date=for_date, tzinfo=tz)
        raw_sunset = astral.sun.sunset(observer, date=for_date, tzinfo=tz)
    except ValueError as e:
        log.error(f"Error calculating sunrise/sunset: {e}")
        raise SolarCalcError(f"Cannot compute sunrise/sunset for {for_date}: {e}") from e

    log.debug(
        f"Before correction - Sunrise: {raw_sunrise.isoformat()}, "
        f"Sunset: {raw_sunset.isoformat()}"
    )

    sunrise = _project(raw_sunrise, for_date, tz)
    sunset = _project(raw_sunset, for_date, tz)

    log.debug(
        f"After correction - Sunrise: {sunrise.isoformat()}, Sunset: {sunset.isoformat()}"
    )

    if sunrise >= sunset:
        raise SolarCalcError(
            f"Sunrise {sunrise.time()} is not before sunset {sunset.time()} on {for_date}"
        )

    return SolarWindow(sunrise=sunrise, sunset=sunset, for_date=for_date)


def is_in_window(window: SolarWindow, when: datetime) -> bool:
    """Check whether ``when`` falls strictly between sunrise and sunset."""
    return window.sunrise < when < window.sunset

"""Shared fixtures for Sunlapse tests."""

import io
import tempfile
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path

import pytest
from PIL import Image

from sunlapse.config import StorageConfig
from sunlapse.solar import SolarWindow
from sunlapse.storage import ImageStorage

# Fixed UTC+2 location used throughout the state machine tests
TZ = timezone(timedelta(hours=2))


def local_time(day: date, hour: int, minute: int = 0, second: int = 0) -> datetime:
    """Local time at the test location."""
    return datetime.combine(day, time(hour, minute, second), tzinfo=TZ)


class FakeCalculator:
    """Solar calculator returning 06:00-20:00 for every date."""

    def __init__(self, sunrise=time(6, 0), sunset=time(20, 0)):
        self.sunrise = sunrise
        self.sunset = sunset
        self.calls = []
        self.fail_on = set()

    def __call__(self, latitude, longitude, utc_offset, for_date):
        from sunlapse.solar import SolarCalcError

        self.calls.append(for_date)
        if for_date in self.fail_on:
            raise SolarCalcError(f"no window for {for_date}")
        return SolarWindow(
            sunrise=datetime.combine(for_date, self.sunrise, tzinfo=TZ),
            sunset=datetime.combine(for_date, self.sunset, tzinfo=TZ),
            for_date=for_date,
        )


@pytest.fixture
def at():
    """Build local times at the test location: at(day, hour, minute)."""
    return local_time


@pytest.fixture
def fake_calculator():
    """Create a fake 06:00-20:00 solar calculator."""
    return FakeCalculator()


@pytest.fixture
def temp_dir():
    """Create temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage(temp_dir):
    """Create image storage rooted in a temp directory."""
    return ImageStorage(StorageConfig(base_path=temp_dir, min_free_space_mb=1))


@pytest.fixture
def jpeg_bytes():
    """A small valid JPEG payload."""
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color=(200, 120, 40)).save(buffer, "JPEG")
    return buffer.getvalue()

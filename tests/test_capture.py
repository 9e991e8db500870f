"""Tests for the capture loop state machine."""

from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest

from sunlapse.camera import CaptureError, WebcamSource
from sunlapse.capture import CaptureLoop, TickOutcome
from sunlapse.daystate import DayTracker
from sunlapse.handoff import HandoffQueue
from sunlapse.solar import SolarCalcError
from sunlapse.storage import StorageError
from sunlapse.summary import SummaryJob

DAY = date(2024, 6, 1)
NEXT_DAY = DAY + timedelta(days=1)


@pytest.fixture
def source(jpeg_bytes):
    """Create a mocked image source returning a JPEG."""
    source = MagicMock(spec=WebcamSource)
    source.fetch.return_value = jpeg_bytes
    return source


@pytest.fixture
def handoff():
    """Create a hand-off queue that never blocks the tests."""
    return HandoffQueue(capacity=4, rendezvous=False)


@pytest.fixture
def loop(fake_calculator, source, storage, handoff):
    """Create a capture loop over the fake 06:00-20:00 calculator."""
    tracker = DayTracker(10.0, 20.0, 2.0, calculator=fake_calculator)
    return CaptureLoop(tracker, source, storage, handoff)


def _image_names(storage, day):
    return [p.name for p in storage.list_day_files(day)]


class TestFullDay:
    """A day from before sunrise through sunset."""

    def test_day_cycle(self, at, loop, storage, handoff, source):
        """Test night, sunrise, capture and sunset transitions in order."""
        loop.start(at(DAY, 5, 0))

        assert loop.tick(at(DAY, 5, 59)) is TickOutcome.NIGHT
        source.fetch.assert_not_called()
        assert not storage.day_path(DAY).exists()

        assert loop.tick(at(DAY, 6, 1)) is TickOutcome.SUNRISE
        assert loop.state.is_daytime is True
        assert loop.state.image_index == 1
        assert storage.day_path(DAY).is_dir()
        # The sunrise tick itself does not capture
        source.fetch.assert_not_called()

        assert loop.tick(at(DAY, 6, 2)) is TickOutcome.CAPTURED
        assert _image_names(storage, DAY) == ["image_00001.jpg"]
        assert loop.state.image_index == 2

        assert loop.tick(at(DAY, 20, 1)) is TickOutcome.SUNSET
        assert handoff.get(timeout=0.1) == SummaryJob(date=DAY)
        assert loop.state.is_daytime is False
        assert loop.state.window.for_date == NEXT_DAY

        # After sunset the loop sleeps until tomorrow's sunrise
        assert loop.tick(at(DAY, 21, 0)) is TickOutcome.NIGHT
        assert loop.state.window.for_date == NEXT_DAY

    def test_contiguous_numbering_with_failures(self, at, loop, storage, source, jpeg_bytes):
        """Test that failed fetches do not leave gaps in the sequence."""
        loop.start(at(DAY, 5, 0))
        loop.tick(at(DAY, 6, 1))

        source.fetch.side_effect = [
            jpeg_bytes,
            CaptureError("timeout"),
            jpeg_bytes,
            CaptureError("503"),
            CaptureError("503"),
            jpeg_bytes,
        ]
        outcomes = [loop.tick(at(DAY, 7, minute)) for minute in range(6)]

        assert outcomes == [
            TickOutcome.CAPTURED,
            TickOutcome.CAPTURE_FAILED,
            TickOutcome.CAPTURED,
            TickOutcome.CAPTURE_FAILED,
            TickOutcome.CAPTURE_FAILED,
            TickOutcome.CAPTURED,
        ]
        assert _image_names(storage, DAY) == [
            "image_00001.jpg",
            "image_00002.jpg",
            "image_00003.jpg",
        ]
        assert loop.state.image_index == 4

    def test_counter_resets_next_sunrise(self, at, loop, storage):
        """Test that each day's numbering starts at 1."""
        loop.start(at(DAY, 5, 0))
        loop.tick(at(DAY, 6, 1))
        for minute in range(3):
            loop.tick(at(DAY, 8, minute))
        loop.tick(at(DAY, 20, 1))

        assert loop.tick(at(NEXT_DAY, 6, 1)) is TickOutcome.SUNRISE
        assert loop.state.image_index == 1
        assert loop.tick(at(NEXT_DAY, 6, 2)) is TickOutcome.CAPTURED
        assert _image_names(storage, NEXT_DAY) == ["image_00001.jpg"]

    def test_one_job_per_day(self, at, loop, handoff):
        """Test that a day hands off exactly one summary job."""
        loop.start(at(DAY, 5, 0))
        loop.tick(at(DAY, 6, 1))
        loop.tick(at(DAY, 20, 1))
        loop.tick(at(DAY, 20, 2))
        loop.tick(at(DAY, 23, 0))

        assert handoff.qsize() == 1


class TestStart:
    """Tests for CaptureLoop.start."""

    def test_start_after_sunset(self, at, loop, storage, handoff):
        """Test that a late start waits for tomorrow with no job for today."""
        state = loop.start(at(DAY, 21, 0))

        assert state.window.for_date == NEXT_DAY
        assert state.is_daytime is False
        assert loop.tick(at(DAY, 21, 1)) is TickOutcome.NIGHT
        assert handoff.qsize() == 0
        assert not storage.day_path(DAY).exists()

    def test_start_during_day(self, at, loop, storage):
        """Test that a daytime start creates the directory and captures next tick."""
        state = loop.start(at(DAY, 12, 0))

        assert state.is_daytime is True
        assert storage.day_path(DAY).is_dir()
        assert loop.tick(at(DAY, 12, 1)) is TickOutcome.CAPTURED
        assert _image_names(storage, DAY) == ["image_00001.jpg"]

    def test_lazy_start(self, at, loop):
        """Test that the first tick initializes the state if needed."""
        assert loop.state is None
        assert loop.tick(at(DAY, 4, 0)) is TickOutcome.NIGHT
        assert loop.state.window.for_date == DAY

    def test_start_failure_propagates(self, at, loop, fake_calculator):
        """Test that a failed initial window is fatal."""
        fake_calculator.fail_on.add(DAY)
        with pytest.raises(SolarCalcError):
            loop.start(at(DAY, 5, 0))


class TestFailures:
    """Error handling inside ticks."""

    def test_persist_failure_keeps_index(self, at, loop, storage, source):
        """Test that a failed write reports PERSIST_FAILED and reuses the index."""
        loop.start(at(DAY, 5, 0))
        loop.tick(at(DAY, 6, 1))

        storage.write_image = MagicMock(side_effect=StorageError("disk full"))
        assert loop.tick(at(DAY, 7, 0)) is TickOutcome.PERSIST_FAILED
        assert loop.state.image_index == 1

    def test_directory_failure_still_enters_day(self, at, loop, storage, caplog):
        """Test that sunrise proceeds even if the directory cannot be created."""
        loop.start(at(DAY, 5, 0))
        storage.ensure_day_directory = MagicMock(side_effect=StorageError("read-only"))

        assert loop.tick(at(DAY, 6, 1)) is TickOutcome.SUNRISE
        assert loop.state.is_daytime is True
        assert "read-only" in caplog.text
        # Writes fail later and are reported per tick
        assert loop.tick(at(DAY, 6, 2)) is TickOutcome.PERSIST_FAILED

    def test_sunset_window_failure_is_fatal(self, at, loop, handoff, fake_calculator):
        """Test that failing to compute tomorrow's window propagates."""
        loop.start(at(DAY, 12, 0))
        fake_calculator.fail_on.add(NEXT_DAY)

        with pytest.raises(SolarCalcError):
            loop.tick(at(DAY, 20, 1))
        # The job was handed off before the failure
        assert handoff.get(timeout=0.1) == SummaryJob(date=DAY)

    def test_missed_day_advances_window(self, at, loop, handoff, caplog):
        """Test that a night tick past the window's sunset moves to the next day."""
        loop.start(at(DAY, 5, 0))

        # Process was suspended through the whole day
        assert loop.tick(at(DAY, 22, 0)) is TickOutcome.NIGHT
        assert loop.state.window.for_date == NEXT_DAY
        assert handoff.qsize() == 0
        assert "Missed the daylight window for 2024-06-01" in caplog.text

    def test_sunset_boundary_is_night(self, at, loop, handoff):
        """Test that a tick exactly at sunset ends the day."""
        loop.start(at(DAY, 12, 0))
        assert loop.tick(at(DAY, 20, 0)) is TickOutcome.SUNSET
        assert handoff.qsize() == 1

    def test_sunrise_boundary_is_night(self, at, loop):
        """Test that a tick exactly at sunrise is still night."""
        loop.start(at(DAY, 5, 0))
        assert loop.tick(at(DAY, 6, 0)) is TickOutcome.NIGHT
        assert loop.state.is_daytime is False


class TestRestart:
    """A process restarted in the middle of a day."""

    def test_daytime_restart_keeps_earlier_images(self, at, loop, storage, jpeg_bytes):
        """Test that numbering continues after images from an earlier run."""
        storage.ensure_day_directory(DAY)
        for index in (1, 2, 3):
            storage.write_image(DAY, index, f"morning-{index}".encode())

        state = loop.start(at(DAY, 12, 0))
        assert state.image_index == 4

        assert loop.tick(at(DAY, 12, 1)) is TickOutcome.CAPTURED
        day_path = storage.day_path(DAY)
        assert (day_path / "image_00001.jpg").read_bytes() == b"morning-1"
        assert (day_path / "image_00004.jpg").read_bytes() == jpeg_bytes

    def test_night_restart_resets_at_sunrise(self, at, loop, storage):
        """Test that a fresh sunrise still starts at 1."""
        loop.start(at(DAY, 5, 0))
        assert loop.tick(at(DAY, 6, 1)) is TickOutcome.SUNRISE
        assert loop.state.image_index == 1

    def test_low_capacity_warned_at_sunrise(self, at, loop, storage, caplog):
        """Test that low disk space is reported but capture still proceeds."""
        loop.start(at(DAY, 5, 0))
        storage.check_capacity = MagicMock(return_value=False)

        assert loop.tick(at(DAY, 6, 1)) is TickOutcome.SUNRISE
        assert "Low storage capacity" in caplog.text
        assert loop.tick(at(DAY, 6, 2)) is TickOutcome.CAPTURED

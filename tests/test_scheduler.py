"""Tests for scheduler module."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from sunlapse.scheduler import CaptureScheduler, SchedulerError
from sunlapse.solar import SolarCalcError

TZ = timezone(timedelta(hours=2))


@pytest.fixture
def on_tick():
    """Create mock tick callback."""
    return MagicMock()


class TestCaptureScheduler:
    """Tests for CaptureScheduler."""

    def test_init(self, on_tick):
        """Test scheduler initialization."""
        scheduler = CaptureScheduler(30, TZ, on_tick)

        assert scheduler.period_s == 30
        assert scheduler.on_tick is on_tick
        assert not scheduler.is_running()

    @pytest.mark.parametrize("period", [0, -5])
    def test_invalid_period(self, on_tick, period):
        """Test that a non-positive period is rejected."""
        with pytest.raises(SchedulerError, match="Invalid period"):
            CaptureScheduler(period, TZ, on_tick)

    def test_start_stop(self, on_tick):
        """Test starting and stopping scheduler."""
        scheduler = CaptureScheduler(60, TZ, on_tick)

        scheduler.start()
        try:
            assert scheduler.is_running()
        finally:
            scheduler.stop()

        assert not scheduler.is_running()

    def test_double_start(self, on_tick, caplog):
        """Test starting an already running scheduler."""
        scheduler = CaptureScheduler(60, TZ, on_tick)

        scheduler.start()
        try:
            scheduler.start()
            assert "already running" in caplog.text
        finally:
            scheduler.stop()

    def test_stop_when_not_started(self, on_tick):
        """Test that stopping an idle scheduler is harmless."""
        scheduler = CaptureScheduler(60, TZ, on_tick)
        scheduler.stop()
        assert not scheduler.is_running()

    def test_get_next_tick_time(self, on_tick):
        """Test getting the next tick time."""
        scheduler = CaptureScheduler(60, TZ, on_tick)
        assert scheduler.get_next_tick_time() is None

        scheduler.start()
        try:
            next_tick = scheduler.get_next_tick_time()
            assert next_tick is not None
            now = datetime.now(TZ)
            assert now < next_tick <= now + timedelta(seconds=61)
        finally:
            scheduler.stop()

    def test_tick_wrapper_passes_aware_time(self, on_tick):
        """Test that the callback receives the tick time in the location's zone."""
        scheduler = CaptureScheduler(30, TZ, on_tick)
        scheduler._tick_wrapper()

        on_tick.assert_called_once()
        now = on_tick.call_args[0][0]
        assert now.utcoffset() == timedelta(hours=2)

    def test_tick_wrapper_logs_errors(self, caplog):
        """Test that an ordinary tick error is logged and swallowed."""
        on_tick = MagicMock(side_effect=RuntimeError("boom"))
        on_fatal = MagicMock()
        scheduler = CaptureScheduler(30, TZ, on_tick, on_fatal=on_fatal)

        scheduler._tick_wrapper()

        assert "Tick failed: boom" in caplog.text
        on_fatal.assert_not_called()

    def test_tick_wrapper_solar_error_is_fatal(self, caplog):
        """Test that a solar window failure is reported to on_fatal."""
        error = SolarCalcError("polar night")
        on_tick = MagicMock(side_effect=error)
        on_fatal = MagicMock()
        scheduler = CaptureScheduler(30, TZ, on_tick, on_fatal=on_fatal)

        scheduler._tick_wrapper()

        on_fatal.assert_called_once_with(error)
        assert "halting" in caplog.text

    def test_get_status(self, on_tick):
        """Test getting scheduler status."""
        scheduler = CaptureScheduler(45, TZ, on_tick)
        status = scheduler.get_status()

        assert status == {"running": False, "period_s": 45, "next_tick": None}

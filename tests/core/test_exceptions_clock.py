"""
Tests for the exception taxonomy and the clock utilities.
"""

from datetime import datetime, timedelta, timezone

from core.clock import MockClock, ensure_utc, to_iso8601
from core.exceptions import (
    AllProvidersFailedError,
    CircuitOpenError,
    ErrorClassification,
    InvalidMetricError,
    ProviderUnavailableError,
    RepositoryError,
    Severity,
)
from tests.factories import T0


class TestExceptions:
    """Tests for TradingException subclasses."""

    def test_all_providers_failed_summary(self):
        """Test that the message lists every provider's reason."""
        error = AllProvidersFailedError("mint", {"birdeye": "HTTP 503", "pyth": "circuit open"})

        assert "birdeye: HTTP 503" in error.message
        assert "pyth: circuit open" in error.message
        assert error.context["failures"] == error.failures
        assert error.is_recoverable

    def test_circuit_open_is_provider_error(self):
        """Test that an open circuit is a transient provider failure."""
        error = CircuitOpenError("price:birdeye", retry_after_seconds=12.0)

        assert isinstance(error, ProviderUnavailableError)
        assert error.is_transient
        assert error.retry_after_seconds == 12.0

    def test_cause_recorded_in_context(self):
        """Test that a wrapped cause is visible in the log format."""
        error = RepositoryError("write failed", operation="update_position", cause=OSError("disk full"))

        line = error.to_log_format()

        assert line.startswith("[HIGH] RepositoryError: write failed")
        assert "operation=update_position" in line
        assert "cause_type=OSError" in line
        assert error.to_dict()["cause"] == "disk full"

    def test_invalid_metric_is_not_recoverable(self):
        """Test that degenerate metrics are classified as needing attention."""
        error = InvalidMetricError("zero volatility", metric="volatility", value=0.0)

        assert error.classification == ErrorClassification.NON_RECOVERABLE
        assert error.severity == Severity.MEDIUM
        assert error.context == {"metric": "volatility", "value": "0.0"}


class TestClock:
    """Tests for MockClock and helpers."""

    def test_advance_moves_wall_and_monotonic(self):
        """Test that advancing moves both clocks together."""
        clock = MockClock(T0)

        clock.advance(seconds=30, minutes=1)

        assert clock.now() == T0 + timedelta(seconds=90)
        assert clock.monotonic() == 90.0

    def test_today_follows_wall_time(self):
        """Test that today() rolls over at UTC midnight."""
        clock = MockClock(datetime(2026, 1, 15, 23, 59, 59, tzinfo=timezone.utc))

        clock.advance(seconds=1)

        assert clock.today().isoformat() == "2026-01-16"

    def test_set_time_backwards_keeps_monotonic(self):
        """Test that jumping wall time back never rewinds monotonic time."""
        clock = MockClock(T0)
        clock.advance(seconds=10)

        clock.set_time(T0)

        assert clock.now() == T0
        assert clock.monotonic() == 10.0

    def test_ensure_utc(self):
        """Test that naive times are taken as UTC and aware ones converted."""
        naive = datetime(2026, 1, 15, 12, 0)
        plus_two = datetime(2026, 1, 15, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        assert ensure_utc(naive) == T0
        assert ensure_utc(plus_two).tzinfo == timezone.utc
        assert to_iso8601(plus_two) == "2026-01-15T12:00:00+00:00"

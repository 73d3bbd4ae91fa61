"""
Tests for retry logic and connection-error classification.
"""

import pytest
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, ProgrammingError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from pollsite.retry import (
    exponential_backoff,
    is_connection_error,
    RetryError,
)


class TestExponentialBackoff:
    """Test exponential backoff decorator."""

    def test_success_on_first_try(self):
        """Function that succeeds immediately should not retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.1)
        def succeeds():
            call_count[0] += 1
            return "success"

        assert succeeds() == "success"
        assert call_count[0] == 1

    def test_retry_then_succeed(self):
        """Function that fails then succeeds should retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01)
        def fails_twice():
            call_count[0] += 1
            if call_count[0] < 3:
                raise ConnectionError("Temporary failure")
            return "success"

        assert fails_twice() == "success"
        assert call_count[0] == 3

    def test_all_retries_exhausted(self):
        """Should raise RetryError after all attempts fail."""
        call_count = [0]

        @exponential_backoff(max_retries=2, base_delay=0.01)
        def always_fails():
            call_count[0] += 1
            raise ValueError("Always fails")

        with pytest.raises(RetryError):
            always_fails()

        assert call_count[0] == 3  # Initial + 2 retries

    def test_no_retries(self):
        call_count = [0]

        @exponential_backoff(max_retries=0, base_delay=0)
        def always_fails():
            call_count[0] += 1
            raise ConnectionError("down")

        with pytest.raises(RetryError):
            always_fails()
        assert call_count[0] == 1

    def test_only_catches_specified_exceptions(self):
        """Should only retry on specified exception types."""
        call_count = [0]

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            exceptions=(ConnectionError,)
        )
        def raises_value_error():
            call_count[0] += 1
            raise ValueError("Not retryable")

        with pytest.raises(ValueError):
            raises_value_error()

        assert call_count[0] == 1

    def test_exponential_delay(self):
        """Delay should increase exponentially."""
        delays = []

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            exponential_base=2.0,
            on_retry=lambda attempt, exc, delay: delays.append(delay),
        )
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert delays == [0.01, 0.02, 0.04]

    def test_fixed_delay(self):
        """A base of 1.0 keeps the delay constant."""
        delays = []

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            exponential_base=1.0,
            on_retry=lambda attempt, exc, delay: delays.append(delay),
        )
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert delays == [0.01, 0.01, 0.01]

    def test_max_delay_cap(self):
        """Delay should not exceed max_delay."""
        delays = []

        @exponential_backoff(
            max_retries=5,
            base_delay=0.001,
            max_delay=0.002,
            exponential_base=3.0,
            on_retry=lambda attempt, exc, delay: delays.append(delay),
        )
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert all(d <= 0.002 for d in delays)


class TestConnectionErrorDetection:
    """Test connection-class error detection."""

    def test_operational_error(self):
        assert is_connection_error(OperationalError("SELECT 1", {}, Exception("boom")))

    def test_interface_error(self):
        assert is_connection_error(InterfaceError("SELECT 1", {}, Exception("closed")))

    def test_socket_errors(self):
        assert is_connection_error(ConnectionResetError("reset"))
        assert is_connection_error(TimeoutError("timed out"))

    def test_invalidated_connection(self):
        err = ProgrammingError("SELECT 1", {}, Exception("x"), connection_invalidated=True)
        assert is_connection_error(err)

    def test_message_keywords(self):
        assert is_connection_error(Exception("server closed the connection unexpectedly"))

    def test_non_connection_errors(self):
        errors = [
            ProgrammingError("SELECT", {}, Exception("relation does not exist")),
            IntegrityError("INSERT", {}, Exception("duplicate key")),
            ValueError("Invalid data"),
        ]
        for error in errors:
            assert not is_connection_error(error)

    def test_pool_checkout_timeout_is_not_connection_error(self):
        """A busy pool is not a lost connection, despite 'timeout' in the message."""
        error = PoolTimeoutError(
            "QueuePool limit of size 20 overflow 0 reached, connection timed out, timeout 5.00"
        )
        assert not is_connection_error(error)

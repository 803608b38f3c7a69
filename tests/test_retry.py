"""Tests for retry utility."""

import pytest

from claim_desk.utils.retry import RETRYABLE_EXCEPTIONS, with_io_retry


def test_retryable_exceptions_include_connection_and_timeout():
    """Transient errors that should be retried are in RETRYABLE_EXCEPTIONS."""
    assert ConnectionError in RETRYABLE_EXCEPTIONS
    assert TimeoutError in RETRYABLE_EXCEPTIONS
    assert OSError in RETRYABLE_EXCEPTIONS


def test_with_io_retry_succeeds_first_time():
    """Decorated function that succeeds on first call returns result."""
    @with_io_retry(max_attempts=3)
    def ok():
        return 42
    assert ok() == 42


def test_with_io_retry_reraises_non_retryable():
    """Non-retryable exception is reraised immediately."""
    calls = []

    @with_io_retry(max_attempts=3)
    def fail():
        calls.append(1)
        raise ValueError("not retryable")
    with pytest.raises(ValueError, match="not retryable"):
        fail()
    assert len(calls) == 1


def test_with_io_retry_retries_on_connection_error():
    """Retries on ConnectionError then succeeds."""
    attempts = []

    @with_io_retry(max_attempts=3, min_wait=0.01, max_wait=0.05)
    def flaky():
        attempts.append(1)
        if len(attempts) < 2:
            raise ConnectionError("transient")
        return "ok"
    assert flaky() == "ok"
    assert len(attempts) == 2


def test_with_io_retry_gives_up_after_max_attempts():
    """After max_attempts the last exception is reraised."""
    attempts = []

    @with_io_retry(max_attempts=2, min_wait=0.01, max_wait=0.02)
    def always_down():
        attempts.append(1)
        raise TimeoutError("still down")
    with pytest.raises(TimeoutError):
        always_down()
    assert len(attempts) == 2


def test_with_io_retry_custom_exceptions():
    """retry_on narrows what is retried."""
    attempts = []

    @with_io_retry(max_attempts=3, min_wait=0.01, max_wait=0.02, retry_on=(KeyError,))
    def lookup():
        attempts.append(1)
        if len(attempts) < 3:
            raise KeyError("later")
        return "found"
    assert lookup() == "found"
    assert len(attempts) == 3

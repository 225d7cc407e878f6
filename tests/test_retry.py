"""
Tests for restockradar.retry module.

Tests retry behavior including:
- Policy validation and presets
- Backoff sequence and sleep counting
- Terminal vs retryable classification
- Exhaustion and cancellation
"""

from __future__ import annotations

import threading

import pytest

from restockradar.exceptions import (
    Cancelled,
    ConfigError,
    DeliveryFailed,
    RetriesExhausted,
    SourceUnavailable,
    StorageError,
)
from restockradar.retry import RetryPolicy, default_is_retryable, execute_with_retry


def _flaky(failures: int, error_factory, value="ok"):
    """Build an operation that fails `failures` times before returning."""
    calls = {"count": 0}

    def op():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise error_factory()
        return value

    return op, calls


class TestRetryPolicy:
    """Tests for RetryPolicy construction and presets."""

    def test_presets(self):
        """Test preset values for each class of operation."""
        api = RetryPolicy.for_api_calls()
        assert (api.max_attempts, api.initial_delay, api.max_delay, api.backoff_multiplier) == (
            3,
            1.0,
            10.0,
            2.0,
        )
        email = RetryPolicy.for_email_delivery()
        assert (email.max_attempts, email.initial_delay, email.max_delay) == (3, 2.0, 15.0)
        assert email.backoff_multiplier == 1.5
        state = RetryPolicy.for_state_operations()
        assert (state.max_attempts, state.initial_delay, state.max_delay) == (2, 0.5, 2.0)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0, "initial_delay": 1, "max_delay": 1, "backoff_multiplier": 1},
            {"max_attempts": 1, "initial_delay": -1, "max_delay": 1, "backoff_multiplier": 1},
            {"max_attempts": 1, "initial_delay": 2, "max_delay": 1, "backoff_multiplier": 1},
            {"max_attempts": 1, "initial_delay": 1, "max_delay": 1, "backoff_multiplier": 0.5},
        ],
    )
    def test_invalid_policy_raises(self, kwargs):
        """Test that out-of-range values are rejected."""
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_describe(self):
        """Test one-line policy summary."""
        text = RetryPolicy.for_api_calls().describe()
        assert text == "RetryPolicy[attempts=3, initial_delay=1s, max_delay=10s, backoff=2.0x]"


class TestClassification:
    """Tests for default_is_retryable."""

    def test_structured_flags(self):
        """Test that project errors answer via their retryable flag."""
        assert default_is_retryable(SourceUnavailable("503", status_code=503))
        assert not default_is_retryable(SourceUnavailable("404", retryable=False))
        assert default_is_retryable(DeliveryFailed("timeout"))
        assert not default_is_retryable(ConfigError("bad"))
        assert not default_is_retryable(Cancelled())

    def test_os_error_is_retryable(self):
        """Test that bare I/O errors are retried."""
        assert default_is_retryable(OSError("busy"))
        assert default_is_retryable(TimeoutError("slow"))

    def test_other_errors_are_terminal(self):
        """Test that programming errors are not retried."""
        assert not default_is_retryable(ValueError("bug"))
        assert not default_is_retryable(KeyError("key"))


class TestExecuteWithRetry:
    """Tests for execute_with_retry."""

    def test_success_first_attempt_does_not_sleep(self):
        """Test that a successful first call never sleeps."""
        sleeps: list[float] = []
        result = execute_with_retry(
            lambda: 42, RetryPolicy.for_api_calls(), "op", sleep=sleeps.append
        )
        assert result == 42
        assert sleeps == []

    def test_eventual_success_counts_sleeps(self):
        """Test max_attempts - 1 failures then success."""
        policy = RetryPolicy(max_attempts=4, initial_delay=1.0, max_delay=10.0, backoff_multiplier=2.0)
        op, calls = _flaky(3, lambda: SourceUnavailable("503", status_code=503), value="done")
        sleeps: list[float] = []

        result = execute_with_retry(op, policy, "fetch", sleep=sleeps.append)

        assert result == "done"
        assert calls["count"] == 4
        assert len(sleeps) == 3

    def test_backoff_sequence_is_capped(self):
        """Test delays grow by the multiplier and stop at max_delay."""
        policy = RetryPolicy(max_attempts=5, initial_delay=1.0, max_delay=5.0, backoff_multiplier=2.0)
        op, _ = _flaky(4, lambda: OSError("busy"))
        sleeps: list[float] = []

        execute_with_retry(op, policy, "op", sleep=sleeps.append)

        assert sleeps == pytest.approx([1.0, 2.0, 4.0, 5.0])

    def test_non_retryable_runs_once_and_propagates_unwrapped(self):
        """Test that a terminal failure is raised as-is after one attempt."""
        op, calls = _flaky(5, lambda: SourceUnavailable("404", status_code=404, retryable=False))
        sleeps: list[float] = []

        with pytest.raises(SourceUnavailable) as exc_info:
            execute_with_retry(op, RetryPolicy.for_api_calls(), "fetch", sleep=sleeps.append)

        assert exc_info.value.status_code == 404
        assert calls["count"] == 1
        assert sleeps == []

    def test_exhaustion_wraps_last_error(self):
        """Test RetriesExhausted after every attempt failed."""
        op, calls = _flaky(10, lambda: DeliveryFailed("421 busy"))
        sleeps: list[float] = []

        with pytest.raises(RetriesExhausted) as exc_info:
            execute_with_retry(
                op, RetryPolicy.for_email_delivery(), "Email delivery", sleep=sleeps.append
            )

        err = exc_info.value
        assert calls["count"] == 3
        assert len(sleeps) == 2
        assert err.attempts == 3
        assert err.label == "Email delivery"
        assert isinstance(err.last_error, DeliveryFailed)
        assert err.category is DeliveryFailed
        assert err.__cause__ is err.last_error
        assert not err.retryable

    def test_custom_classifier(self):
        """Test that a caller-supplied classifier overrides the default."""
        op, calls = _flaky(1, lambda: ValueError("flaky parse"))

        result = execute_with_retry(
            op,
            RetryPolicy(max_attempts=2, initial_delay=0, max_delay=0, backoff_multiplier=1),
            "op",
            is_retryable=lambda err: isinstance(err, ValueError),
            sleep=lambda s: None,
        )

        assert result == "ok"
        assert calls["count"] == 2

    def test_cancel_event_set_before_start(self):
        """Test that no attempt runs once cancellation was requested."""
        event = threading.Event()
        event.set()
        calls = []

        with pytest.raises(Cancelled):
            execute_with_retry(
                lambda: calls.append(1), RetryPolicy.for_api_calls(), "op", cancel_event=event
            )

        assert calls == []

    def test_cancel_event_interrupts_wait(self):
        """Test that setting the event during the wait aborts the loop."""
        event = threading.Event()
        calls = {"count": 0}

        def op():
            calls["count"] += 1
            # Request cancellation; the following wait returns immediately.
            event.set()
            raise OSError("busy")

        policy = RetryPolicy(max_attempts=3, initial_delay=30.0, max_delay=30.0, backoff_multiplier=1.0)
        with pytest.raises(Cancelled):
            execute_with_retry(op, policy, "op", cancel_event=event)

        assert calls["count"] == 1

    def test_keyboard_interrupt_during_sleep_becomes_cancelled(self):
        """Test Ctrl-C while waiting to retry."""

        def interrupted_sleep(seconds):
            raise KeyboardInterrupt

        op, calls = _flaky(1, lambda: OSError("busy"))
        with pytest.raises(Cancelled):
            execute_with_retry(op, RetryPolicy.for_api_calls(), "op", sleep=interrupted_sleep)
        assert calls["count"] == 1

    def test_keyboard_interrupt_during_attempt_becomes_cancelled(self):
        """Test Ctrl-C inside the operation."""

        def op():
            raise KeyboardInterrupt

        with pytest.raises(Cancelled):
            execute_with_retry(op, RetryPolicy.for_api_calls(), "op", sleep=lambda s: None)

    def test_storage_error_flag(self):
        """Test that non-retryable StorageError stops immediately."""
        op, calls = _flaky(3, lambda: StorageError("corrupt", retryable=False))
        with pytest.raises(StorageError):
            execute_with_retry(op, RetryPolicy.for_state_operations(), "load", sleep=lambda s: None)
        assert calls["count"] == 1

    def test_logs_retries_and_success(self, recording_logger):
        """Test attempt outcomes are logged."""
        op, _ = _flaky(1, lambda: OSError("busy"))

        execute_with_retry(
            op,
            RetryPolicy.for_api_calls(),
            "fetch",
            sleep=lambda s: None,
            logger=recording_logger,
        )

        warnings = recording_logger.messages("warning")
        assert any("failed on attempt 1/3" in w and "Retrying in 1s" in w for w in warnings)
        assert any("succeeded on attempt 2/3" in v for v in recording_logger.messages("verbose"))

# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Retry with exponential backoff for Restock Radar.

Every fallible operation in a run (the stock API call, the SMTP delivery,
and the state file read/write) goes through execute_with_retry(). The
executor knows nothing about what the operation does; it only knows how
to classify a failure as retryable or terminal.

Backoff:

- The first wait is ``initial_delay``.
- Each following wait is ``min(previous * backoff_multiplier, max_delay)``.

Classification:

- Terminal failures propagate immediately, unwrapped, without consuming
  the remaining attempts.
- Retryable failures are retried until ``max_attempts`` is reached, after
  which RetriesExhausted is raised, chained from the last failure.
- The decision is made from structured data: RadarError subclasses carry a
  ``retryable`` flag set at the boundary where the raw error was caught.

Cancellation:

- If a ``threading.Event`` is supplied, the executor waits on it instead
  of sleeping blindly. Setting the event makes the wait return early and
  the executor raise Cancelled.
- A KeyboardInterrupt during a wait or an attempt is also turned into
  Cancelled.

The loop itself is driven by tenacity.

Example:
    Retry an API call:
        ```python
        from restockradar.retry import RetryPolicy, execute_with_retry

        products = execute_with_retry(
            lambda: source.fetch_once(watchlist),
            RetryPolicy.for_api_calls(),
            "Amul API stock fetch",
        )
        ```

    Inject a fake sleep in tests:
        ```python
        sleeps = []
        execute_with_retry(op, policy, "op", sleep=sleeps.append)
        ```
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import threading
import time
from typing import TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from restockradar.exceptions import Cancelled, RadarError, RetriesExhausted
from restockradar.logging import Logger, get_global_logger

__all__ = ["RetryPolicy", "default_is_retryable", "execute_with_retry"]

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for one class of operation.

    Attributes:
        max_attempts: Total number of attempts (at least 1).
        initial_delay: Seconds to wait after the first failure.
        max_delay: Upper bound for any single wait, in seconds.
        backoff_multiplier: Growth factor applied to the wait (at least 1.0).
    """

    max_attempts: int
    initial_delay: float
    max_delay: float
    backoff_multiplier: float

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0:
            raise ValueError(
                f"initial_delay must be >= 0, got {self.initial_delay}"
            )
        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= "
                f"initial_delay ({self.initial_delay})"
            )
        if self.backoff_multiplier < 1.0:
            raise ValueError(
                f"backoff_multiplier must be >= 1.0, got {self.backoff_multiplier}"
            )

    @classmethod
    def for_api_calls(cls) -> RetryPolicy:
        """3 attempts waiting 1s then 2s (capped at 10s)."""
        return cls(max_attempts=3, initial_delay=1.0, max_delay=10.0, backoff_multiplier=2.0)

    @classmethod
    def for_email_delivery(cls) -> RetryPolicy:
        """3 attempts waiting 2s then 3s (capped at 15s)."""
        return cls(max_attempts=3, initial_delay=2.0, max_delay=15.0, backoff_multiplier=1.5)

    @classmethod
    def for_state_operations(cls) -> RetryPolicy:
        """2 attempts waiting 0.5s (capped at 2s)."""
        return cls(max_attempts=2, initial_delay=0.5, max_delay=2.0, backoff_multiplier=2.0)

    def describe(self) -> str:
        """Return a one-line summary for logging."""
        return (
            f"RetryPolicy[attempts={self.max_attempts}, "
            f"initial_delay={self.initial_delay:g}s, "
            f"max_delay={self.max_delay:g}s, "
            f"backoff={self.backoff_multiplier:.1f}x]"
        )


def default_is_retryable(error: BaseException) -> bool:
    """Classify a failure using structured error data.

    Args:
        error: The exception raised by an attempt.

    Returns:
        True if the operation may succeed when repeated.

    Note:
        RadarError subclasses answer through their ``retryable`` flag.
        Bare OSError (file contention, dropped sockets) is retryable.
        Anything else is a programming or data error and is terminal.
    """
    if isinstance(error, Cancelled):
        return False
    if isinstance(error, RadarError):
        return error.retryable
    return isinstance(error, OSError)


def execute_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    label: str,
    *,
    is_retryable: Callable[[BaseException], bool] | None = None,
    sleep: Callable[[float], None] | None = None,
    cancel_event: threading.Event | None = None,
    logger: Logger | None = None,
) -> T:
    """Run an operation with retries and exponential backoff.

    Args:
        operation: Zero-argument callable to execute.
        policy: Attempt count and backoff settings.
        label: Human-readable operation name used in logs and errors.
        is_retryable: Failure classifier. Defaults to default_is_retryable.
        sleep: Function used to wait between attempts. Defaults to
            time.sleep, or to waiting on ``cancel_event`` when one is given.
        cancel_event: Event that, once set, aborts the retry loop.
        logger: Logger for attempt outcomes. Defaults to the global logger.

    Returns:
        The value returned by the first successful attempt.

    Raises:
        RetriesExhausted: If every attempt failed with a retryable error.
        Cancelled: If the cancel event was set or the process was
            interrupted while waiting or running an attempt.
        Exception: The original error, unwrapped, if it was classified as
            terminal.

    """
    if logger is None:
        logger = get_global_logger()
    classify = is_retryable or default_is_retryable
    attempt_number = 0

    def _check_cancelled() -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled(f"{label} cancelled")

    def _attempt() -> T:
        nonlocal attempt_number
        attempt_number += 1
        _check_cancelled()
        logger.debug(
            "RETRY",
            f"Executing {label} (attempt {attempt_number}/{policy.max_attempts})",
        )
        try:
            return operation()
        except KeyboardInterrupt as err:
            raise Cancelled(f"{label} interrupted") from err

    def _sleep(seconds: float) -> None:
        _check_cancelled()
        try:
            if sleep is None and cancel_event is not None:
                if cancel_event.wait(seconds):
                    raise Cancelled(f"{label} cancelled while waiting to retry")
            else:
                (sleep or time.sleep)(seconds)
        except KeyboardInterrupt as err:
            raise Cancelled(f"{label} interrupted while waiting to retry") from err
        _check_cancelled()

    def _should_retry(error: BaseException) -> bool:
        if isinstance(error, (Cancelled, KeyboardInterrupt)):
            return False
        return classify(error)

    def _before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "RETRY",
            f"{label} failed on attempt {retry_state.attempt_number}/"
            f"{policy.max_attempts}: {error}. Retrying in {delay:g}s...",
        )

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(
            multiplier=policy.initial_delay,
            exp_base=policy.backoff_multiplier,
            max=policy.max_delay,
        ),
        retry=retry_if_exception(_should_retry),
        sleep=_sleep,
        before_sleep=_before_sleep,
        reraise=False,
    )

    try:
        result = retrying(_attempt)
    except RetryError as err:
        last_error = err.last_attempt.exception()
        logger.error(
            "RETRY",
            f"{label} failed after {policy.max_attempts} attempt(s). "
            f"Final error: {last_error}",
        )
        raise RetriesExhausted(label, policy.max_attempts, last_error) from last_error
    except Cancelled:
        logger.warning("RETRY", f"{label} cancelled on attempt {attempt_number}")
        raise
    except Exception as err:
        logger.error("RETRY", f"{label} failed with non-retryable error: {err}")
        raise

    if attempt_number > 1:
        logger.verbose(
            "RETRY",
            f"{label} succeeded on attempt {attempt_number}/{policy.max_attempts}",
        )
    return result

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

"""Exception hierarchy for Restock Radar.

This module defines the error taxonomy used across the stock checker so that
callers can tell apart failures that should end a run from failures that
should only be logged:

- ConfigError: Configuration problems (YAML parse, wrong types, bad values)
- SourceUnavailable: The stock source could not be reached or parsed
- DeliveryFailed: A notification could not be delivered
- StorageError: The state file could not be read or written
- RetriesExhausted: Every retry attempt failed; wraps the last failure
- Cancelled: The run was interrupted from outside

All exceptions inherit from RadarError. Each error carries a ``retryable``
flag which is decided where the raw transport error is first caught; the
retry executor reads that flag instead of inspecting error messages.

Example:
    Catching specific error types:
        ```python
        from restockradar.exceptions import SourceUnavailable

        try:
            products = source.fetch([])
        except SourceUnavailable as e:
            print(f"Stock source failed (HTTP {e.status_code}): {e}")
        ```

    Catching all Restock Radar errors:
        ```python
        from restockradar.exceptions import RadarError

        try:
            result = check_stock(config, source=source)
        except RadarError as e:
            print(f"Restock Radar error: {e}")
        ```
"""

from __future__ import annotations

__all__ = [
    "RadarError",
    "ConfigError",
    "SourceUnavailable",
    "DeliveryFailed",
    "StorageError",
    "RetriesExhausted",
    "Cancelled",
]


class RadarError(Exception):
    """Base exception for all Restock Radar errors.

    Attributes:
        retryable: True if repeating the failed operation may succeed.
    """

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ConfigError(RadarError):
    """Raised for configuration-related errors.

    This exception is raised when there are problems with:

    - YAML parsing (syntax errors, non-mapping top level)
    - Missing or wrongly typed configuration fields
    - Credentials placed in the configuration file

    Configuration errors are never retryable.
    """

    def __init__(self, message: str = "") -> None:
        super().__init__(message, retryable=False)


class SourceUnavailable(RadarError):
    """Raised when the stock source cannot deliver product data.

    Covers transport failures, HTTP error statuses, and responses that
    cannot be parsed. Server errors (5xx), rate limiting (429), timeouts
    and dropped connections are retryable; other client errors (4xx) and
    malformed responses are not.

    Attributes:
        status_code: HTTP status code of the failed response, if any.
    """

    def __init__(
        self,
        message: str = "",
        *,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, retryable=retryable)
        self.status_code = status_code


class DeliveryFailed(RadarError):
    """Raised when a notification cannot be delivered.

    Transient SMTP and network errors are retryable; authentication and
    address errors are not.
    """

    def __init__(self, message: str = "", *, retryable: bool = True) -> None:
        super().__init__(message, retryable=retryable)


class StorageError(RadarError):
    """Raised when the state file cannot be read or written.

    I/O contention is retryable; a corrupted or oversized file is not.
    """

    def __init__(self, message: str = "", *, retryable: bool = True) -> None:
        super().__init__(message, retryable=retryable)


class RetriesExhausted(RadarError):
    """Raised when an operation failed on every allowed attempt.

    Attributes:
        label: Human-readable name of the operation.
        attempts: Number of attempts made.
        last_error: The failure raised by the final attempt.
    """

    def __init__(self, label: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"{label} failed after {attempts} attempt(s): {last_error}",
            retryable=False,
        )
        self.label = label
        self.attempts = attempts
        self.last_error = last_error

    @property
    def category(self) -> type[BaseException]:
        """Error class of the wrapped cause (e.g. SourceUnavailable)."""
        return type(self.last_error)


class Cancelled(RadarError):
    """Raised when a run is interrupted during a retry wait or blocking call.

    Always terminal for the run.
    """

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message, retryable=False)

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

"""Logging interface for Restock Radar.

This module provides a configurable logging interface that library modules
can use for operational narration without depending on the CLI. Log lines
go to stderr so that the human-readable status table printed by the CLI
on stdout stays clean.

The logger supports these output levels:

- Step: Always printed (for progress indicators)
- Warning/Error: Always printed (something needs the operator's attention)
- Verbose: Only printed when verbose mode is enabled
- Debug: Only printed when debug mode is enabled (implies verbose)

Example:
    Configure global logger:
        ```python
        from restockradar.logging import get_logger, set_global_logger

        logger = get_logger(verbose=True, debug=False)
        set_global_logger(logger)
        ```

    Use in library code:
        ```python
        from restockradar.logging import get_global_logger

        logger = get_global_logger()
        logger.step(1, 5, "Loading previous state...")
        logger.verbose("STATE", "Loaded state for 12 products")
        logger.warning("STATE", "State file is empty")
        ```

Note:
    The default global logger is silent, so library functions won't print
    anything unless explicitly configured. The CLI configures the global
    logger when commands are executed.
"""

from __future__ import annotations

import sys
from typing import Protocol, TextIO


class Logger(Protocol):
    """Interface every logger passed into restockradar must provide."""

    def step(self, step: int, total: int, message: str) -> None:
        """Announce phase `step` of `total` of a stock check (always shown)."""
        ...

    def verbose(self, prefix: str, message: str) -> None:
        """Narrate progress under a component tag such as "STATE" or "SOURCE"."""
        ...

    def debug(self, prefix: str, message: str) -> None:
        """Emit low-level detail (requests, retry attempts) under a component tag."""
        ...

    def warning(self, prefix: str, message: str) -> None:
        """Print a warning that is shown regardless of verbosity."""
        ...

    def error(self, prefix: str, message: str) -> None:
        """Print an error that is shown regardless of verbosity."""
        ...


class DefaultLogger:
    """Default logger implementation that writes to stderr.

    This logger respects verbose and debug flags and formats every line as
    ``[PREFIX] message``.
    """

    def __init__(
        self,
        verbose: bool = False,
        debug: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        """
        Args:
            verbose: Show verbose narration.
            debug: Show debug detail; turns on verbose too.
            stream: Where lines go. Resolved to sys.stderr on each write so
                pytest capture keeps working.
        """
        self._verbose = verbose or debug
        self._debug = debug
        self._stream = stream

    def _write(self, line: str) -> None:
        print(line, file=self._stream or sys.stderr)

    def step(self, step: int, total: int, message: str) -> None:
        """Print a step indicator."""
        self._write(f"[{step}/{total}] {message}")

    def verbose(self, prefix: str, message: str) -> None:
        """Write the line when verbose or debug is on."""
        if self._verbose:
            self._write(f"[{prefix}] {message}")

    def debug(self, prefix: str, message: str) -> None:
        """Write the line only in debug mode."""
        if self._debug:
            self._write(f"[{prefix}] {message}")

    def warning(self, prefix: str, message: str) -> None:
        """Print a warning message."""
        self._write(f"[{prefix}] WARNING: {message}")

    def error(self, prefix: str, message: str) -> None:
        """Print an error message."""
        self._write(f"[{prefix}] ERROR: {message}")


class SilentLogger:
    """Logger that discards everything; the default for library use."""

    def step(self, step: int, total: int, message: str) -> None:
        pass

    def verbose(self, prefix: str, message: str) -> None:
        pass

    def debug(self, prefix: str, message: str) -> None:
        pass

    def warning(self, prefix: str, message: str) -> None:
        pass

    def error(self, prefix: str, message: str) -> None:
        pass


# Process-wide logger; silent until the CLI installs one
_global_logger: Logger = SilentLogger()


def get_logger(verbose: bool = False, debug: bool = False) -> Logger:
    """Build a stderr logger for the given CLI flags.

    Args:
        verbose: Show progress narration.
        debug: Show per-request and per-attempt detail as well.

    Returns:
        A DefaultLogger writing to stderr.
    """
    return DefaultLogger(verbose=verbose, debug=debug)


def get_global_logger() -> Logger:
    """Return the logger used by modules that were not handed one.

    Note:
        Silent by default, so importing restockradar as a library prints
        nothing until set_global_logger() is called.
    """
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Replace the process-wide logger.

    Args:
        logger: Any object implementing the Logger protocol.
    """
    global _global_logger
    _global_logger = logger

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

"""State persistence implementation for Restock Radar.

This module implements the snapshot file that carries the last-known stock
of every product from one run to the next.

Key Features:

- JSON list of ``{name, key, available, quantity}`` records, pretty-printed
- Missing file is a normal cold start (empty snapshot)
- Corrupted, oversized, or unreadable files degrade to an empty snapshot
- Records without a key are skipped one by one
- Atomic writes: temp file in the same directory, fsync, then os.replace
- Every read and write goes through the retry executor

Example:
    High-level API with StateStore:
        ```python
        from pathlib import Path
        from restockradar.state import StateStore

        store = StateStore(Path("last-known-stock.json"))
        previous = store.load()
        ...
        if not store.save(current):
            print("State not saved; next run may repeat notifications")
        ```

    Low-level API with functions:
        ```python
        from restockradar.state import read_snapshot, write_snapshot

        snapshot = read_snapshot(Path("last-known-stock.json"))
        write_snapshot(snapshot, Path("last-known-stock.json"))
        ```

"""

from __future__ import annotations

import json
import os
from pathlib import Path
import tempfile
import threading

from restockradar.exceptions import Cancelled, RetriesExhausted, StorageError
from restockradar.logging import Logger, get_global_logger
from restockradar.models import ProductState, Snapshot
from restockradar.retry import RetryPolicy, execute_with_retry

# Files larger than this are treated as corrupted.
MAX_STATE_FILE_BYTES = 10 * 1024 * 1024


class StateStore:
    """Loads and saves product snapshots with retries and atomic writes.

    Attributes:
        state_file: Path to the JSON state file.
        policy: Retry policy applied to each load and save.

    Example:
        Basic usage:
            ```python
            store = StateStore(Path("last-known-stock.json"))
            previous = store.load()
            store.save(current)
            ```

    """

    def __init__(
        self,
        state_file: Path,
        policy: RetryPolicy | None = None,
        *,
        logger: Logger | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            state_file: Path to the JSON state file. Created on first save.
            policy: Retry policy. Defaults to RetryPolicy.for_state_operations().
            logger: Logger to use. Defaults to the global logger.
            cancel_event: Event that aborts retry waits when set.

        """
        self.state_file = Path(state_file)
        self.policy = policy or RetryPolicy.for_state_operations()
        self._logger = logger
        self._cancel_event = cancel_event

    @property
    def logger(self) -> Logger:
        return self._logger or get_global_logger()

    def load(self) -> Snapshot:
        """Load the previous snapshot.

        Returns:
            The stored snapshot, or an empty one if the file is missing or
            could not be read after retries.

        Raises:
            Cancelled: If the run was interrupted while retrying.

        """
        logger = self.logger
        if not self.state_file.exists():
            logger.verbose(
                "STATE",
                f"State file does not exist: {self.state_file}. Starting with empty state.",
            )
            return {}

        logger.debug(
            "STATE",
            f"Loading state from {self.state_file} with {self.policy.describe()}",
        )
        try:
            snapshot = execute_with_retry(
                lambda: read_snapshot(self.state_file, logger=logger),
                self.policy,
                f"Load state from {self.state_file}",
                cancel_event=self._cancel_event,
                logger=logger,
            )
        except Cancelled:
            raise
        except (StorageError, RetriesExhausted) as err:
            logger.warning("STATE", f"Failed to load state from {self.state_file}: {err}")
            logger.warning("STATE", "Starting with empty state; no transitions can fire this run")
            return {}

        logger.verbose(
            "STATE",
            f"Loaded state for {len(snapshot)} products from {self.state_file}",
        )
        return snapshot

    def save(self, snapshot: Snapshot) -> bool:
        """Persist a snapshot, replacing the previous file atomically.

        Args:
            snapshot: Snapshot to store.

        Returns:
            True if the file was written, False if every attempt failed.

        Raises:
            Cancelled: If the run was interrupted while retrying.

        """
        logger = self.logger
        logger.debug(
            "STATE",
            f"Saving state to {self.state_file} with {self.policy.describe()}",
        )
        try:
            size = execute_with_retry(
                lambda: write_snapshot(snapshot, self.state_file),
                self.policy,
                f"Save state to {self.state_file}",
                cancel_event=self._cancel_event,
                logger=logger,
            )
        except Cancelled:
            raise
        except (StorageError, RetriesExhausted) as err:
            logger.error("STATE", f"Failed to save state to {self.state_file}: {err}")
            return False

        logger.verbose(
            "STATE",
            f"Saved state for {len(snapshot)} products to {self.state_file} ({size} bytes)",
        )
        return True


def read_snapshot(state_file: Path, *, logger: Logger | None = None) -> Snapshot:
    """Read a snapshot from a JSON state file (single attempt).

    Args:
        state_file: Path to the JSON state file.
        logger: Logger for skipped records. Defaults to the global logger.

    Returns:
        Snapshot keyed by product key. An empty file gives an empty snapshot.

    Raises:
        StorageError: Retryable if the file could not be read; not
            retryable if it is oversized, not valid JSON, or not a list.

    """
    if logger is None:
        logger = get_global_logger()

    try:
        size = state_file.stat().st_size
        if size == 0:
            logger.warning("STATE", f"State file {state_file} is empty")
            return {}
        if size > MAX_STATE_FILE_BYTES:
            raise StorageError(
                f"State file is too large: {size} bytes "
                f"(limit {MAX_STATE_FILE_BYTES})",
                retryable=False,
            )
        with open(state_file, encoding="utf-8") as f:
            records = json.load(f)
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        raise StorageError(
            f"Failed to parse JSON from state file {state_file}: {err}",
            retryable=False,
        ) from err
    except OSError as err:
        raise StorageError(f"Failed to read state file {state_file}: {err}") from err

    if records is None:
        return {}
    if not isinstance(records, list):
        raise StorageError(
            f"State file {state_file} must contain a JSON list, "
            f"got {type(records).__name__}",
            retryable=False,
        )

    snapshot: Snapshot = {}
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            logger.warning("STATE", f"Skipping invalid record #{index}: {record!r}")
            continue
        try:
            product = ProductState.from_record(record)
        except (KeyError, TypeError, ValueError, OverflowError):
            logger.warning("STATE", f"Skipping invalid record #{index}: {record!r}")
            continue
        snapshot[product.key] = product
    return snapshot


def write_snapshot(snapshot: Snapshot, state_file: Path) -> int:
    """Write a snapshot atomically (single attempt).

    The JSON is written to a temp file next to the destination, flushed to
    disk, checked for being non-empty, and renamed over the destination.
    The temp file never survives the call.

    Args:
        snapshot: Snapshot to write.
        state_file: Destination path. Parent directories are created.

    Returns:
        Size of the written file in bytes.

    Raises:
        StorageError: If any step fails (retryable).

    Note:
        - Uses 2-space indentation for readability
        - Records are sorted by key for consistent diffs
        - Adds trailing newline for git compatibility

    """
    records = [
        snapshot[key].to_record() for key in sorted(snapshot) if snapshot[key].key
    ]
    payload = json.dumps(records, indent=2) + "\n"

    tmp_path: Path | None = None
    try:
        state_file.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{state_file.name}.", suffix=".tmp", dir=state_file.parent
        )
        tmp_path = Path(tmp_name)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())

        size = tmp_path.stat().st_size
        if size == 0:
            raise StorageError(f"Temporary state file {tmp_path} is empty after write")

        os.replace(tmp_path, state_file)
        return size
    except OSError as err:
        raise StorageError(f"Failed to write state file {state_file}: {err}") from err
    finally:
        if tmp_path is not None:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                pass

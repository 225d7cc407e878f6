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

"""State persistence for Restock Radar.

This module persists the last-known stock of every monitored product
between scheduled runs. The stored snapshot is the baseline the next run
diffs against, which is what keeps notifications from repeating.

Public API:

- StateStore: Retrying, atomic load/save of snapshots
- read_snapshot: Read a snapshot from a JSON file (single attempt)
- write_snapshot: Write a snapshot atomically (single attempt)

Example:
    Basic usage:

        from pathlib import Path
        from restockradar.state import StateStore

        store = StateStore(Path("last-known-stock.json"))
        previous = store.load()
        store.save(current)

"""

from .store import MAX_STATE_FILE_BYTES, StateStore, read_snapshot, write_snapshot

__all__ = ["MAX_STATE_FILE_BYTES", "StateStore", "read_snapshot", "write_snapshot"]

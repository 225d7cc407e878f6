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

"""Public API return types for Restock Radar.

This module defines dataclasses for return values from public API functions:
the outcome of a stock check run and the outcome of validating a config file.

All dataclasses are frozen (immutable) to prevent accidental mutation of
return values.

Example:
    Using result types:
        ```python
        from restockradar.core import check_stock
        from restockradar.results import RunResult

        result: RunResult = check_stock(config, source=source)
        print(result.phase)  # RunPhase.DONE
        print(result.in_stock_count)
        ```

Note:
    Only public API return types belong in this module. Domain types
    (like ProductState and ChangeSet) stay next to their related logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from restockradar.models import ProductState


class RunPhase(Enum):
    """Phases of one stock check run, in order.

    check_stock logs each intermediate phase at debug level as it is
    entered. A RunResult only ever carries DONE or FAILED, and FAILED is
    only reachable from FETCHING.
    """

    LOADING_STATE = "loading_state"
    FETCHING = "fetching"
    DIFFING = "diffing"
    NOTIFYING = "notifying"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RunResult:
    """Result from one stock check run.

    Attributes:
        phase: Final phase (DONE or FAILED).
        products: Products returned by the fetch, in fetch order.
        newly_in_stock: Products that came back in stock.
        newly_out_of_stock: Products that sold out.
        notifications_sent: Number of messages delivered.
        notification_failures: One message per alert that could not be sent.
        state_saved: Whether the snapshot was written.
        error: Reason for a FAILED run.
    """

    phase: RunPhase
    products: tuple[ProductState, ...] = ()
    newly_in_stock: tuple[ProductState, ...] = ()
    newly_out_of_stock: tuple[ProductState, ...] = ()
    notifications_sent: int = 0
    notification_failures: tuple[str, ...] = ()
    state_saved: bool = False
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.phase is RunPhase.DONE

    @property
    def total(self) -> int:
        return len(self.products)

    @property
    def in_stock_count(self) -> int:
        return sum(1 for p in self.products if p.in_stock)

    @property
    def out_of_stock_count(self) -> int:
        return self.total - self.in_stock_count


@dataclass(frozen=True)
class ValidationResult:
    """Result from validating a config file.

    Attributes:
        status: Validation status ("valid" or "invalid").
        errors: List of error messages (empty if valid).
        warnings: List of warning messages.
        watched_count: Number of entries in watched_products (0 = all).
        config_path: String path to the validated config file.
    """

    status: str
    errors: list[str]
    warnings: list[str]
    watched_count: int
    config_path: str

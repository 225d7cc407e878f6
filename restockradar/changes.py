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

"""Stock transition detection between two snapshots.

A transition needs a previous record: the first time a product is seen it
never triggers a notification, whatever its stock. Products that vanish
from the current fetch are dropped silently.

Example:
    Compare the stored snapshot with a fresh fetch:
        ```python
        from restockradar.changes import diff_snapshots

        changes = diff_snapshots(previous, current)
        for product in changes.newly_in_stock:
            print(f"Back in stock: {product.name}")
        ```
"""

from __future__ import annotations

from dataclasses import dataclass

from restockradar.logging import Logger, get_global_logger
from restockradar.models import ProductState, Snapshot

__all__ = ["ChangeSet", "comparison_summary", "diff_snapshots"]


@dataclass(frozen=True)
class ChangeSet:
    """Products whose stock state flipped since the previous snapshot.

    Both sequences follow the iteration order of the current snapshot.
    """

    newly_in_stock: tuple[ProductState, ...] = ()
    newly_out_of_stock: tuple[ProductState, ...] = ()

    @property
    def has_changes(self) -> bool:
        return bool(self.newly_in_stock or self.newly_out_of_stock)


def diff_snapshots(
    previous: Snapshot,
    current: Snapshot,
    *,
    logger: Logger | None = None,
) -> ChangeSet:
    """Classify per-product stock transitions.

    Args:
        previous: Snapshot loaded from the state file.
        current: Snapshot built from the latest fetch.
        logger: Logger for per-product detail. Defaults to the global logger.

    Returns:
        ChangeSet with products that came back in stock and products that
        sold out.

    """
    if logger is None:
        logger = get_global_logger()

    newly_in: list[ProductState] = []
    newly_out: list[ProductState] = []

    for key, now in current.items():
        before = previous.get(key)
        if before is None:
            logger.debug("DIFF", f"No previous state for {key}, no signal")
            continue

        if not before.in_stock and now.in_stock:
            logger.verbose(
                "DIFF",
                f"{key} is newly in stock (was {before.quantity} units, "
                f"now {now.quantity} units)",
            )
            newly_in.append(now)
        elif before.in_stock and not now.in_stock:
            logger.verbose(
                "DIFF",
                f"{key} went out of stock (was {before.quantity} units, "
                f"now {now.quantity} units)",
            )
            newly_out.append(now)

    return ChangeSet(newly_in_stock=tuple(newly_in), newly_out_of_stock=tuple(newly_out))


def comparison_summary(previous: Snapshot, current: Snapshot, changes: ChangeSet) -> str:
    """Render a one-line comparison of two snapshots for the run log."""
    previous_in = sum(1 for p in previous.values() if p.in_stock)
    current_in = sum(1 for p in current.values() if p.in_stock)
    return (
        f"State comparison: Previous ({previous_in} in stock) vs "
        f"Current ({current_in} in stock). "
        f"Newly in stock: {len(changes.newly_in_stock)} products, "
        f"Newly out of stock: {len(changes.newly_out_of_stock)} products"
    )

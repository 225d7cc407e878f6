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

"""Domain types for product stock tracking.

ProductState is the immutable record produced by every fetch and stored in
the state file. A Snapshot maps each product key to its ProductState; it is
replaced wholesale at the end of each run and never mutated in place.

Example:
    Build a snapshot from fetched products:
        ```python
        from restockradar.models import ProductState, snapshot_from_products

        products = [ProductState("whey", "Whey Protein", True, 12)]
        snapshot = snapshot_from_products(products)
        snapshot["whey"].in_stock  # True
        ```
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

__all__ = ["ProductState", "Snapshot", "parse_available", "snapshot_from_products"]


def parse_available(value: Any) -> bool:
    """Read an availability flag given as bool, 0/1, or a string like "false"."""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


@dataclass(frozen=True)
class ProductState:
    """Stock information for one product at one point in time.

    Attributes:
        key: Stable product identifier (the shop's URL alias).
        name: Display name.
        available: Availability flag published by the shop.
        quantity: Units in inventory (never negative).
    """

    key: str
    name: str
    available: bool
    quantity: int

    def __post_init__(self) -> None:
        if self.quantity < 0:
            object.__setattr__(self, "quantity", 0)

    @property
    def in_stock(self) -> bool:
        """True when the product is available and has inventory."""
        return self.available and self.quantity > 0

    def to_summary(self) -> str:
        """Format a one-line status for logs and the status table."""
        return (
            f"{self.name} [{self.key}] - Stock: {self.quantity} "
            f"(Available: {'Yes' if self.available else 'No'})"
        )

    def to_record(self) -> dict[str, Any]:
        """Convert to the record stored in the state file."""
        return {
            "name": self.name,
            "key": self.key,
            "available": self.available,
            "quantity": self.quantity,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> ProductState:
        """Build a ProductState from a stored record.

        Accepts ``alias``/``inventoryQuantity`` as written by older state
        files in place of ``key``/``quantity``.

        Raises:
            KeyError: If the record has no key.
            ValueError: If the quantity is not an integer.
            OverflowError: If the quantity is infinite.
        """
        key = record.get("key") or record.get("alias")
        if not key:
            raise KeyError("key")
        quantity = record.get("quantity", record.get("inventoryQuantity", 0))
        return cls(
            key=str(key),
            name=str(record.get("name") or key),
            available=parse_available(record.get("available", False)),
            quantity=int(quantity or 0),
        )


Snapshot = dict[str, ProductState]


def snapshot_from_products(products: Iterable[ProductState]) -> Snapshot:
    """Index products by key, keeping fetch order (last duplicate wins)."""
    return {product.key: product for product in products}

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

"""Stock source protocol for Restock Radar.

A stock source fetches the current state of products from a remote system.
Only one production implementation exists (AmulApiSource); the protocol
keeps the orchestrator independent of it so tests can pass a double.

Implementations do not subclass StockSource. Any object with a ``name``
attribute and a matching ``fetch()`` satisfies it, which is how the test
doubles in tests/conftest.py are written.

Example:
    A fixed source for tests:
        ```python
        from restockradar.models import ProductState

        class FixedSource:
            name = "fixed"

            def __init__(self, products):
                self.products = products

            def fetch(self, watchlist=None):
                return list(self.products)
        ```

"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from restockradar.models import ProductState


class StockSource(Protocol):
    """Protocol for product stock sources.

    Attributes:
        name: Human-readable source name used in logs.
    """

    name: str

    def fetch(self, watchlist: Sequence[str] | None = None) -> list[ProductState]:
        """Fetch the current state of products.

        Args:
            watchlist: Product keys to restrict the result to. None or an
                empty sequence means every product the source knows.

        Returns:
            Current product states, filtered to the watchlist if given.

        Raises:
            SourceUnavailable: On transport, HTTP status, or parse failures.
            RetriesExhausted: If the source retries internally and every
                attempt failed.
            Cancelled: If the fetch was interrupted.

        """
        ...


def filter_watchlist(
    products: Sequence[ProductState], watchlist: Sequence[str] | None
) -> list[ProductState]:
    """Keep only products whose key is in the watchlist (all if empty)."""
    if not watchlist:
        return list(products)
    wanted = set(watchlist)
    return [product for product in products if product.key in wanted]

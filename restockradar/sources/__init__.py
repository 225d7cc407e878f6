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

"""Stock sources for Restock Radar.

A stock source reports the current availability and inventory of the
products being watched.

Available Sources:

- AmulApiSource: JSON product API behind shop.amul.com

Public API:

- StockSource: Protocol every source satisfies
- AmulApiSource: Production source
- filter_watchlist: Keep only watched products
- parse_products: Map an API payload to ProductState records
- product_url: Storefront link for a product key

Example:
    Fetch the watched products:

        from restockradar.sources import AmulApiSource

        with AmulApiSource() as source:
            products = source.fetch(["amul-whey-protein"])

"""

from .amul import AmulApiSource, parse_products, product_url
from .base import StockSource, filter_watchlist

__all__ = [
    "AmulApiSource",
    "StockSource",
    "filter_watchlist",
    "parse_products",
    "product_url",
]

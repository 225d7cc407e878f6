"""
Amul shop API stock source for Restock Radar.

This source queries the JSON endpoint used by the shop.amul.com storefront
to list products of a category, and maps each entry to a ProductState.

Key Features:
- Browser-like headers accepted by the storefront API
- Dynamic session: the storefront page is loaded first so the shop issues
  its session cookies; the session is re-primed once on HTTP 401/403
- Pagination over the ``paging.total`` count reported by the API
- Watchlist filtering (empty watchlist = every product in the category)
- Per-request timeout
- Retry with exponential backoff via restockradar.retry

Error Classification:
    The raw transport error is classified here, where it is first caught:

    - HTTP 5xx, HTTP 429, timeouts, dropped connections -> retryable
    - HTTP 4xx (other than 429) -> not retryable
    - Empty body, invalid JSON, missing ``data`` list -> not retryable

    All of them surface as SourceUnavailable carrying the HTTP status code
    when there is one.

Response Shape (fields used):

    {
      "data": [
        {"alias": "amul-whey-protein", "name": "Amul Whey Protein",
         "available": 1, "inventory_quantity": 12, ...}
      ],
      "paging": {"limit": 32, "start": 0, "count": 32, "total": 40}
    }

Example:
    From Python:

        from restockradar.sources import AmulApiSource

        with AmulApiSource(timeout=15) as source:
            products = source.fetch(["amul-whey-protein"])
        for product in products:
            print(product.to_summary())

Notes:
- Records without an ``alias`` are skipped
- ``available`` may be 0/1, "0"/"1", or a boolean
- Negative inventory is treated as 0
"""

from __future__ import annotations

from collections.abc import Sequence
import json
import threading
from typing import Any

import requests

from restockradar.exceptions import SourceUnavailable
from restockradar.logging import Logger, get_global_logger
from restockradar.models import ProductState, parse_available
from restockradar.retry import RetryPolicy, execute_with_retry

from .base import filter_watchlist

API_URL = "https://shop.amul.com/api/1/entity/ms.products"
STOREFRONT_URL = "https://shop.amul.com/"
PRODUCT_URL = "https://shop.amul.com/products/{key}"

DEFAULT_CATEGORY = "protein"
DEFAULT_SUBSTORE = "66505ff0998183e1b1935c75"
DEFAULT_PAGE_SIZE = 32
DEFAULT_TIMEOUT = 15

# Upper bound on pages per fetch; protects against a bogus paging.total.
MAX_PAGES = 20

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/18.4 Safari/605.1.15"
    ),
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-IN,en-GB;q=0.9,en;q=0.8",
    "Referer": STOREFRONT_URL,
}

_PRODUCT_FIELDS = (
    "name",
    "brand",
    "categories",
    "collections",
    "alias",
    "sku",
    "price",
    "available",
    "inventory_quantity",
    "net_quantity",
    "num_reviews",
    "avg_rating",
    "inventory_low_stock_quantity",
    "inventory_allow_out_of_stock",
)

_RETRYABLE_TRANSPORT_ERRORS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
    requests.exceptions.ChunkedEncodingError,
)


def product_url(key: str) -> str:
    """Storefront link for a product key."""
    return PRODUCT_URL.format(key=key)


def build_query(
    *,
    category: str = DEFAULT_CATEGORY,
    substore: str = DEFAULT_SUBSTORE,
    limit: int = DEFAULT_PAGE_SIZE,
    start: int = 0,
) -> list[tuple[str, str]]:
    """Build the query string parameters for one page of products."""
    params = [(f"fields[{field}]", "1") for field in _PRODUCT_FIELDS]
    params += [
        ("filters[0][field]", "categories"),
        ("filters[0][value][0]", category),
        ("filters[0][operator]", "in"),
        ("filters[0][original]", "1"),
        ("facets", "true"),
        ("facetgroup", "default_category_facet"),
        ("limit", str(limit)),
        ("total", "1"),
        ("start", str(start)),
        ("cdc", "1m"),
        ("substore", substore),
    ]
    return params


def _parse_quantity(value: Any) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def parse_products(payload: Any, *, logger: Logger | None = None) -> list[ProductState]:
    """Map the API's ``data`` list to ProductState records.

    Args:
        payload: Decoded JSON response.
        logger: Logger for skipped entries. Defaults to the global logger.

    Returns:
        Products in API order. Entries without an alias are skipped.

    Raises:
        SourceUnavailable: If the payload has no ``data`` list (not retryable).

    """
    if logger is None:
        logger = get_global_logger()

    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list):
        raise SourceUnavailable(
            "API returned null or invalid data structure (missing 'data' list)",
            retryable=False,
        )

    products: list[ProductState] = []
    for entry in data:
        if not isinstance(entry, dict) or not entry.get("alias"):
            logger.debug("SOURCE", f"Skipping product entry without alias: {entry!r:.120}")
            continue
        alias = str(entry["alias"])
        products.append(
            ProductState(
                key=alias,
                name=str(entry.get("name") or alias),
                available=parse_available(entry.get("available")),
                quantity=_parse_quantity(entry.get("inventory_quantity")),
            )
        )
    return products


class AmulApiSource:
    """Stock source backed by the shop.amul.com product API.

    Configuration example (config.yml):
        source:
          timeout: 15
          category: protein
          substore: 66505ff0998183e1b1935c75
          page_size: 32
    """

    name = "Amul Shop API"

    def __init__(
        self,
        *,
        api_url: str = API_URL,
        storefront_url: str = STOREFRONT_URL,
        category: str = DEFAULT_CATEGORY,
        substore: str = DEFAULT_SUBSTORE,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
        policy: RetryPolicy | None = None,
        session: requests.Session | None = None,
        logger: Logger | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.api_url = api_url
        self.storefront_url = storefront_url
        self.category = category
        self.substore = substore
        self.page_size = page_size
        self.timeout = timeout
        self.policy = policy or RetryPolicy.for_api_calls()
        self._session = session
        self._owns_session = session is None
        self._primed = False
        self._logger = logger
        self._cancel_event = cancel_event

    def __enter__(self) -> AmulApiSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def logger(self) -> Logger:
        return self._logger or get_global_logger()

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(BROWSER_HEADERS)
        return self._session

    def close(self) -> None:
        """Close the HTTP session if this source created it."""
        if self._session is not None and self._owns_session:
            self._session.close()
            self._session = None
            self._primed = False

    def fetch(self, watchlist: Sequence[str] | None = None) -> list[ProductState]:
        """Fetch current product states with retries.

        Args:
            watchlist: Product aliases to keep. None or empty keeps all.

        Returns:
            Product states in API order.

        Raises:
            SourceUnavailable: On a non-retryable failure.
            RetriesExhausted: If every attempt failed with a retryable error.
            Cancelled: If the run was interrupted.

        """
        self.logger.verbose(
            "SOURCE",
            f"Fetching stock data from {self.name} with {self.policy.describe()}",
        )
        return execute_with_retry(
            lambda: self.fetch_once(watchlist),
            self.policy,
            f"{self.name} stock fetch",
            cancel_event=self._cancel_event,
            logger=self.logger,
        )

    def fetch_once(self, watchlist: Sequence[str] | None = None) -> list[ProductState]:
        """Fetch every page once, without retries."""
        logger = self.logger
        products: list[ProductState] = []
        start = 0

        for _ in range(MAX_PAGES):
            payload = self._get_page(start)
            page = parse_products(payload, logger=logger)
            products.extend(page)

            paging = payload.get("paging") if isinstance(payload, dict) else None
            total = _parse_quantity(paging.get("total")) if isinstance(paging, dict) else 0
            start += self.page_size
            if not page or start >= total:
                break
        else:
            logger.warning("SOURCE", f"Stopped after {MAX_PAGES} pages; results may be partial")

        logger.debug("SOURCE", f"Parsed {len(products)} products from API response")

        selected = filter_watchlist(products, watchlist)
        if watchlist:
            logger.debug(
                "SOURCE",
                f"Filtered to {len(selected)} products matching {len(watchlist)} watched key(s)",
            )
        return selected

    def _prime_session(self) -> None:
        """Load the storefront so the shop issues session cookies."""
        self.logger.debug("HTTP", f"GET {self.storefront_url} (session priming)")
        try:
            response = self.session.get(self.storefront_url, timeout=self.timeout)
        except _RETRYABLE_TRANSPORT_ERRORS as err:
            raise SourceUnavailable(f"Failed to reach storefront: {err}") from err
        except requests.exceptions.RequestException as err:
            raise SourceUnavailable(
                f"Failed to reach storefront: {err}", retryable=False
            ) from err

        if response.status_code >= 400:
            self.logger.warning(
                "SOURCE",
                f"Storefront answered {response.status_code} while priming session; "
                f"continuing without session cookies",
            )
        self._primed = True

    def _get_page(self, start: int) -> Any:
        if not self._primed:
            self._prime_session()

        response = self._request(start)
        if response.status_code in (401, 403):
            self.logger.verbose(
                "SOURCE",
                f"API answered {response.status_code}; refreshing session and retrying once",
            )
            self._primed = False
            self._prime_session()
            response = self._request(start)

        _raise_for_status(response)

        if not response.text or not response.text.strip():
            raise SourceUnavailable(
                "Received empty response from API",
                status_code=response.status_code,
                retryable=False,
            )
        try:
            return response.json()
        except (json.JSONDecodeError, ValueError) as err:
            raise SourceUnavailable(
                f"Invalid JSON response from API. Response: {response.text[:200]}",
                status_code=response.status_code,
                retryable=False,
            ) from err

    def _request(self, start: int) -> requests.Response:
        params = build_query(
            category=self.category,
            substore=self.substore,
            limit=self.page_size,
            start=start,
        )
        self.logger.debug("HTTP", f"GET {self.api_url} (start={start})")
        try:
            response = self.session.get(self.api_url, params=params, timeout=self.timeout)
        except _RETRYABLE_TRANSPORT_ERRORS as err:
            raise SourceUnavailable(f"Failed to call API: {err}") from err
        except requests.exceptions.RequestException as err:
            raise SourceUnavailable(f"Failed to call API: {err}", retryable=False) from err
        self.logger.debug("HTTP", f"Response: {response.status_code} {response.reason}")
        return response


def _raise_for_status(response: requests.Response) -> None:
    """Translate an HTTP status into SourceUnavailable with a retry decision."""
    status = response.status_code
    if status == 200:
        return
    if status >= 500:
        raise SourceUnavailable(
            f"Server error (status {status}): {response.reason}. This may be temporary.",
            status_code=status,
        )
    if status == 429:
        raise SourceUnavailable(
            "Rate limit exceeded (status 429). Please try again later.",
            status_code=status,
        )
    if status >= 400:
        raise SourceUnavailable(
            f"Client error (status {status}): {response.reason}",
            status_code=status,
            retryable=False,
        )
    raise SourceUnavailable(
        f"Unexpected response status {status}: {response.reason}",
        status_code=status,
        retryable=False,
    )

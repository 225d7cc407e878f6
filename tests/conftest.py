"""
Pytest configuration and shared fixtures for Restock Radar tests.

This module provides reusable fixtures and test doubles used across
the test suite.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest
import yaml

from restockradar.config import EmailSettings, RadarConfig
from restockradar.exceptions import DeliveryFailed
from restockradar.logging import SilentLogger, set_global_logger
from restockradar.models import ProductState
from restockradar.notifiers import Priority
from restockradar.retry import RetryPolicy


class RecordingLogger:
    """Logger that keeps every line for assertions."""

    def __init__(self) -> None:
        self.lines: list[tuple[str, str, str]] = []

    def step(self, step: int, total: int, message: str) -> None:
        self.lines.append(("step", f"{step}/{total}", message))

    def verbose(self, prefix: str, message: str) -> None:
        self.lines.append(("verbose", prefix, message))

    def debug(self, prefix: str, message: str) -> None:
        self.lines.append(("debug", prefix, message))

    def warning(self, prefix: str, message: str) -> None:
        self.lines.append(("warning", prefix, message))

    def error(self, prefix: str, message: str) -> None:
        self.lines.append(("error", prefix, message))

    def messages(self, level: str) -> list[str]:
        return [message for lvl, _, message in self.lines if lvl == level]


class FakeSource:
    """Stock source returning canned products or raising a canned error."""

    name = "fake source"

    def __init__(
        self,
        products: Sequence[ProductState] = (),
        error: Exception | None = None,
    ) -> None:
        self.products = list(products)
        self.error = error
        self.calls: list[list[str]] = []

    def fetch(self, watchlist=None) -> list[ProductState]:
        self.calls.append(list(watchlist or []))
        if self.error is not None:
            raise self.error
        if watchlist:
            return [p for p in self.products if p.key in set(watchlist)]
        return list(self.products)


class FakeNotifier:
    """Notifier that records sent messages; can fail selected priorities."""

    name = "fake notifier"

    def __init__(self, fail_priorities: Sequence[Priority] = (), configured: bool = True):
        self.sent: list[dict[str, Any]] = []
        self.fail_priorities = set(fail_priorities)
        self.configured = configured

    def is_configured(self) -> bool:
        return self.configured

    def send(self, recipients, subject, body, priority=Priority.NORMAL) -> None:
        if priority in self.fail_priorities:
            raise DeliveryFailed(f"refused {priority.name}", retryable=False)
        self.sent.append(
            {
                "recipients": list(recipients),
                "subject": subject,
                "body": body,
                "priority": priority,
            }
        )


@pytest.fixture(autouse=True)
def reset_global_logger():
    """Keep the global logger silent between tests."""
    yield
    set_global_logger(SilentLogger())


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def make_product():
    """
    Factory fixture for ProductState records.

    Usage:
        whey = make_product("whey", available=True, quantity=4)
    """

    def _make(
        key: str,
        available: bool = True,
        quantity: int = 5,
        name: str | None = None,
    ) -> ProductState:
        return ProductState(
            key=key,
            name=name or key.replace("-", " ").title(),
            available=available,
            quantity=quantity,
        )

    return _make


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Three attempts with no waiting."""
    return RetryPolicy(max_attempts=3, initial_delay=0.0, max_delay=0.0, backoff_multiplier=1.0)


@pytest.fixture
def radar_config(tmp_test_dir: Path) -> RadarConfig:
    """Config with email enabled and one recipient; state under tmp."""
    return RadarConfig(
        state_file=tmp_test_dir / "last-known-stock.json",
        email=EmailSettings(recipients=("alerts@example.com",)),
    )


@pytest.fixture
def fake_source_cls():
    return FakeSource


@pytest.fixture
def fake_notifier_cls():
    return FakeNotifier


@pytest.fixture
def create_yaml_file(tmp_test_dir: Path):
    """
    Factory fixture for creating temporary YAML files.

    Usage:
        yaml_path = create_yaml_file("config.yml", {"key": "value"})
    """

    def _create(filename: str, data: Any) -> Path:
        path = tmp_test_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f)
        return path

    return _create


@pytest.fixture
def amul_payload():
    """
    Factory fixture for Amul API response bodies.

    Usage:
        payload = amul_payload([("whey", 1, 12)], total=1)
    """

    def _payload(entries, *, total: int | None = None, start: int = 0, limit: int = 32):
        data = [
            {
                "_id": f"id-{alias}",
                "alias": alias,
                "name": alias.replace("-", " ").title(),
                "available": available,
                "inventory_quantity": quantity,
            }
            for alias, available, quantity in entries
        ]
        return {
            "messages": [],
            "fileBaseUrl": "https://shop.amul.com/s/62fa94df8c13af2e242eba16/",
            "data": data,
            "paging": {
                "limit": limit,
                "start": start,
                "count": len(data),
                "total": len(data) if total is None else total,
            },
        }

    return _payload

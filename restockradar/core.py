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

"""Core orchestration for Restock Radar.

This module runs one stock check from start to finish: load the previous
snapshot, fetch the current stock, diff the two, alert on transitions, and
persist the new snapshot for the next run.

Run Phases:

    LOADING_STATE -> FETCHING -> DIFFING -> NOTIFYING -> PERSISTING -> DONE

- Only a failed fetch ends the run early (FAILED). Nothing is persisted,
  so the previous snapshot stays the baseline for the next run.
- The in-stock alert and the out-of-stock alert are sent independently;
  a failure in one does not stop the other.
- The new snapshot is saved even when notifications fail. A failed save
  is logged; the next run may then repeat notifications.
- Cancelled propagates from every phase.

Design Principles:

- Collaborators (source, notifier, store) are passed in, so tests use
  doubles and the CLI wires the production ones
- Functions return structured data (RunResult) for easy testing
- Error handling uses exceptions; the CLI layer formats for user display

Example:
    Programmatic usage:
        ```python
        from pathlib import Path
        from restockradar.config import load_config
        from restockradar.core import check_stock
        from restockradar.sources import AmulApiSource

        config = load_config(Path("config.yml"))
        with AmulApiSource() as source:
            result = check_stock(config, source=source)

        print(f"Phase: {result.phase.name}")
        print(f"Back in stock: {[p.name for p in result.newly_in_stock]}")
        ```

"""

from __future__ import annotations

from collections.abc import Sequence
import threading
import time

from restockradar.changes import ChangeSet, comparison_summary, diff_snapshots
from restockradar.config import RadarConfig
from restockradar.exceptions import (
    Cancelled,
    DeliveryFailed,
    RetriesExhausted,
    SourceUnavailable,
)
from restockradar.logging import Logger, get_global_logger
from restockradar.models import ProductState, snapshot_from_products
from restockradar.notifiers import Notification, Notifier
from restockradar.results import RunPhase, RunResult
from restockradar.sources import StockSource
from restockradar.state import StateStore

__all__ = ["check_stock", "format_status_table"]

TOTAL_STEPS = 5


def check_stock(
    config: RadarConfig,
    *,
    source: StockSource,
    notifier: Notifier | None = None,
    store: StateStore | None = None,
    logger: Logger | None = None,
    cancel_event: threading.Event | None = None,
) -> RunResult:
    """Run one stock check.

    Args:
        config: Effective configuration.
        source: Where current stock comes from.
        notifier: Channel for alerts. None disables notifications.
        store: Snapshot persistence. Defaults to a StateStore on
            ``config.state_file``.
        logger: Logger to use. Defaults to the global logger.
        cancel_event: Event that aborts retry waits when set.

    Returns:
        RunResult with phase DONE, or FAILED if the fetch failed.

    Raises:
        Cancelled: If the run was interrupted in any phase.

    Example:
        Cold start (no state file yet):
            ```python
            result = check_stock(config, source=source, notifier=notifier)
            assert result.notifications_sent == 0
            assert result.state_saved
            ```

    """
    if logger is None:
        logger = get_global_logger()
    if store is None:
        store = StateStore(config.state_file, logger=logger, cancel_event=cancel_event)

    started = time.monotonic()
    watchlist = list(config.watched_products)

    # 1. Load previous snapshot
    _enter(RunPhase.LOADING_STATE, logger)
    logger.step(1, TOTAL_STEPS, f"Loading previous stock state from {store.state_file}...")
    previous = store.load()
    logger.verbose("STATE", f"Loaded previous state for {len(previous)} products")

    # 2. Fetch current stock
    _enter(RunPhase.FETCHING, logger)
    logger.step(2, TOTAL_STEPS, f"Fetching current stock from {source.name}...")
    if watchlist:
        logger.verbose(
            "CHECK",
            f"Selective monitoring enabled - watching {len(watchlist)} specific products",
        )
        logger.debug("CHECK", f"Watched product keys: {watchlist}")
    else:
        logger.verbose("CHECK", "Monitoring all products (no watchlist configured)")

    try:
        products = source.fetch(watchlist)
    except Cancelled:
        raise
    except (SourceUnavailable, RetriesExhausted) as err:
        logger.error("CHECK", f"Failed to fetch stock data: {err}")
        logger.error("CHECK", "Stock data is required; nothing was persisted")
        _log_fetch_troubleshooting(logger)
        return RunResult(
            phase=RunPhase.FAILED,
            error=str(err),
            state_saved=False,
        )

    if not products:
        logger.warning(
            "CHECK",
            "Source returned an empty product list; this may indicate an API issue",
        )
    else:
        logger.verbose("CHECK", f"Fetched {len(products)} products")

    # 3. Diff snapshots
    _enter(RunPhase.DIFFING, logger)
    logger.step(3, TOTAL_STEPS, "Comparing with previous state...")
    current = snapshot_from_products(products)
    changes = diff_snapshots(previous, current, logger=logger)
    logger.verbose("CHECK", comparison_summary(previous, current, changes))

    # 4. Notify
    _enter(RunPhase.NOTIFYING, logger)
    logger.step(4, TOTAL_STEPS, "Sending notifications...")
    sent, failures = _send_notifications(config, notifier, changes, logger)

    # 5. Persist
    _enter(RunPhase.PERSISTING, logger)
    logger.step(5, TOTAL_STEPS, f"Saving current state to {store.state_file}...")
    saved = store.save(current)
    if not saved:
        logger.error(
            "STATE", "Failed to save state - notifications may be duplicated on next run"
        )
        _log_save_troubleshooting(logger, store)

    result = RunResult(
        phase=RunPhase.DONE,
        products=tuple(products),
        newly_in_stock=changes.newly_in_stock,
        newly_out_of_stock=changes.newly_out_of_stock,
        notifications_sent=sent,
        notification_failures=tuple(failures),
        state_saved=saved,
    )
    _log_run_summary(result, logger)
    logger.verbose("CHECK", f"Stock check completed in {time.monotonic() - started:.2f}s")
    return result


def _enter(phase: RunPhase, logger: Logger) -> None:
    logger.debug("CHECK", f"Phase: {phase.name}")


def _send_notifications(
    config: RadarConfig,
    notifier: Notifier | None,
    changes: ChangeSet,
    logger: Logger,
) -> tuple[int, list[str]]:
    """Send the in-stock and out-of-stock alerts. Returns (sent, failures)."""
    if not changes.has_changes:
        logger.verbose("NOTIFY", "No stock changes detected - no notifications sent")
        return 0, []

    email = config.email
    if not email.enabled:
        logger.verbose("NOTIFY", "Email notifications are disabled. Skipping notifications.")
        return 0, []
    problems = email.problems()
    if problems:
        logger.warning(
            "NOTIFY",
            "Email configuration is invalid. Skipping notifications: " + "; ".join(problems),
        )
        return 0, []
    if notifier is None or not notifier.is_configured():
        logger.warning(
            "NOTIFY",
            "No configured notifier. Set the SMTP_USERNAME and SMTP_PASSWORD "
            "environment variables to receive alerts.",
        )
        return 0, []
    recipients = list(email.recipients)
    if not recipients:
        logger.warning("NOTIFY", "No recipients configured - skipping notifications")
        return 0, []

    alerts: list[tuple[str, Notification]] = []
    if changes.newly_in_stock:
        alerts.append(
            ("in-stock", Notification.stock_alert(recipients, changes.newly_in_stock))
        )
    if changes.newly_out_of_stock:
        alerts.append(
            (
                "out-of-stock",
                Notification.out_of_stock_alert(recipients, changes.newly_out_of_stock),
            )
        )

    sent = 0
    failures: list[str] = []
    for kind, alert in alerts:
        logger.verbose(
            "NOTIFY",
            f"Sending {kind} notification for {len(alert.products)} products "
            f"to {len(recipients)} recipient(s) via {notifier.name}",
        )
        try:
            notifier.send(alert.recipients, alert.subject, alert.body, alert.priority)
        except Cancelled:
            raise
        except (DeliveryFailed, RetriesExhausted) as err:
            names = _names(alert.products)
            logger.error("NOTIFY", f"Failed to send {kind} notification: {err}")
            logger.warning("NOTIFY", f"Failed to send {kind} alerts for: {names}")
            failures.append(f"{kind} alert for {names}: {err}")
            continue
        except Exception as err:
            names = _names(alert.products)
            logger.error(
                "NOTIFY", f"Unexpected error during notification handling ({kind}): {err}"
            )
            failures.append(f"{kind} alert for {names}: {err}")
            continue
        sent += 1
        logger.verbose("NOTIFY", f"{kind.capitalize()} notification sent to all recipients")

    if failures:
        logger.warning(
            "NOTIFY",
            "Consider checking your email configuration and network connectivity",
        )
    return sent, failures


def _names(products: Sequence[ProductState]) -> str:
    return ", ".join(p.name for p in products)


def _log_fetch_troubleshooting(logger: Logger) -> None:
    logger.warning("CHECK", "Troubleshooting tips:")
    logger.warning("CHECK", "1. Check your internet connection")
    logger.warning("CHECK", "2. Verify the Amul API is accessible")
    logger.warning("CHECK", "3. Check if there are any firewall restrictions")


def _log_save_troubleshooting(logger: Logger, store: StateStore) -> None:
    logger.warning("STATE", "Troubleshooting tips for state save failure:")
    logger.warning("STATE", "1. Check file system permissions for the state directory")
    logger.warning("STATE", "2. Ensure sufficient disk space is available")
    logger.warning(
        "STATE", f"3. Verify no other process is locking the file: {store.state_file}"
    )


def _log_run_summary(result: RunResult, logger: Logger) -> None:
    logger.verbose("SUMMARY", f"Total products monitored: {result.total}")
    logger.verbose("SUMMARY", f"Products newly in stock: {len(result.newly_in_stock)}")
    logger.verbose(
        "SUMMARY", f"Products newly out of stock: {len(result.newly_out_of_stock)}"
    )
    logger.verbose("SUMMARY", f"Currently in stock: {result.in_stock_count}")
    if result.newly_in_stock:
        logger.verbose("SUMMARY", f"Newly available: {_names(result.newly_in_stock)}")
    if result.newly_out_of_stock:
        logger.verbose("SUMMARY", f"Recently sold out: {_names(result.newly_out_of_stock)}")


def format_status_table(result: RunResult, watchlist: Sequence[str] = ()) -> str:
    """Render the current stock status for display on stdout.

    Args:
        result: Result of a DONE run.
        watchlist: Watched keys, shown in the header when non-empty.

    Returns:
        Multi-line text ending with a summary block.

    """
    lines: list[str] = []
    if watchlist:
        lines.append("Selective Monitoring Mode - Watching specific products")
        lines.append(f"Watched products: {', '.join(watchlist)}")
    else:
        lines.append("Full Monitoring Mode - Watching all products")
    lines.append("")
    lines += [product.to_summary() for product in result.products]
    lines.append("")
    lines.append("=== Current Stock Summary ===")
    lines.append(f"Total products monitored: {result.total}")
    lines.append(f"Currently in stock: {result.in_stock_count}")
    lines.append(f"Currently out of stock: {result.out_of_stock_count}")
    return "\n".join(lines)

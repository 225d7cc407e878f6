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

"""Command-line interface for Restock Radar.

This module provides the main CLI entry point for the restockradar tool,
meant to be run on a schedule (cron, systemd timer, CI workflow).

Commands:

    check: Fetch current stock, alert on changes, save state
    validate: Validate config file syntax and settings
    test-email: Send a test email with the configured SMTP settings

Example:
    Run a stock check:
        ```bash
        $ restockradar check --config config.yml
        ```

    Validate the config file:
        ```bash
        $ restockradar validate --config config.yml
        ```

    Send a test email:
        ```bash
        $ SMTP_USERNAME=me@gmail.com SMTP_PASSWORD=app-password \\
            restockradar test-email --to me@gmail.com
        ```

    Enable debug output:
        ```bash
        $ restockradar check --debug
        ```

Exit Codes:

- 0: Run completed (even if some notifications failed)
- 1: Stock fetch failed, configuration error, or validation failure
- 130: Run was cancelled (Ctrl-C or SIGTERM)

Note:
    The status table goes to stdout; progress and log lines go to stderr.
    SMTP credentials are read from SMTP_USERNAME and SMTP_PASSWORD (a .env
    file in the working directory is honored), never from the config file.
    Verbose mode shows full tracebacks on errors for debugging.

"""

from __future__ import annotations

import argparse
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
import signal
import sys
import threading

from restockradar import __version__
from restockradar.auth import SmtpCredentials, load_smtp_credentials
from restockradar.config import DEFAULT_CONFIG_FILE, RadarConfig, load_config
from restockradar.core import check_stock, format_status_table
from restockradar.exceptions import Cancelled, ConfigError, DeliveryFailed, RadarError
from restockradar.logging import Logger, get_logger, set_global_logger
from restockradar.notifiers import EmailNotifier
from restockradar.sources import AmulApiSource
from restockradar.validation import validate_config

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


@contextmanager
def _cancel_on_sigterm(cancel_event: threading.Event) -> Iterator[None]:
    """Turn SIGTERM into Cancelled for the duration of a run."""

    def _handler(signum, frame):
        cancel_event.set()
        raise Cancelled("Received SIGTERM")

    try:
        previous = signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # Not on the main thread; rely on the cancel event alone.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def _print_traceback(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False) or getattr(args, "debug", False):
        import traceback

        traceback.print_exc()


def build_notifier(
    config: RadarConfig,
    credentials: SmtpCredentials | None,
    logger: Logger,
    cancel_event: threading.Event | None = None,
) -> EmailNotifier | None:
    """Create the email notifier, or None when email cannot be used.

    Args:
        config: Effective configuration.
        credentials: SMTP credentials from the environment.
        logger: Logger for the reason email is skipped.
        cancel_event: Event that aborts delivery retries when set.

    Returns:
        A ready EmailNotifier, or None.

    """
    if not config.email.enabled:
        logger.verbose("EMAIL", "Email notifications are disabled in configuration")
        return None
    if credentials is None:
        logger.warning(
            "EMAIL",
            "SMTP_USERNAME and SMTP_PASSWORD are not set; notifications will be skipped",
        )
        return None
    try:
        return EmailNotifier.from_settings(
            config.email, credentials, logger=logger, cancel_event=cancel_event
        )
    except DeliveryFailed as err:
        logger.warning("EMAIL", f"{err}. Notifications will be skipped.")
        return None


def cmd_check(args: argparse.Namespace) -> int:
    """Handler for 'restockradar check' command.

    Loads the config, fetches the current stock, sends alerts for products
    that came back in stock or sold out, and saves the new state.

    Args:
        args: Parsed command-line arguments containing the config path,
            state file override, and flags.

    Returns:
        Exit code (0 for a completed run, 1 for a failed fetch or config
        error, 130 when cancelled).

    """
    logger = get_logger(verbose=args.verbose, debug=args.debug)
    set_global_logger(logger)

    try:
        config = load_config(Path(args.config), state_file=args.state_file)
    except ConfigError as err:
        print(f"Error: {err}", file=sys.stderr)
        _print_traceback(args)
        return EXIT_FAILED

    logger.verbose("CHECK", "=== Amul Stock Radar ===")
    cancel_event = threading.Event()
    notifier = build_notifier(config, load_smtp_credentials(), logger, cancel_event)

    try:
        with _cancel_on_sigterm(cancel_event):
            with AmulApiSource(
                timeout=config.source.timeout,
                category=config.source.category,
                substore=config.source.substore,
                page_size=config.source.page_size,
                logger=logger,
                cancel_event=cancel_event,
            ) as source:
                result = check_stock(
                    config,
                    source=source,
                    notifier=notifier,
                    logger=logger,
                    cancel_event=cancel_event,
                )
    except (Cancelled, KeyboardInterrupt):
        print("Cancelled: stock check interrupted", file=sys.stderr)
        return EXIT_CANCELLED
    except RadarError as err:
        print(f"Error: {err}", file=sys.stderr)
        _print_traceback(args)
        return EXIT_FAILED

    if not result.succeeded:
        print("=" * 70)
        print("STOCK CHECK FAILED")
        print("=" * 70)
        print(f"Error:           {result.error}")
        print("=" * 70)
        return EXIT_FAILED

    print(format_status_table(result, config.watched_products))
    print()
    print("=" * 70)
    print("CHECK RESULTS")
    print("=" * 70)
    print(f"Newly in stock:      {len(result.newly_in_stock)}")
    print(f"Newly out of stock:  {len(result.newly_out_of_stock)}")
    print(f"Notifications sent:  {result.notifications_sent}")
    if result.notification_failures:
        print(f"Failed alerts:       {len(result.notification_failures)}")
        for failure in result.notification_failures:
            print(f"  [X] {failure}")
    print(f"State saved:         {'yes' if result.state_saved else 'NO'}")
    print(f"State file:          {config.state_file}")
    print("=" * 70)
    return EXIT_OK


def cmd_validate(args: argparse.Namespace) -> int:
    """Handler for 'restockradar validate' command.

    Validates config syntax and settings without network calls.

    Args:
        args: Parsed command-line arguments containing config path and
            verbose flag.

    Returns:
        Exit code (0 for valid config, 1 for invalid).

    """
    logger = get_logger(verbose=args.verbose, debug=False)
    set_global_logger(logger)

    config_path = Path(args.config).resolve()

    print(f"Validating config: {config_path}")
    print()

    result = validate_config(config_path)

    print("=" * 70)
    print("VALIDATION RESULTS")
    print("=" * 70)
    print(f"Config:          {result.config_path}")
    print(f"Status:          {result.status.upper()}")
    print(f"Watched:         {result.watched_count or 'all products'}")
    print()

    if result.warnings:
        print(f"Warnings ({len(result.warnings)}):")
        for warning in result.warnings:
            print(f"  [WARNING] {warning}")
        print()

    if result.errors:
        print(f"Errors ({len(result.errors)}):")
        for error in result.errors:
            print(f"  [X] {error}")
        print()

    print("=" * 70)

    if result.status == "valid":
        print()
        print("[SUCCESS] Config is valid!")
        return EXIT_OK
    print()
    print(f"[FAILED] Config validation failed with {len(result.errors)} error(s).")
    return EXIT_FAILED


def cmd_test_email(args: argparse.Namespace) -> int:
    """Handler for 'restockradar test-email' command.

    Sends a LOW priority test message using the configured SMTP settings
    and the credentials from the environment.

    Args:
        args: Parsed command-line arguments containing config path,
            optional recipient, and flags.

    Returns:
        Exit code (0 if the message was delivered, 1 otherwise).

    """
    logger = get_logger(verbose=args.verbose, debug=args.debug)
    set_global_logger(logger)

    try:
        config = load_config(Path(args.config))
    except ConfigError as err:
        print(f"Error: {err}", file=sys.stderr)
        _print_traceback(args)
        return EXIT_FAILED

    recipient = args.to or (config.email.recipients[0] if config.email.recipients else None)
    if not recipient:
        print(
            "Error: no recipient; pass --to or set email.recipients in the config",
            file=sys.stderr,
        )
        return EXIT_FAILED

    credentials = load_smtp_credentials()
    if credentials is None:
        print(
            "Error: set SMTP_USERNAME and SMTP_PASSWORD to send email",
            file=sys.stderr,
        )
        return EXIT_FAILED

    try:
        notifier = EmailNotifier.from_settings(config.email, credentials, logger=logger)
    except DeliveryFailed as err:
        print(f"Error: {err}", file=sys.stderr)
        return EXIT_FAILED

    print(f"Sending test email to {recipient} via {notifier.name}...")
    try:
        ok = notifier.test_connection(recipient)
    except (Cancelled, KeyboardInterrupt):
        print("Cancelled: test email interrupted", file=sys.stderr)
        return EXIT_CANCELLED

    if ok:
        print("[SUCCESS] Test email sent!")
        return EXIT_OK
    print("[FAILED] Test email could not be sent. Run with --verbose for details.")
    return EXIT_FAILED


def _add_common_flags(parser: argparse.ArgumentParser, *, debug: bool = True) -> None:
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_FILE,
        help=f"Path to the config YAML file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and high-level status updates",
    )
    if debug:
        parser.add_argument(
            "-d",
            "--debug",
            action="store_true",
            help="Show detailed debugging output (implies --verbose)",
        )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="restockradar",
        description="Restock Radar - Amul shop stock alerts by email",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"restockradar {__version__}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    # 'check' command
    parser_check = subparsers.add_parser(
        "check",
        help="Check stock, send alerts for changes, save state",
        description="Fetch current stock, compare it with the last run, email alerts for products that changed, and save the new state.",
    )
    _add_common_flags(parser_check)
    parser_check.add_argument(
        "--state-file",
        type=Path,
        default=None,
        help="State file override (default: state_file from config, relative to the config file)",
    )
    parser_check.set_defaults(func=cmd_check)

    # 'validate' command
    parser_validate = subparsers.add_parser(
        "validate",
        help="Validate config syntax and settings (no network)",
        description="Check the config YAML for syntax errors and invalid settings without making network calls.",
    )
    _add_common_flags(parser_validate, debug=False)
    parser_validate.set_defaults(func=cmd_validate)

    # 'test-email' command
    parser_test = subparsers.add_parser(
        "test-email",
        help="Send a test email with the configured SMTP settings",
        description="Send a test message to check SMTP settings and credentials.",
    )
    _add_common_flags(parser_test)
    parser_test.add_argument(
        "--to",
        default=None,
        help="Recipient address (default: first configured recipient)",
    )
    parser_test.set_defaults(func=cmd_test_email)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the restockradar CLI.

    This function is registered as the 'restockradar' console script in
    pyproject.toml.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

"""
Restock Radar

A small command-line tool that watches products on the Amul online shop
(shop.amul.com) and emails you when something comes back in stock or
sells out. It is meant to run on a schedule; each run compares the current
stock with the previous run and only alerts on transitions.

Restock Radar provides:
  - Stock fetching from the Amul shop product API with retries
  - Change detection against the last-known stock snapshot
  - Email alerts over SMTP (STARTTLS or SSL)
  - Atomic state file writes so a crash never corrupts the baseline
  - YAML configuration with built-in defaults

Quick Start
-----------
Validate the config file:

    $ restockradar validate --config config.yml

Run a stock check:

    $ restockradar check --config config.yml

For full CLI documentation:

    $ restockradar --help

Package Structure
-----------------
cli : module
    Command-line interface with argparse.
core : module
    Run orchestration (check_stock).
retry : module
    Retry with exponential backoff.
changes : module
    Stock transition detection.
config : package
    YAML configuration loading and merging.
state : package
    Snapshot persistence.
sources : package
    Stock sources (Amul shop API).
notifiers : package
    Notification delivery (email).

Public API
----------
The primary interface is the CLI, but key functions are exported for
programmatic use:

    from restockradar.core import check_stock
    from restockradar.config import load_config
    from restockradar.validation import validate_config
    from restockradar.sources import AmulApiSource
    from restockradar.notifiers import EmailNotifier

For more details, see the individual module docstrings.
"""

__version__ = "0.1.0"
__description__ = "Restock Radar - Amul shop stock alerts by email"

# Re-export commonly used functions for convenience
from restockradar.config import load_config
from restockradar.core import check_stock
from restockradar.models import ProductState
from restockradar.results import RunPhase, RunResult
from restockradar.validation import validate_config

__all__ = [
    "__version__",
    "__description__",
    "ProductState",
    "RunPhase",
    "RunResult",
    "check_stock",
    "load_config",
    "validate_config",
]

"""
Configuration loading for Restock Radar.

This module reads the YAML configuration file, merges it over built-in
defaults, and turns the result into immutable settings objects consumed by
the stock check.

Configuration Layers
--------------------
1. **Built-in defaults** (DEFAULTS below)
   - Gmail SMTP on port 587 with STARTTLS
   - State file ``last-known-stock.json`` next to the config file
   - Empty watchlist (monitor every product of the category)

2. **Config file** (config.yml)
   - Overrides any default
   - Optional for ``check``: a missing file means "defaults only"

Merge Behavior
--------------
The loader performs deep merging with "last wins" semantics:
  - **Dicts**: Recursively merged (keys from overlay override base)
  - **Lists**: Completely replaced (NOT appended/extended)
  - **Scalars**: Overwritten (strings, numbers, booleans)

Path Resolution
---------------
A relative ``state_file`` is resolved against the CONFIG FILE location, so
a scheduled job finds the same state file whatever its working directory.

Credentials
-----------
SMTP username and password never live in this file. They are read from
the environment by restockradar.auth; ``email.username`` or
``email.password`` keys in the YAML are rejected with ConfigError.

Functions
---------
load_config : function
    Load and merge configuration (main public API).
config_from_mapping : function
    Build settings objects from an already merged mapping.

Error Handling
--------------
- ConfigError: YAML parse errors, non-mapping top level, wrong types,
  credential keys in the file, missing file when ``required=True``
- All errors are chained with "from err" for better debugging

Examples
--------
Basic usage:

    >>> from pathlib import Path
    >>> from restockradar.config import load_config
    >>> config = load_config(Path("config.yml"))
    >>> config.email.host
    'smtp.gmail.com'
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from pathlib import Path
import re
from typing import Any

import yaml

from restockradar.exceptions import ConfigError
from restockradar.logging import get_global_logger

DEFAULT_CONFIG_FILE = "config.yml"
DEFAULT_STATE_FILE = "last-known-stock.json"

DEFAULTS: dict[str, Any] = {
    "state_file": DEFAULT_STATE_FILE,
    "watched_products": [],
    "source": {
        "timeout": 15,
        "category": "protein",
        "substore": "66505ff0998183e1b1935c75",
        "page_size": 32,
    },
    "email": {
        "enabled": True,
        "host": "smtp.gmail.com",
        "port": 587,
        "use_tls": True,
        "use_ssl": False,
        "sender_name": "Amul Stock Radar",
        "recipients": [],
        "timeout": 10,
    },
}

CREDENTIAL_KEYS = ("username", "password")

EMAIL_ADDRESS_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")

# -------------------------------
# Data types
# -------------------------------


@dataclass(frozen=True)
class SourceSettings:
    """HTTP settings for the stock source."""

    timeout: float = 15
    category: str = "protein"
    substore: str = "66505ff0998183e1b1935c75"
    page_size: int = 32


@dataclass(frozen=True)
class EmailSettings:
    """SMTP delivery settings (no credentials)."""

    enabled: bool = True
    host: str = "smtp.gmail.com"
    port: int = 587
    use_tls: bool = True
    use_ssl: bool = False
    sender_name: str = "Amul Stock Radar"
    recipients: tuple[str, ...] = ()
    timeout: float = 10

    def problems(self) -> list[str]:
        """Return human-readable reasons these settings cannot be used."""
        issues: list[str] = []
        if not self.host.strip():
            issues.append("email.host is empty")
        if not 1 <= self.port <= 65535:
            issues.append(f"email.port must be between 1 and 65535, got {self.port}")
        if self.use_tls and self.use_ssl:
            issues.append("email.use_tls and email.use_ssl cannot both be enabled")
        if self.timeout <= 0:
            issues.append(f"email.timeout must be positive, got {self.timeout}")
        for recipient in self.recipients:
            if not EMAIL_ADDRESS_RE.fullmatch(recipient):
                issues.append(f"Invalid recipient address: {recipient!r}")
        return issues

    def is_valid(self) -> bool:
        return not self.problems()


@dataclass(frozen=True)
class RadarConfig:
    """
    Effective configuration for one stock check.

    ``config_path`` is None when the run uses built-in defaults only.
    """

    state_file: Path
    watched_products: tuple[str, ...] = ()
    source: SourceSettings = field(default_factory=SourceSettings)
    email: EmailSettings = field(default_factory=EmailSettings)
    config_path: Path | None = None


# -------------------------------
# YAML helpers
# -------------------------------


def _load_yaml_file(p: Path) -> Any:
    """
    Load a YAML file and return the parsed Python object.

    Raises:
      ConfigError - when the file cannot be read or is not valid YAML
    """
    try:
        with p.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f"Error parsing YAML: {p}: {err}") from err
    except OSError as err:
        raise ConfigError(f"Cannot read config file {p}: {err}") from err


# -------------------------------
# Merge logic
# -------------------------------


def _deep_merge_dicts(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge two dicts with "overlay wins".

    Rules:
      - dict + dict -> deep merge
      - list + list -> overlay REPLACES base
      - everything else -> overlay overwrites base

    Inputs are left untouched.
    """
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


# -------------------------------
# Typed field access
# -------------------------------


def _section(cfg: dict[str, Any], name: str) -> dict[str, Any]:
    value = cfg.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def _bool(section: dict[str, Any], key: str, where: str) -> bool:
    value = section.get(key)
    if not isinstance(value, bool):
        raise ConfigError(f"'{where}.{key}' must be true or false, got {value!r}")
    return value


def _int(section: dict[str, Any], key: str, where: str) -> int:
    value = section.get(key)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{where}.{key}' must be an integer, got {value!r}")
    return value


def _number(section: dict[str, Any], key: str, where: str) -> float:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{where}.{key}' must be a number, got {value!r}")
    if value <= 0:
        raise ConfigError(f"'{where}.{key}' must be positive, got {value!r}")
    return float(value)


def _str(section: dict[str, Any], key: str, where: str) -> str:
    value = section.get(key)
    if not isinstance(value, str):
        raise ConfigError(f"'{where}.{key}' must be a string, got {value!r}")
    return value


def _str_list(value: Any, where: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ConfigError(f"'{where}' must be a list of strings, got {type(value).__name__}")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f"'{where}' entries must be strings, got {item!r}")
        if item.strip():
            items.append(item.strip())
    return tuple(items)


def reject_credential_keys(cfg: dict[str, Any]) -> None:
    """Raise ConfigError if SMTP credentials were put in the config file."""
    email = cfg.get("email")
    if not isinstance(email, dict):
        return
    found = [key for key in CREDENTIAL_KEYS if key in email]
    if found:
        keys = ", ".join(f"email.{key}" for key in found)
        raise ConfigError(
            f"{keys} must not be set in the config file; "
            f"use the SMTP_USERNAME and SMTP_PASSWORD environment variables"
        )


# -------------------------------
# Public API
# -------------------------------


def config_from_mapping(cfg: dict[str, Any], *, base_dir: Path) -> RadarConfig:
    """
    Build a RadarConfig from a merged configuration mapping.

    Relative ``state_file`` paths are resolved against ``base_dir``.

    Raises
      ConfigError for wrongly typed fields or credential keys.
    """
    reject_credential_keys(cfg)

    raw_state = cfg.get("state_file") or DEFAULT_STATE_FILE
    if not isinstance(raw_state, str):
        raise ConfigError(f"'state_file' must be a string, got {raw_state!r}")
    state_file = Path(raw_state).expanduser()
    if not state_file.is_absolute():
        state_file = (base_dir / state_file).resolve()

    src = _section(cfg, "source")
    source = SourceSettings(
        timeout=_number(src, "timeout", "source"),
        category=_str(src, "category", "source"),
        substore=_str(src, "substore", "source"),
        page_size=_int(src, "page_size", "source"),
    )
    if source.page_size < 1:
        raise ConfigError(f"'source.page_size' must be >= 1, got {source.page_size}")

    em = _section(cfg, "email")
    email = EmailSettings(
        enabled=_bool(em, "enabled", "email"),
        host=_str(em, "host", "email"),
        port=_int(em, "port", "email"),
        use_tls=_bool(em, "use_tls", "email"),
        use_ssl=_bool(em, "use_ssl", "email"),
        sender_name=_str(em, "sender_name", "email"),
        recipients=_str_list(em.get("recipients"), "email.recipients"),
        timeout=_number(em, "timeout", "email"),
    )

    return RadarConfig(
        state_file=state_file,
        watched_products=_str_list(cfg.get("watched_products"), "watched_products"),
        source=source,
        email=email,
    )


def load_raw_config(config_path: Path) -> dict[str, Any]:
    """
    Read the config file and deep-merge it over DEFAULTS.

    An empty file yields the defaults.

    Raises
      ConfigError on YAML errors or a non-mapping top level.
    """
    data = _load_yaml_file(config_path)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping (dict): {config_path}")
    return _deep_merge_dicts(copy.deepcopy(DEFAULTS), data)


def load_config(
    config_path: Path | None = None,
    *,
    state_file: Path | None = None,
    required: bool = False,
) -> RadarConfig:
    """
    Load the effective configuration.

    Steps
      1) Read the YAML file, if it exists.
      2) Merge it over DEFAULTS (dicts deep-merge, lists replace).
      3) Validate types and reject credential keys.
      4) Resolve ``state_file`` relative to the config file directory.
      5) Apply the ``state_file`` override, if given.

    Returns
      A RadarConfig ready for check_stock().

    Raises
      ConfigError on parse or type errors, or when ``required`` is set
      and the file does not exist.
    """
    logger = get_global_logger()

    if config_path is None:
        config_path = Path(DEFAULT_CONFIG_FILE)
    config_path = config_path.expanduser().resolve()

    if config_path.exists():
        logger.verbose("CONFIG", f"Loading configuration: {config_path}")
        merged = load_raw_config(config_path)
        loaded_from: Path | None = config_path
    elif required:
        raise ConfigError(f"Config file not found: {config_path}")
    else:
        logger.verbose(
            "CONFIG",
            f"Config file not found: {config_path}. Using built-in defaults.",
        )
        merged = copy.deepcopy(DEFAULTS)
        loaded_from = None

    config = replace(
        config_from_mapping(merged, base_dir=config_path.parent),
        config_path=loaded_from,
    )
    if state_file is not None:
        config = replace(config, state_file=state_file.expanduser().resolve())

    logger.debug("CONFIG", f"State file: {config.state_file}")
    logger.debug(
        "CONFIG",
        f"Watching {len(config.watched_products) or 'all'} product(s); "
        f"email {'enabled' if config.email.enabled else 'disabled'}",
    )
    return config

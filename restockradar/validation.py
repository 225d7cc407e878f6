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

"""Config file validation module.

This module checks a Restock Radar config file without making network
calls or sending email. This is useful before scheduling the checker and
in CI pipelines that ship a config alongside the job definition.

Validation Checks:

- YAML syntax is valid and the top level is a mapping
- No SMTP credentials stored in the file
- Field types match the built-in defaults
- SMTP port is in range and TLS/SSL are not both enabled
- Recipient addresses look like email addresses
- Unknown top-level keys (warning)
- Email enabled without recipients (warning)

Example:
    Validate a config and handle results:
        ```python
        from pathlib import Path
        from restockradar.validation import validate_config

        result = validate_config(Path("config.yml"))
        if result.status == "valid":
            print(f"Config is valid, watching {result.watched_count} product(s)")
        else:
            for error in result.errors:
                print(f"Error: {error}")
        ```

"""

from __future__ import annotations

import copy
from pathlib import Path

import yaml

from restockradar.config.loader import (
    DEFAULTS,
    _deep_merge_dicts,
    config_from_mapping,
    reject_credential_keys,
)
from restockradar.exceptions import ConfigError
from restockradar.logging import get_global_logger
from restockradar.results import ValidationResult

__all__ = ["validate_config"]

def _result(
    errors: list[str], warnings: list[str], watched_count: int, config_path: Path
) -> ValidationResult:
    return ValidationResult(
        status="invalid" if errors else "valid",
        errors=errors,
        warnings=warnings,
        watched_count=watched_count,
        config_path=str(config_path),
    )


def validate_config(config_path: Path) -> ValidationResult:
    """Validate a config file without touching the network.

    This function checks:

    1. YAML file can be parsed
    2. Top level is a mapping
    3. No credential keys under ``email``
    4. Field types are correct
    5. Email settings are usable
    6. Recipient addresses are well formed

    Does NOT:

    - Contact the stock API
    - Connect to the SMTP server
    - Check that SMTP credentials are set in the environment

    Args:
        config_path: Path to the config YAML file to validate.

    Returns:
        ValidationResult with status "valid" or "invalid", the error and
        warning messages, the number of watched products, and the path.

    """
    logger = get_global_logger()
    errors: list[str] = []
    warnings: list[str] = []

    logger.verbose("VALIDATE", f"Validating config: {config_path}")

    if not config_path.exists():
        errors.append(f"Config file not found: {config_path}")
        return _result(errors, warnings, 0, config_path)

    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as err:
        errors.append(f"Invalid YAML syntax: {err}")
        return _result(errors, warnings, 0, config_path)
    except OSError as err:
        errors.append(f"Failed to read config file: {err}")
        return _result(errors, warnings, 0, config_path)

    if raw is None:
        warnings.append("Config file is empty; built-in defaults will be used")
        raw = {}
    if not isinstance(raw, dict):
        errors.append("Config must be a YAML dictionary/mapping")
        return _result(errors, warnings, 0, config_path)

    logger.verbose("VALIDATE", "[OK] YAML syntax is valid")

    unknown = sorted(set(raw) - set(DEFAULTS))
    for key in unknown:
        warnings.append(f"Unknown top-level key '{key}' is ignored")

    try:
        reject_credential_keys(raw)
    except ConfigError as err:
        errors.append(str(err))

    merged = _deep_merge_dicts(copy.deepcopy(DEFAULTS), raw)
    # Credential keys are reported above; drop them so type checks still run.
    if isinstance(merged.get("email"), dict):
        for key in ("username", "password"):
            merged["email"].pop(key, None)

    try:
        config = config_from_mapping(merged, base_dir=config_path.parent)
    except ConfigError as err:
        errors.append(str(err))
        return _result(errors, warnings, 0, config_path)

    logger.verbose("VALIDATE", "[OK] Field types are valid")

    watched = config.watched_products
    duplicates = sorted({key for key in watched if watched.count(key) > 1})
    if duplicates:
        warnings.append(f"Duplicate entries in watched_products: {', '.join(duplicates)}")

    email = config.email
    errors.extend(email.problems())
    if email.enabled and not email.recipients:
        warnings.append("Email is enabled but no recipients are configured")
    if email.enabled and email.use_ssl and email.port == 587:
        warnings.append("email.use_ssl with port 587 is unusual; SSL usually uses port 465")

    if not errors:
        logger.verbose(
            "VALIDATE",
            f"[OK] Email settings: {email.host}:{email.port}, "
            f"{len(email.recipients)} recipient(s)",
        )

    return _result(errors, warnings, len(watched), config_path)

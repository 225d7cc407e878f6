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

"""Configuration loading for Restock Radar.

This module loads the YAML configuration file and merges it over built-in
defaults: dicts are merged recursively and lists/scalars are replaced
(last wins). A relative state file path is resolved against the config
file location.

SMTP credentials are not part of the configuration; see restockradar.auth.

Public API:

- load_config: Load and merge the configuration file
- RadarConfig, EmailSettings, SourceSettings: Immutable settings objects
- DEFAULTS: Built-in default values

Example:
    Basic usage:

        from pathlib import Path
        from restockradar.config import load_config

        config = load_config(Path("config.yml"))
        print(config.state_file)
        print(config.email.recipients)

"""

from .loader import (
    DEFAULT_CONFIG_FILE,
    DEFAULTS,
    EmailSettings,
    RadarConfig,
    SourceSettings,
    config_from_mapping,
    load_config,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "DEFAULTS",
    "EmailSettings",
    "RadarConfig",
    "SourceSettings",
    "config_from_mapping",
    "load_config",
]

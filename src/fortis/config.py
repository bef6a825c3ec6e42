# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Fortis Configuration

Settings read from an optional YAML file::

    log_file: /var/log/fortis/fortis.log
    inventory_file: /etc/fortis/inventory.yaml
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from fortis.engine.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "FORTIS_CONFIG"
DEFAULT_INVENTORY_FILE = "/etc/fortis/inventory.yaml"


@dataclass
class Config:
    """
    Fortis settings.

    Attributes:
        log_file: File the CLI appends log records to (empty = stderr only)
        inventory_file: Inventory used when --inventory-file is not given
    """

    log_file: str = "/var/log/fortis/fortis.log"
    inventory_file: str = DEFAULT_INVENTORY_FILE

    @classmethod
    def default(cls) -> "Config":
        return cls()

    def update(self, data: Dict[str, Any]) -> None:
        """Apply known keys from ``data``; unknown keys are ignored."""
        known = {f.name for f in fields(self)}
        for key, value in data.items():
            if key not in known:
                logger.debug("Ignoring unknown config key: %s", key)
                continue
            setattr(self, key, "" if value is None else str(value))


def load_config(path: Union[str, Path]) -> Config:
    """
    Load settings from a YAML file on top of the defaults.

    Raises:
        ConfigError: If the file cannot be read or is not a YAML mapping
    """
    config = Config.default()
    source = str(path)
    if not source:
        raise ConfigError("config path is empty")

    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError("cannot read config", file_path=source, details=str(e))

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError("invalid YAML", file_path=source, details=str(e))

    if data is None:
        return config
    if not isinstance(data, dict):
        raise ConfigError("top level must be a mapping", file_path=source)

    config.update(data)
    return config


def resolve_config(path: Optional[str] = None) -> Config:
    """
    Settings for this process.

    Uses ``path`` if given, else ``$FORTIS_CONFIG`` if set, else defaults.
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return Config.default()
    return load_config(path)

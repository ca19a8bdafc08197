"""Configuration management for sdmsmith.

Settings live in nested dictionaries addressed with dotted keys, e.g.
``outliers.z_threshold``. The packaged ``default_config.yaml`` provides every
default; user files (YAML or JSON) are merged on top of it.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from sdmsmith.utils.errors import ParameterError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default_config.yaml"

_MISSING = object()


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _read_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    suffix = path.suffix.lower()
    with open(path) as f:
        if suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        elif suffix == ".json":
            data = json.load(f)
        else:
            raise ValueError(
                f"Unsupported config file format: {suffix}. Use .yaml, .yml, or .json"
            )
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at top level")
    return data


class ConfigManager:
    """Nested configuration with dotted-key access.

    Example:
        >>> config = ConfigManager({"outliers": {"z_threshold": 4.0}})
        >>> config.get("outliers.z_threshold")
        4.0
        >>> config.get("outliers.top_n", 10)
        10
    """

    def __init__(self, data: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = copy.deepcopy(data) if data else {}

    def get(self, key: str, default: Any = _MISSING) -> Any:
        """Look up a dotted key.

        Raises:
            KeyError: If the key is absent and no default is given.
        """
        node: Any = self._data
        for part in key.split("."):
            if isinstance(node, dict) and part in node:
                node = node[part]
            elif default is _MISSING:
                raise KeyError(f"Config key not found: {key}")
            else:
                return default
        return copy.deepcopy(node)

    def set(self, key: str, value: Any) -> None:
        parts = key.split(".")
        node = self._data
        for part in parts[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise ParameterError(
                    f"Cannot set '{key}': '{part}' holds a value, not a section"
                )
            node = child
        node[parts[-1]] = value

    def update(self, overrides: dict[str, Any]) -> None:
        """Merge a nested dictionary into the configuration."""
        self._data = _deep_merge(self._data, overrides)

    def __contains__(self, key: str) -> bool:
        return self.get(key, None) is not None

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def __repr__(self) -> str:
        return f"ConfigManager(sections={sorted(self._data)})"


def load_config(
    path: Optional[Union[str, Path]] = None, include_defaults: bool = True
) -> ConfigManager:
    """Load configuration from a YAML or JSON file.

    Args:
        path: Config file. None loads the packaged defaults only.
        include_defaults: Merge the file over the packaged defaults.

    Returns:
        ConfigManager with the merged settings.
    """
    data = _read_file(DEFAULT_CONFIG_PATH) if include_defaults else {}
    if path is not None:
        path = Path(path)
        data = _deep_merge(data, _read_file(path))
        logger.info(f"Loaded config from {path}")
    return ConfigManager(data)


_global_config: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """Return the process-wide configuration, loading defaults on first use."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: Optional[ConfigManager]) -> None:
    """Replace the process-wide configuration (None restores defaults)."""
    global _global_config
    _global_config = config


def get_config_value(
    key: str, default: Any = None, config: Optional[ConfigManager] = None
) -> Any:
    """Read a dotted key from ``config``, or from the global config if None."""
    return (config or get_config()).get(key, default)


def resolve(value: Any, key: str, config: Optional[ConfigManager] = None) -> Any:
    """Return ``value`` unless it is None, else the configured ``key``."""
    if value is not None:
        return value
    return get_config_value(key, config=config)


__all__ = [
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "get_config",
    "get_config_value",
    "resolve",
    "load_config",
    "set_config",
]

"""
ConfigManager: layered, dot-notation configuration access for modulebus.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable settings
  (``event_history.max_size``, ``health.probe_timeout_seconds``, ...).
- Layer built-in defaults, YAML files and explicit overrides.

Responsibilities
----------------
- Seed defaults from the static ``Config`` (environment).
- Load and deep-merge every ``*.yaml`` / ``*.yml`` file under a config
  directory (PyYAML ``safe_load``).
- Apply explicit overrides given at construction time or through ``set``.
- Run registered validators on write.
- Resolve settings for collaborators that only receive "a config object"
  (``resolve_setting``), whether that is a ConfigManager or a plain mapping.

Key Design Decisions
--------------------
- Precedence: built-in defaults < YAML files (sorted by path) < overrides.
- Instance-based, so every engine under test can carry its own settings.
- Reads never raise; a missing key returns the caller's default.

Dependencies
------------
- PyYAML: YAML parsing
- ``modulebus.core.config.config.Config``: environment-derived defaults
- ``modulebus.core.logging.logger.get_logger``: structured logging
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, MutableMapping, Optional, Union

import yaml

from modulebus.core.config.config import Config
from modulebus.core.config.errors import ConfigInitializationError, ConfigValidationError
from modulebus.core.logging.logger import get_logger

logger = get_logger(__name__)

_MISSING = object()


def _builtin_defaults() -> Dict[str, Any]:
    return {
        "environment": Config.ENVIRONMENT,
        "event_history": {
            "max_size": Config.EVENT_HISTORY_MAX_SIZE,
        },
        "health": {
            "probe_timeout_seconds": Config.HEALTH_CHECK_TIMEOUT_SECONDS,
        },
    }


class ConfigManager:
    """
    Layered configuration with dot-notation access.

    Examples
    --------
    >>> config = ConfigManager(overrides={"event_history": {"max_size": 50}})
    >>> config.get("event_history.max_size")
    50
    >>> config.get("missing.key", "fallback")
    'fallback'
    """

    def __init__(
        self,
        config_dir: Optional[Union[str, Path]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        *,
        include_defaults: bool = True,
    ) -> None:
        self._data: Dict[str, Any] = _builtin_defaults() if include_defaults else {}
        self._validators: Dict[str, Callable[[Any], Any]] = {}
        self._loaded_files: list[str] = []

        directory = config_dir if config_dir is not None else Config.CONFIG_DIR
        if directory is not None:
            self.load_directory(directory)

        if overrides:
            self._deep_merge_dict(self._data, copy.deepcopy(dict(overrides)))

        logger.debug(
            "ConfigManager initialized",
            extra={
                "config_dir": str(directory) if directory is not None else None,
                "yaml_file_count": len(self._loaded_files),
                "top_level_keys": sorted(self._data.keys()),
            },
        )

    # =========================================================================
    # YAML LOADING
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: Mapping[str, Any],
    ) -> None:
        """Recursively merge ``source`` into ``target`` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = value

    def load_yaml(self, path: Union[str, Path]) -> None:
        """
        Merge a single YAML file into the current configuration.

        Raises
        ------
        ConfigInitializationError
            If the file cannot be read or parsed, or its root is not a mapping.
        """
        yaml_file = Path(path)
        try:
            with yaml_file.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except (OSError, yaml.YAMLError) as exc:
            logger.warning(
                "Failed to load YAML config",
                extra={
                    "file": str(yaml_file),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            raise ConfigInitializationError(f"Cannot load config file {yaml_file}: {exc}") from exc

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigInitializationError(
                f"Config file {yaml_file} must contain a mapping, got {type(data).__name__}"
            )

        self._deep_merge_dict(self._data, data)
        self._loaded_files.append(str(yaml_file))
        logger.debug("Loaded YAML config", extra={"file": str(yaml_file)})

    def load_directory(self, config_dir: Union[str, Path]) -> int:
        """
        Merge every YAML file under ``config_dir`` in sorted path order.

        A missing directory is logged and skipped.

        Returns
        -------
        int
            Number of files merged.
        """
        directory = Path(config_dir)
        if not directory.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(directory)},
            )
            return 0

        yaml_files = sorted([*directory.rglob("*.yaml"), *directory.rglob("*.yml")])
        before = len(self._loaded_files)
        for yaml_file in yaml_files:
            self.load_yaml(yaml_file)

        loaded = len(self._loaded_files) - before
        logger.info(
            "YAML configs loaded",
            extra={"config_dir": str(directory), "yaml_file_count": loaded},
        )
        return loaded

    # =========================================================================
    # VALIDATION HOOKS
    # =========================================================================

    def register_validator(self, key: str, validator: Callable[[Any], Any]) -> None:
        """
        Register a validator for a dotted key.

        Validators run on ``set`` and return the (possibly coerced) value or
        raise to block the write.
        """
        self._validators[key] = validator

    # =========================================================================
    # READ / WRITE
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve a value by dot-notation path.

        Examples
        --------
        >>> ConfigManager().get("health.probe_timeout_seconds")
        5.0
        """
        value: Any = self._data
        for part in key.split("."):
            if not isinstance(value, Mapping):
                return default
            value = value.get(part, _MISSING)
            if value is _MISSING:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Write a value at a dot-notation path, creating parent mappings.

        Raises
        ------
        ConfigValidationError
            If a registered validator rejects the value.
        """
        validator = self._validators.get(key)
        if validator is not None:
            try:
                value = validator(value)
            except Exception as exc:
                raise ConfigValidationError(f"Invalid value for '{key}': {exc}") from exc

        parts = key.split(".")
        node = self._data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

        logger.debug("Config value updated", extra={"config_key": key})

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key, _MISSING) is not _MISSING

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    @property
    def loaded_files(self) -> list[str]:
        return list(self._loaded_files)


def resolve_setting(config: Any, key: str, default: Any = None) -> Any:
    """
    Read a dotted setting from any supported configuration object.

    Supports a ``ConfigManager`` (or anything whose ``get`` accepts dotted
    keys), or a nested mapping such as ``{"event_history": {"max_size": 10}}``.
    Lookup failures return ``default``.

    Examples
    --------
    >>> resolve_setting({"event_history": {"max_size": 10}}, "event_history.max_size", 1000)
    10
    >>> resolve_setting(None, "event_history.max_size", 1000)
    1000
    """
    if config is None:
        return default

    if isinstance(config, Mapping):
        value: Any = config
        for part in key.split("."):
            if not isinstance(value, Mapping) or part not in value:
                return default
            value = value[part]
        return value

    getter = getattr(config, "get", None)
    if callable(getter):
        try:
            return getter(key, default)
        except Exception as exc:
            logger.warning(
                "Failed to read setting from config, using default",
                extra={"config_key": key, "default_value": default, "error": str(exc)},
            )
    return default


__all__ = ["ConfigManager", "resolve_setting"]

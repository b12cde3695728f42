"""
Configuration error hierarchy for modulebus.

Exception Hierarchy
-------------------
ConfigError (base)
├── ConfigValidationError (a validator rejected a value)
└── ConfigInitializationError (a config file could not be loaded)
"""


class ConfigError(Exception):
    """
    Base exception for all configuration-related errors.

    Example
    -------
    >>> try:
    ...     config.set("event_history.max_size", "lots")
    ... except ConfigError as e:
    ...     logger.error(f"Config operation failed: {e}")
    """


class ConfigValidationError(ConfigError):
    """Raised when a registered validator rejects a value on ``set``."""


class ConfigInitializationError(ConfigError):
    """
    Raised when a YAML config file cannot be read or parsed, or its root
    object is not a mapping.
    """


__all__ = [
    "ConfigError",
    "ConfigValidationError",
    "ConfigInitializationError",
]

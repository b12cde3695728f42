"""
Static configuration for modulebus.

Purpose
-------
Provides process-wide static settings loaded from environment variables (with
``.env`` support) and validated with bounds checking. These values seed the
layered ``ConfigManager`` and drive the logging subsystem.

Responsibilities
----------------
- Load settings from environment variables after ``load_dotenv()``
- Parse ints, floats and booleans safely, warning and falling back on bad input
- Track which values came from the environment and which were defaulted
- Expose a non-sensitive configuration summary

Non-Responsibilities
--------------------
- Layered / file-based configuration (handled by ConfigManager)
- Per-instance overrides (handled by ConfigManager)

Architecture Notes
------------------
- Class-level attributes, no instantiation
- ``Config.load()`` runs on import; call it again after changing the
  environment (tests do this through ``monkeypatch``)
- Logging here uses the stdlib root helpers since the structured logger
  depends on this module

Environment Variables
---------------------
- ENVIRONMENT: development | testing | staging | production (default: development)
- DEBUG: debug flag (default: False)
- LOG_LEVEL: logging level (default: INFO)
- LOG_JSON: force JSON console logs (default: unset, JSON in production)
- LOG_COLORS: coloured console logs on a TTY (default: True)
- LOG_TO_FILE: also write a daily rotating JSON log (default: False)
- LOGS_DIR: directory for the log file (default: ./logs)
- EVENT_HISTORY_MAX_SIZE: per-topic history cap (default: 1000)
- HEALTH_CHECK_TIMEOUT_SECONDS: per-probe timeout (default: 5.0)
- CONFIG_DIR: directory of YAML files merged by ConfigManager (default: unset)

Dependencies
------------
- python-dotenv: environment variable loading
"""

import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse an environment string, falling back to development.

        Example
        -------
        >>> Environment.from_string("PRODUCTION") is Environment.PRODUCTION
        True
        """
        try:
            return cls(value.lower())
        except ValueError:
            logging.warning(f"Unknown environment '{value}', defaulting to development")
            return cls.DEVELOPMENT


# ============================================================================
# Configuration Load Tracking
# ============================================================================


class _ConfigLoadMetrics:
    """Tracks environment-vs-default sources and validation warnings."""

    def __init__(self) -> None:
        self.env_vars_loaded: Dict[str, bool] = {}
        self.validation_errors: Dict[str, str] = {}
        self.defaults_used: Dict[str, Any] = {}
        self.last_reload: Optional[str] = None

    def record_env_load(self, key: str, from_env: bool, default: Any) -> None:
        self.env_vars_loaded[key] = from_env
        if not from_env:
            self.defaults_used[key] = default

    def record_validation_error(self, key: str, error: str) -> None:
        self.validation_errors[key] = error

    def get_summary(self) -> Dict[str, Any]:
        return {
            "total_configs": len(self.env_vars_loaded),
            "from_environment": sum(1 for v in self.env_vars_loaded.values() if v),
            "from_defaults": sum(1 for v in self.env_vars_loaded.values() if not v),
            "validation_errors": len(self.validation_errors),
            "defaults_used": list(self.defaults_used.keys()),
            "last_reload": self.last_reload,
        }


# ============================================================================
# Main Configuration Class
# ============================================================================


class Config:
    """
    Static settings for modulebus.

    Usage
    -----
    >>> Config.EVENT_HISTORY_MAX_SIZE
    1000
    >>> Config.is_production()
    False
    """

    _metrics: _ConfigLoadMetrics = _ConfigLoadMetrics()

    # =========================================================================
    # Environment
    # =========================================================================

    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # =========================================================================
    # Logging
    # =========================================================================

    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_COLORS: bool = True
    LOG_TO_FILE: bool = False
    LOGS_DIR: Path = Path("logs")

    # =========================================================================
    # Event system
    # =========================================================================

    EVENT_HISTORY_MAX_SIZE: int = 1000
    HEALTH_CHECK_TIMEOUT_SECONDS: float = 5.0
    CONFIG_DIR: Optional[Path] = None

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @classmethod
    def _warn(cls, key: str, error: str) -> None:
        logging.warning(error)
        cls._metrics.record_validation_error(key, error)

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """
        Parse an integer from the environment with bounds checking.

        Example
        -------
        >>> Config._safe_int("EVENT_HISTORY_MAX_SIZE", 1000, min_val=1)
        1000
        """
        raw_value = os.getenv(key)
        if raw_value is None:
            cls._metrics.record_env_load(key, False, default)
            return default

        try:
            value = int(raw_value)
        except ValueError:
            cls._warn(key, f"{key}='{raw_value}' is not a valid integer, using default {default}")
            return default

        if min_val is not None and value < min_val:
            cls._warn(key, f"{key}={value} is below minimum {min_val}, using default {default}")
            return default
        if max_val is not None and value > max_val:
            cls._warn(key, f"{key}={value} exceeds maximum {max_val}, using default {default}")
            return default

        cls._metrics.record_env_load(key, True, default)
        return value

    @classmethod
    def _safe_float(
        cls,
        key: str,
        default: float,
        min_val: Optional[float] = None,
    ) -> float:
        raw_value = os.getenv(key)
        if raw_value is None:
            cls._metrics.record_env_load(key, False, default)
            return default

        try:
            value = float(raw_value)
        except ValueError:
            cls._warn(key, f"{key}='{raw_value}' is not a valid number, using default {default}")
            return default

        if min_val is not None and value < min_val:
            cls._warn(key, f"{key}={value} is below minimum {min_val}, using default {default}")
            return default

        cls._metrics.record_env_load(key, True, default)
        return value

    @classmethod
    def _safe_bool(cls, key: str, default: Optional[bool]) -> Optional[bool]:
        """
        Parse a boolean from the environment.

        Recognizes: true/false, yes/no, 1/0, on/off (case-insensitive).
        """
        raw_value = os.getenv(key)
        if raw_value is None:
            cls._metrics.record_env_load(key, False, default)
            return default

        normalized = raw_value.lower().strip()
        if normalized in {"true", "yes", "1", "on"}:
            value = True
        elif normalized in {"false", "no", "0", "off"}:
            value = False
        else:
            cls._warn(key, f"{key}='{raw_value}' is not a valid boolean, using default {default}")
            return default

        cls._metrics.record_env_load(key, True, default)
        return value

    @classmethod
    def _safe_str(cls, key: str, default: str) -> str:
        value = os.getenv(key, default)
        cls._metrics.record_env_load(key, key in os.environ, default)
        return value

    @classmethod
    def _safe_path(cls, key: str, default: Optional[Path]) -> Optional[Path]:
        raw_value = os.getenv(key)
        cls._metrics.record_env_load(key, raw_value is not None, default)
        if not raw_value:
            return default
        return Path(raw_value)

    # =========================================================================
    # Configuration Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """
        Load every setting from the environment.

        Called on import; call again to pick up environment changes.
        """
        cls._metrics = _ConfigLoadMetrics()

        cls.ENVIRONMENT = Environment.from_string(
            cls._safe_str("ENVIRONMENT", "development")
        ).value
        cls.DEBUG = bool(cls._safe_bool("DEBUG", False))

        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO").upper()
        if cls.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            cls._warn("LOG_LEVEL", f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
            cls.LOG_LEVEL = "INFO"
        cls.LOG_JSON = cls._safe_bool("LOG_JSON", None)
        cls.LOG_COLORS = bool(cls._safe_bool("LOG_COLORS", True))
        cls.LOG_TO_FILE = bool(cls._safe_bool("LOG_TO_FILE", False))
        cls.LOGS_DIR = cls._safe_path("LOGS_DIR", Path("logs")) or Path("logs")

        cls.EVENT_HISTORY_MAX_SIZE = cls._safe_int(
            "EVENT_HISTORY_MAX_SIZE", 1000, min_val=1, max_val=1_000_000
        )
        cls.HEALTH_CHECK_TIMEOUT_SECONDS = cls._safe_float(
            "HEALTH_CHECK_TIMEOUT_SECONDS", 5.0, min_val=0.0
        )
        cls.CONFIG_DIR = cls._safe_path("CONFIG_DIR", None)

        cls._metrics.last_reload = datetime.now(timezone.utc).isoformat()

        if cls.is_production() and cls.DEBUG:
            logging.warning("DEBUG mode enabled in production!")

    # =========================================================================
    # Environment Checks
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def is_development(cls) -> bool:
        return cls.ENVIRONMENT.lower() == "development"

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT.lower() == "testing"

    # =========================================================================
    # Metrics & Summary
    # =========================================================================

    @classmethod
    def get_metrics(cls) -> _ConfigLoadMetrics:
        return cls._metrics

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """
        Non-sensitive configuration summary for debugging.

        Example
        -------
        >>> Config.get_config_summary()["environment"]
        'development'
        """
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "log_json": cls.LOG_JSON,
            "log_to_file": cls.LOG_TO_FILE,
            "event_history_max_size": cls.EVENT_HISTORY_MAX_SIZE,
            "health_check_timeout_seconds": cls.HEALTH_CHECK_TIMEOUT_SECONDS,
            "config_dir_set": cls.CONFIG_DIR is not None,
            "load": cls._metrics.get_summary(),
        }


Config.load()

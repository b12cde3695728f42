"""
Configuration subsystem for modulebus.

Architecture
------------
- **config.py**: static settings from environment variables (.env support)
- **manager.py**: layered ConfigManager (defaults < YAML < overrides) and
  ``resolve_setting``
- **errors.py**: configuration exception hierarchy

``ConfigManager`` is imported from ``modulebus.core.config.manager``; this
package only re-exports the static layer, which the logging subsystem
depends on.

Usage Examples
--------------
```python
from modulebus.core.config import Config
from modulebus.core.config.manager import ConfigManager

if Config.is_production():
    ...

config = ConfigManager(config_dir="config")
max_size = config.get("event_history.max_size", 1000)
```
"""

from modulebus.core.config.config import Config, Environment
from modulebus.core.config.errors import (
    ConfigError,
    ConfigInitializationError,
    ConfigValidationError,
)

__all__ = [
    "Config",
    "Environment",
    "ConfigError",
    "ConfigValidationError",
    "ConfigInitializationError",
]

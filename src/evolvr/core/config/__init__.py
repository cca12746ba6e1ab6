"""
Configuration subsystem for Evolvr.

- **config.py**: static configuration from environment variables (.env aware)
- **manager.py**: progression balance values from built-in defaults, YAML
  files and runtime overrides

Usage
-----
```python
from evolvr.core.config import Config, ConfigManager

if Config.is_production():
    ...

xp_per_level = ConfigManager.get("progression.xp_per_level")
```
"""

from evolvr.core.config.config import Config, Environment
from evolvr.core.config.manager import ConfigManager

__all__ = ["Config", "ConfigManager", "Environment"]

"""
ConfigManager: dynamic, cache-backed progression configuration for Evolvr.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable progression values.
- Back configuration with built-in defaults plus YAML files from the config
  directory.
- Allow hosts (and tests) to apply runtime overrides without redeploys.

Responsibilities
----------------
- Load and deep-merge every YAML file under `Config.CONFIG_DIR`.
- Overlay runtime overrides on top of YAML and built-in defaults.
- Serve reads from an in-memory cache with hit/miss metrics.

Key Design Decisions
--------------------
- Built-in defaults are the last resort; YAML refines them; overrides win.
- Reads never raise: a missing key returns the caller's default.
- Initialization is lazy: the first `get()` loads YAML if `initialize()` was
  never called explicitly.

Dependencies
------------
- PyYAML for the balance files.
- `evolvr.core.config.config.Config` for the directory location.
- `evolvr.core.logging.logger.get_logger` for structured logging.
"""

from __future__ import annotations

import copy
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

import yaml

from evolvr.core.config.config import Config
from evolvr.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Built-in defaults (mirrors config/progression.yaml)
# ============================================================================

_BUILTIN_DEFAULTS: Dict[str, Any] = {
    "progression": {
        "xp_per_level": 1000,
        "max_level": 100,
        "daily_xp_limit": 2000,
        "multipliers": {
            "routine_streak_step": 0.0285,
            "routine_streak_max": 0.20,
            "habit_streak_step": 0.01,
            "habit_streak_max": 0.10,
            "challenge_bonus": 0.15,
            "prestige_step": 0.03,
        },
    },
    "badges": {
        "catalog_cache_ttl_seconds": 3600,
    },
    "tasks": {
        "committed_history_size": 1024,
    },
    "core": {
        "event": {
            "listener_timeout_seconds": 5.0,
        },
    },
}


@dataclass
class ConfigMetrics:
    gets: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    overrides_applied: int = 0
    yaml_files_loaded: int = 0
    errors: int = 0
    total_get_time_ms: float = 0.0


class ConfigManager:
    """
    Dynamic progression configuration with YAML backing and caching.

    Examples
    --------
    >>> ConfigManager.get("progression.xp_per_level")
    1000
    >>> ConfigManager.set_override("progression.daily_xp_limit", 5000)
    >>> ConfigManager.get("progression.daily_xp_limit")
    5000
    """

    _cache: Dict[str, Any] = {}
    _defaults: Dict[str, Any] = {}
    _overrides: Dict[str, Any] = {}
    _initialized: bool = False
    _metrics: ConfigMetrics = ConfigMetrics()

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    @staticmethod
    def _set_dotted(target: MutableMapping[str, Any], key: str, value: Any) -> None:
        parts = key.split(".")
        node = target
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> None:
        """Recursively load all YAML files from `config_dir` into `_defaults`."""
        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return

        yaml_files = sorted(config_dir.rglob("*.yaml")) + sorted(config_dir.rglob("*.yml"))
        if not yaml_files:
            logger.info(
                "No YAML config files discovered; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return

        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                cls._metrics.errors += 1
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(cls._defaults, data)
                cls._metrics.yaml_files_loaded += 1
                logger.debug(
                    "Loaded YAML config",
                    extra={"file": str(yaml_file.relative_to(config_dir))},
                )
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

    @classmethod
    def _rebuild_cache(cls) -> None:
        cache = copy.deepcopy(cls._defaults)
        for key, value in cls._overrides.items():
            cls._set_dotted(cache, key, copy.deepcopy(value))
        cls._cache = cache

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load built-in defaults and YAML files, then apply overrides.

        Safe to call repeatedly; each call reloads the YAML files.
        """
        directory = Path(config_dir) if config_dir is not None else Config.CONFIG_DIR

        cls._defaults = copy.deepcopy(_BUILTIN_DEFAULTS)
        cls._metrics.yaml_files_loaded = 0
        cls._load_yaml_configs(directory)
        cls._rebuild_cache()
        cls._initialized = True

        logger.info(
            "ConfigManager initialized",
            extra={
                "config_dir": str(directory),
                "yaml_file_count": cls._metrics.yaml_files_loaded,
                "override_count": len(cls._overrides),
            },
        )

    @classmethod
    def reset(cls) -> None:
        """Drop overrides and cached state (primarily for tests)."""
        cls._cache = {}
        cls._defaults = {}
        cls._overrides = {}
        cls._initialized = False
        cls._metrics = ConfigMetrics()

    # =========================================================================
    # READ / WRITE
    # =========================================================================

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Examples
        --------
        >>> ConfigManager.get("progression.multipliers.challenge_bonus")
        0.15
        >>> ConfigManager.get("progression.unknown", 42)
        42
        """
        start_time = time.perf_counter()
        cls._metrics.gets += 1

        if not cls._initialized:
            cls.initialize()

        try:
            value: Any = cls._cache
            for part in key.split("."):
                if not isinstance(value, dict) or part not in value:
                    cls._metrics.cache_misses += 1
                    return default
                value = value[part]

            cls._metrics.cache_hits += 1
            return value if value is not None else default
        finally:
            cls._metrics.total_get_time_ms += (time.perf_counter() - start_time) * 1000

    @classmethod
    def set_override(cls, key: str, value: Any) -> None:
        """Apply a runtime override that wins over YAML and built-in defaults."""
        if not cls._initialized:
            cls.initialize()

        old_value = cls.get(key)
        cls._overrides[key] = value
        cls._metrics.overrides_applied += 1
        cls._rebuild_cache()

        logger.info(
            "Configuration override applied",
            extra={"config_key": key, "old_value": old_value, "new_value": value},
        )

    @classmethod
    def clear_override(cls, key: str) -> bool:
        if key not in cls._overrides:
            return False
        del cls._overrides[key]
        cls._rebuild_cache()
        return True

    @classmethod
    def get_all_keys(cls) -> List[str]:
        """Return all top-level configuration keys currently cached."""
        if not cls._initialized:
            cls.initialize()
        return sorted(cls._cache.keys())

    @classmethod
    def get_metrics(cls) -> Dict[str, Any]:
        return asdict(cls._metrics)

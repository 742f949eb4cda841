from __future__ import annotations

from typing import Any, Dict, Optional, List, Callable
from types import ModuleType
import importlib
import json
import os
import pkgutil

CONFIG_PACKAGE = 'relation_scopes.config'


class ConfigRepository:
    """
    Laravel-style configuration repository.

    Every public, non-callable attribute of the modules under
    ``relation_scopes.config`` is exposed with dot notation, keyed by
    module name: ``scopes.deprecation_behavior``, ``logging.channels.stderr``.
    """

    def __init__(self, package: str = CONFIG_PACKAGE) -> None:
        self._package = package
        self._config: Dict[str, Any] = {}
        self._cached: Dict[str, Any] = {}
        self._observers: Dict[str, List[Callable[[str, Any], None]]] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from the config package modules."""
        package = importlib.import_module(self._package)

        for module_info in pkgutil.iter_modules(package.__path__):
            if module_info.name.startswith('_'):
                continue

            module = importlib.import_module(f"{self._package}.{module_info.name}")
            module = importlib.reload(module)
            self._config[module_info.name] = self._module_values(module)

    def _module_values(self, module: ModuleType) -> Dict[str, Any]:
        return {
            key: value for key, value in vars(module).items()
            if not key.startswith('_') and not callable(value) and not isinstance(value, ModuleType)
        }

    def _convert_env_value(self, value: str) -> Any:
        """Convert environment variable string to appropriate type."""
        # Boolean values
        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'

        # None/null values
        if value.lower() in ('null', 'none', ''):
            return None

        # Numeric values
        try:
            if '.' in value:
                return float(value)
            else:
                return int(value)
        except ValueError:
            pass

        # JSON values
        if value.startswith(('{', '[')):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value using dot notation."""
        if key in self._cached:
            return self._cached[key]

        value: Any = self._config
        for k in key.split('.'):
            if not isinstance(value, dict) or k not in value:
                return default
            value = value[k]

        self._cached[key] = value
        return value

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value using dot notation."""
        keys = key.split('.')
        config = self._config

        # Navigate to the parent
        for k in keys[:-1]:
            if k not in config or not isinstance(config[k], dict):
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

        self._clear_cache(key)
        self._notify_observers(key, value)

    def has(self, key: str) -> bool:
        """Check if a configuration key exists."""
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def all(self) -> Dict[str, Any]:
        """Get all configuration."""
        return self._config.copy()

    def forget(self, key: str) -> None:
        """Remove a configuration value."""
        keys = key.split('.')
        config = self._config

        try:
            for k in keys[:-1]:
                config = config[k]
            config.pop(keys[-1], None)
        except (KeyError, TypeError):
            pass
        self._clear_cache(key)

    def observe(self, key: str, callback: Callable[[str, Any], None]) -> None:
        """Register an observer for configuration changes."""
        self._observers.setdefault(key, []).append(callback)

    def reload(self) -> None:
        """Reload all configuration from the config modules."""
        self._config.clear()
        self._cached.clear()
        self._load_config()

    def _clear_cache(self, key: str) -> None:
        """Clear cache entries overlapping the given key."""
        for cached_key in list(self._cached):
            if cached_key.startswith(key) or key.startswith(cached_key):
                del self._cached[cached_key]

    def _notify_observers(self, key: str, new_value: Any) -> None:
        for observer_key, observers in self._observers.items():
            if observer_key == key or (observer_key.endswith('*') and key.startswith(observer_key[:-1])):
                for observer in observers:
                    observer(key, new_value)


# Global config instance
config_repository: Optional[ConfigRepository] = None


def get_config() -> ConfigRepository:
    """Get the global configuration repository."""
    global config_repository
    if config_repository is None:
        config_repository = ConfigRepository()
    return config_repository


def config(key: str, default: Any = None) -> Any:
    """Get a configuration value using dot notation."""
    return get_config().get(key, default)


def env(key: str, default: Any = None) -> Any:
    """Get environment variable with type conversion."""
    value = os.getenv(key)
    if value is None:
        return default
    return get_config()._convert_env_value(value)

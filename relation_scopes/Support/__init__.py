from __future__ import annotations

from .Config import config, ConfigRepository, env, get_config

__all__ = [
    "config",
    "ConfigRepository",
    "env",
    "get_config",
]

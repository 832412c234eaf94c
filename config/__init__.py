"""Configuration package.

`get_config()` is the single source of truth for environment-driven
settings; `set_config_name()` selects the profile and drops the cache.
"""

import os

from .base import DEFAULT_JWT_SECRET_KEY, DEFAULT_SECRET_KEY
from .runtime import get_provider_seed_config, get_runtime_config
from .schema import AppConfig, ProviderSeedConfig, RuntimeConfig

_config_name = "default"
_config_cache: AppConfig | None = None


def set_config_name(name: str | None) -> None:
    """Select the active profile (default/development/production)."""
    global _config_name, _config_cache
    _config_name = name or "default"
    _config_cache = None


def get_config(reload: bool = False) -> AppConfig:
    """Return the cached AppConfig, building it from env on first use."""
    global _config_cache
    if _config_cache is None or reload:
        _config_cache = AppConfig(
            runtime=get_runtime_config(_config_name),
            provider_seed=get_provider_seed_config(),
            secret_key=os.environ.get("SECRET_KEY") or DEFAULT_SECRET_KEY,
        )
    return _config_cache


__all__ = [
    "AppConfig",
    "ProviderSeedConfig",
    "RuntimeConfig",
    "DEFAULT_JWT_SECRET_KEY",
    "DEFAULT_SECRET_KEY",
    "get_config",
    "set_config_name",
]

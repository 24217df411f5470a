"""
Configuration module for the task board sync client.

Exports the configuration models and loader functions.
"""

from .loader import (
    apply_env_overrides,
    get_config,
    load_config,
    load_config_file,
    merge_configs,
    strip_jsonc_comments,
)
from .main_config import BackendConfig, CacheConfig, Config, RealtimeConfig, SyncConfig

__all__ = [
    # Config models
    "Config",
    "BackendConfig",
    "RealtimeConfig",
    "SyncConfig",
    "CacheConfig",
    # Loader functions
    "load_config",
    "get_config",
    "load_config_file",
    "merge_configs",
    "strip_jsonc_comments",
    "apply_env_overrides",
]

# ZenSync Configuration Module
# Handles YAML-based configuration loading, validation, and defaults

from zensync.config.defaults import DEFAULT_CONFIG, generate_default_config, get_default_config
from zensync.config.loader import (
    ensure_config_exists,
    get_config_path,
    load_config,
    load_config_or_default,
    save_config,
    validate_config_file,
)
from zensync.config.schema import (
    ApiConfig,
    ConcurrencyPolicy,
    OutputConfig,
    StorageBackend,
    StorageConfig,
    SyncSettings,
    ZenSyncConfig,
)

__all__ = [
    # Schema
    "ZenSyncConfig",
    "ApiConfig",
    "StorageConfig",
    "SyncSettings",
    "OutputConfig",
    "ConcurrencyPolicy",
    "StorageBackend",
    # Loader
    "load_config",
    "load_config_or_default",
    "save_config",
    "get_config_path",
    "ensure_config_exists",
    "validate_config_file",
    # Defaults
    "DEFAULT_CONFIG",
    "get_default_config",
    "generate_default_config",
]

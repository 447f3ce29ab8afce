"""Configuration system for plugin-jobs."""

from .loader import get_config_path, get_data_dir, load_config
from .schema import (
    LoggingConfig,
    PluginJobsConfig,
    PluginsConfig,
    StorageConfig,
    WorkerConfig,
)

__all__ = [
    "PluginJobsConfig",
    "StorageConfig",
    "WorkerConfig",
    "PluginsConfig",
    "LoggingConfig",
    "load_config",
    "get_config_path",
    "get_data_dir",
]

# plugin_jobs/config/schema.py
"""
Pydantic configuration models for plugin-jobs.

All models use extra="ignore" to allow unknown YAML keys without crashing.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class StorageConfig(BaseModel):
    """Durable job store configuration."""

    model_config = ConfigDict(extra="ignore")

    backend: Literal["json", "sqlite"] = Field(
        default="json", description="Job store backend (single JSON file or SQLite)"
    )
    data_dir: str | None = Field(
        default=None,
        description="Directory for the job store (None = platform user data dir)",
    )
    retention_limit: int = Field(
        default=100,
        ge=1,
        description="Maximum jobs kept; oldest finished jobs are pruned first",
    )


class WorkerConfig(BaseModel):
    """Background worker configuration."""

    model_config = ConfigDict(extra="ignore")

    poll_interval: float = Field(
        default=2.0, gt=0.0, description="Seconds between queue checks when idle"
    )
    shutdown_grace: float = Field(
        default=30.0,
        ge=0.0,
        description="Seconds to let the running job finish on shutdown",
    )
    cancel_check_interval: float = Field(
        default=0.5,
        gt=0.0,
        description="Seconds between cancellation checks for the running job",
    )


class PluginsConfig(BaseModel):
    """Plugin directory executor configuration."""

    model_config = ConfigDict(extra="ignore")

    plugins_dir: str = Field(
        default="plugins", description="Game server plugins directory"
    )
    download_timeout: float = Field(
        default=300.0, gt=0.0, description="Download request timeout in seconds"
    )
    download_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Download attempts on connection errors",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Root log level"
    )


class PluginJobsConfig(BaseModel):
    """Root configuration for plugin-jobs."""

    model_config = ConfigDict(extra="ignore")

    storage: StorageConfig = Field(default_factory=StorageConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

"""
Configuration Management

Loads configuration from YAML files with environment variable resolution.
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from follower_insights.errors import ConfigError


class IngestConfig(BaseModel):
    """Archive scanning and decoding configuration."""
    binary_extensions: list[str] = Field(default_factory=lambda: [
        ".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic", ".bmp", ".ico",
        ".mp4", ".mov", ".avi", ".webm", ".mp3", ".m4a", ".aac", ".wav",
        ".pdf", ".zip", ".gz", ".srt",
    ])
    max_entry_bytes: int = 64 * 1024 * 1024
    max_embedded_scan_attempts: int = 8
    max_script_blocks: int = 16


class ProcessingConfig(BaseModel):
    """Data processing configuration."""
    parallel_workers: int = Field(default=4, ge=1)


class StorageConfig(BaseModel):
    """Session store configuration."""
    path: str = "data/follower_insights.db"
    retention_days: int = 7


class QueryConfig(BaseModel):
    """Pagination defaults and bounds."""
    default_limit: int = Field(default=50, ge=1)
    max_limit: int = Field(default=100, ge=1)


class TimelineConfig(BaseModel):
    """Timeline analysis configuration."""
    rapid_change_threshold: int = 10


class OutputConfig(BaseModel):
    """Output generation configuration."""
    directory: str = "./outputs"
    formats: list[str] = Field(default_factory=lambda: ["csv", "markdown", "json"])
    timestamp_filenames: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None


class Config(BaseModel):
    """Root configuration object."""
    ingest: IngestConfig = Field(default_factory=IngestConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    timeline: TimelineConfig = Field(default_factory=TimelineConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _resolve_env_vars(data: Any) -> Any:
    """Recursively resolve environment variables in config values.

    Supports ${VAR_NAME} and ${VAR_NAME:-default} syntax.
    """
    if isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_expr = data[2:-1]
            if ":-" in var_expr:
                var_name, default = var_expr.split(":-", 1)
                return os.environ.get(var_name, default)
            return os.environ.get(var_expr, data)
        return data
    elif isinstance(data, dict):
        return {k: _resolve_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars(item) for item in data]
    return data


def load_config(
    config_path: Optional[Path] = None,
    local_config_path: Optional[Path] = None,
) -> Config:
    """Load configuration from YAML files.

    Args:
        config_path: Path to main config file (default: config.yaml)
        local_config_path: Path to local overrides (default: config.local.yaml)

    Returns:
        Merged and validated Config object

    Raises:
        ConfigError: If a file is not valid YAML or fails validation
    """
    project_root = Path(__file__).parent.parent.parent

    if config_path is None:
        config_path = project_root / "config.yaml"
    if local_config_path is None:
        local_config_path = project_root / "config.local.yaml"

    config_data: dict[str, Any] = {}

    try:
        if config_path.exists():
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}

        # Merge local overrides
        if local_config_path.exists():
            with open(local_config_path) as f:
                local_data = yaml.safe_load(f) or {}
                config_data = _deep_merge(config_data, local_data)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML configuration: {e}") from e

    config_data = _resolve_env_vars(config_data)

    try:
        return Config(**config_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result

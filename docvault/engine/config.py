"""
DocVault Configuration — Load and validate docvault.yaml at startup.

Usage:
    from docvault.engine.config import load_config, get_config
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from docvault.engine.errors import DocVaultConfigError

CONFIG_FILENAME = "docvault.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for docvault.yaml
# ---------------------------------------------------------------------------

class DatabaseConfig(BaseModel):
    url: str = "sqlite:///docvault.db"
    pool_pre_ping: bool = True
    echo: bool = False


class RedisConfig(BaseModel):
    url: str = "redis://localhost:6379/0"


class LockingConfig(BaseModel):
    enabled: bool = True
    backend: str = "memory"
    timeout_seconds: int = 60
    prefix: str = "docvault:lock:"

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v not in ("memory", "redis"):
            raise ValueError(f"locking.backend must be memory/redis, got '{v}'")
        return v


class LogAsyncQueueConfig(BaseModel):
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".docvault/logs"
    async_queue: LogAsyncQueueConfig = LogAsyncQueueConfig()


class DocumentsConfig(BaseModel):
    max_upload_size_mb: int = 50
    allowed_mime_families: List[str] = Field(
        default_factory=lambda: ["application", "text", "image", "audio", "video"]
    )


class StorageConfig(BaseModel):
    root: str = ".docvault/storage"
    base_url: str = "file://"


class NotificationsConfig(BaseModel):
    enabled: bool = False
    webhook_url: Optional[str] = None
    timeout: int = 15
    retries: int = 2
    api_key: Optional[str] = None


class PlatformConfig(BaseModel):
    """Root model for docvault.yaml."""
    name: str = "DocVault"
    environment: str = "dev"

    database: DatabaseConfig = DatabaseConfig()
    redis: RedisConfig = RedisConfig()
    locking: LockingConfig = LockingConfig()
    logging: LoggingConfig = LoggingConfig()
    documents: DocumentsConfig = DocumentsConfig()
    storage: StorageConfig = StorageConfig()
    notifications: NotificationsConfig = NotificationsConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[PlatformConfig] = None


def _find_project_root() -> Path:
    """Find the project root by looking for docvault.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return current


def load_config(config_path: Optional[str] = None) -> PlatformConfig:
    """
    Load and validate docvault.yaml.

    Args:
        config_path: Explicit path to docvault.yaml. If None, auto-discovers.

    Returns:
        Validated PlatformConfig instance (defaults if no file exists).

    Raises:
        DocVaultConfigError if the file is not valid YAML or fails validation.
    """
    global _config

    if config_path is None:
        config_path = str(_find_project_root() / CONFIG_FILENAME)

    path = Path(config_path)
    if not path.exists():
        _config = PlatformConfig()
        return _config

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise DocVaultConfigError(f"Cannot parse {path}: {e}", config_path=str(path)) from e

    # Top-level "platform" block carries name/environment
    platform_data = raw.pop("platform", {}) or {}
    raw.setdefault("name", platform_data.get("name", "DocVault"))
    raw.setdefault("environment", platform_data.get("environment", "dev"))

    try:
        _config = PlatformConfig(**raw)
    except ValidationError as e:
        raise DocVaultConfigError(
            f"Invalid configuration in {path}",
            config_path=str(path),
            validation_errors=e.errors(),
        ) from e
    return _config


def get_config() -> PlatformConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached config (tests, reloads)."""
    global _config
    _config = None

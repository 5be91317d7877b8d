# ZenSync Configuration Schema
# Pydantic models for YAML configuration validation

import os
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from zensync.models.entities import ENTITY_TYPES


class ConcurrencyPolicy(str, Enum):
    """What a second sync attempt does while one is running."""

    REJECT = "reject"
    BLOCK = "block"


class StorageBackend(str, Enum):
    """Where the snapshot is kept."""

    FILE = "file"
    MEMORY = "memory"


class ApiConfig(BaseModel):
    """Remote API settings."""

    base_url: str = Field(default="https://api.zenmoney.ru", description="API base URL")
    token: str | None = Field(default=None, description="Bearer token (prefer token_env)")
    token_env: str = Field(default="ZENMONEY_TOKEN", description="Environment variable holding the token")
    timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Paths are appended to the base URL, so drop a trailing slash."""
        return v.rstrip("/")

    def resolve_token(self) -> str | None:
        """Token from the config file, else from the environment."""
        if self.token:
            return self.token
        return os.environ.get(self.token_env) or None


class StorageConfig(BaseModel):
    """Snapshot storage settings."""

    backend: StorageBackend = Field(default=StorageBackend.FILE, description="Storage backend")
    path: str = Field(default="~/.config/zensync", description="Data directory for the file backend")

    @field_validator("path")
    @classmethod
    def expand_path(cls, v: str) -> str:
        """Expand ~ in path."""
        return str(Path(v).expanduser())


class SyncSettings(BaseModel):
    """Sync engine behaviour."""

    concurrency: ConcurrencyPolicy = Field(
        default=ConcurrencyPolicy.REJECT,
        description="reject: fail a concurrent sync with SyncInProgress; block: wait for the running one",
    )
    full_sync_absence_deletes: bool = Field(
        default=True,
        description="On full sync, drop cached records the server listing omits",
    )
    force_fetch: list[str] = Field(default_factory=list, description="Entity types to force-fetch on full sync")
    tombstone_retention: int = Field(
        default=30 * 24 * 3600,
        ge=0,
        description="Seconds of server time a tombstone is kept; 0 keeps them forever",
    )

    @field_validator("force_fetch")
    @classmethod
    def known_types(cls, v: list[str]) -> list[str]:
        """Reject entity types the protocol does not know."""
        unknown = [name for name in v if name not in ENTITY_TYPES]
        if unknown:
            raise ValueError(f"Unknown entity types: {', '.join(unknown)}")
        return v


class OutputConfig(BaseModel):
    """Output and logging configuration."""

    verbose: bool = Field(default=False, description="Enable verbose output")
    colored: bool = Field(default=True, description="Enable colored output")
    log_file: str | None = Field(default=None, description="Path to log file")

    @field_validator("log_file")
    @classmethod
    def expand_optional_path(cls, v: str | None) -> str | None:
        """Expand ~ in optional paths."""
        if v is None:
            return None
        return str(Path(v).expanduser())


class ZenSyncConfig(BaseModel):
    """Root configuration model for ZenSync."""

    api: ApiConfig = Field(default_factory=ApiConfig, description="API settings")
    storage: StorageConfig = Field(default_factory=StorageConfig, description="Storage settings")
    sync: SyncSettings = Field(default_factory=SyncSettings, description="Sync settings")
    output: OutputConfig = Field(default_factory=OutputConfig, description="Output settings")

# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings: which object store
backs the controller, the finalizer token it owns, the cluster default
channel provisioner, dispatcher limits and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from seqctl.core.errors import ControllerError
from seqctl.core.models import API_GROUP, ObjectReference


class ConfigurationError(ControllerError):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Object store ===
    store_backend: Literal["memory", "json", "sqlite", "redis"] = "memory"
    store_root: Path = Path("~/.seqctl/store")
    store_redis_url: str = ""

    # === Controller ===
    finalizer_name: str = "sequence-controller"

    # Cluster default backend for step channels
    default_provisioner_api_version: str = f"{API_GROUP}/v1alpha1"
    default_provisioner_kind: str = "ClusterChannelProvisioner"
    default_provisioner_name: str = "in-memory-channel"

    # === Dispatcher ===
    dispatcher_max_attempts: int = 5

    # === Tracking ===
    track_store_calls: bool = False
    store_calls_file: Path = Path("~/.seqctl/logs/store_calls.jsonl")

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("dispatcher_max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("dispatcher_max_attempts must be >= 1")
        return v

    @field_validator("finalizer_name")
    @classmethod
    def validate_finalizer_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("finalizer_name must not be empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.store_backend == "redis" and not self.store_redis_url:
            errors.append("STORE_BACKEND=redis requires STORE_REDIS_URL")

        if not self.default_provisioner_name:
            errors.append("DEFAULT_PROVISIONER_NAME must not be empty")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def default_provisioner(self) -> ObjectReference:
        """Reference to the provisioner used when neither step nor sequence sets one."""
        return ObjectReference(
            api_version=self.default_provisioner_api_version,
            kind=self.default_provisioner_kind,
            name=self.default_provisioner_name,
        )


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or CLI flags).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]

"""Configuration models for the exec controller.

Settings are read from ``KEC_``-prefixed environment variables and may be
merged with a YAML file. Command-line flags override both.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional

import yaml

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .admission import parse_namespace_allowlist


class TLSConfig(BaseModel):
    """PEM material served by the webhook."""
    cert_path: Optional[str] = None
    key_path: Optional[str] = None


class ChannelConfig(BaseModel):
    """Buffer sizes of the event channels between webhook and controller."""
    interact_chan_size: int = Field(default=500, ge=1)
    extend_chan_size: int = Field(default=500, ge=1)


class RetryConfig(BaseModel):
    """Backoff applied to every item the controller consumes.

    Both give-up thresholds are explicit: an item is dropped once
    ``max_elapsed_seconds`` has passed or ``max_attempts`` calls have failed,
    whichever comes first. ``max_attempts=None`` disables the attempt bound.
    """
    initial_interval_seconds: float = Field(default=0.5, gt=0)
    multiplier: float = Field(default=1.5, ge=1.0)
    max_interval_seconds: float = Field(default=60.0, gt=0)
    max_elapsed_seconds: float = Field(default=900.0, gt=0)
    max_attempts: Optional[int] = Field(default=None, ge=1)
    jitter: float = Field(default=0.5, ge=0.0, le=1.0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", pattern="^(json|console)$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    model_config = SettingsConfigDict(env_prefix="KEC_", env_nested_delimiter="__")

    port: int = Field(default=8443, ge=1, le=65535)
    ttl_seconds: int = Field(
        default=600,
        ge=0,
        description="TTL of interacted Pods before getting evicted by the controller",
    )
    api_server: Optional[str] = None
    namespace_allowlist: str = Field(
        default="",
        description="Comma separated namespaces that allow interaction without eviction",
    )
    tls: TLSConfig = TLSConfig()
    channels: ChannelConfig = ChannelConfig()
    retry: RetryConfig = RetryConfig()
    logging: LoggingConfig = LoggingConfig()

    def __init__(self, _config_file: Optional[str] = None, **values: Any) -> None:
        file_values: Dict[str, Any] = {}
        if _config_file:
            cfg_path = Path(_config_file)
            if cfg_path.exists():
                loaded = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
                if isinstance(loaded, dict):
                    file_values = loaded
        merged = {**file_values, **values}
        super().__init__(**merged)

    @property
    def exempt_namespaces(self) -> FrozenSet[str]:
        return parse_namespace_allowlist(self.namespace_allowlist)

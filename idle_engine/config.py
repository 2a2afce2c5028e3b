"""
Configuration for the IdLE Engine.

Settings are read from a YAML or JSON file and merged over defaults. The
same settings object drives retry behaviour, provider construction and the
audit event sink.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)


class RetryPolicy(BaseModel):
    """Exponential backoff settings for transient step failures."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_attempts: int = Field(3, ge=1, le=10)
    initial_delay_ms: int = Field(250, ge=0)
    backoff_factor: float = Field(2.0, ge=1.0)
    max_delay_ms: int = Field(5000, ge=0)
    jitter_ratio: float = Field(0.2, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_delays(self) -> "RetryPolicy":
        if self.initial_delay_ms > self.max_delay_ms:
            raise ValueError("initial_delay_ms must not exceed max_delay_ms")
        return self


class ProviderSettings(BaseModel):
    """Declarative provider entry; ``mock`` is the only built-in kind."""
    model_config = ConfigDict(extra="forbid")

    type: str = "mock"
    capabilities: Optional[List[str]] = Field(None, description="Override advertised capabilities")
    config: Dict[str, Any] = Field(default_factory=dict)


class AuthSessionEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pattern: Dict[str, Any]
    descriptor: Dict[str, Any]


class AuthSessionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default: Optional[Dict[str, Any]] = None
    sessions: List[AuthSessionEntry] = Field(default_factory=list)


class EngineSettings(BaseModel):
    """Top-level engine settings."""
    model_config = ConfigDict(extra="forbid")

    log_level: str = "INFO"
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    providers: Dict[str, ProviderSettings] = Field(
        default_factory=lambda: {"identity": ProviderSettings()}
    )
    auth_sessions: Optional[AuthSessionSettings] = None
    audit_dir: Optional[str] = Field(None, description="Directory for the JSONL event sink")


def load_settings(config_path: Optional[Union[str, Path]] = None) -> EngineSettings:
    """
    Load engine settings from a YAML or JSON file.

    Args:
        config_path: Settings file; defaults are used when None

    Returns:
        Validated EngineSettings
    """
    if config_path is None:
        return EngineSettings()

    path = Path(config_path)
    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    settings = EngineSettings.model_validate(data or {})
    logger.info(f"Loaded engine settings from {path}")
    return settings

"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from waypoint.utils.platform import get_config_dir, get_data_dir


class EngineConfig(BaseModel):
    pause_poll_interval: float = 1.0
    confirmation_timeout: float = 120.0
    max_fallback_depth: int = 1


class StorageConfig(BaseModel):
    write_attempts: int = 3
    write_backoff: float = 0.1


class DecisionServerConfig(BaseModel):
    enabled: bool = False
    bind: str = "127.0.0.1"
    port: int = 8421
    secret: str = ""


class NotificationConfig(BaseModel):
    webhook_url: str = ""
    secret: str = ""
    timeout: float = 10.0


class LLMConfig(BaseModel):
    provider: str = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    api_key: str = ""
    max_tokens: int = 2048
    temperature: float = 0.7
    local_endpoint: str = "http://localhost:11434/v1"


class HandlersConfig(BaseModel):
    delete_roots: list[str] = Field(default_factory=list)
    download_max_mb: int = 100
    shell_enabled: bool = False
    # Program names; when set, commands run without a shell
    shell_allowlist: list[str] = Field(default_factory=list)


class EnvironmentConfig(BaseModel):
    metered_interfaces: list[str] = Field(default_factory=lambda: ["wwan0", "ppp0", "rmnet0"])


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WAYPOINT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    engine: EngineConfig = Field(default_factory=EngineConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    decisions: DecisionServerConfig = Field(default_factory=DecisionServerConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    handlers: HandlersConfig = Field(default_factory=HandlersConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    data_dir: str = ""
    log_level: str = "INFO"
    log_json: bool = False

    def get_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir)
        return get_data_dir()

    def get_tasks_dir(self) -> Path:
        return self.get_data_dir() / "tasks"


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("WAYPOINT_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    # Build settings: YAML values as defaults, env vars override
    return Settings(**yaml_data)

"""Configuration management for the bounty service."""

from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

REDACTION_MARKER = "***REDACTED***"

_SECRET_FIELDS = frozenset({"api_key"})


class ServiceConfig(BaseModel):
    """Service identity configuration."""

    model_config = ConfigDict(extra="forbid")
    name: str
    version: str


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(extra="forbid")
    host: str
    port: int
    log_level: str


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")
    level: str
    directory: str


class DatabaseConfig(BaseModel):
    """Database configuration."""

    model_config = ConfigDict(extra="forbid")
    path: str


class RequestConfig(BaseModel):
    """Request validation configuration."""

    model_config = ConfigDict(extra="forbid")
    max_body_size: int


class AdminConfig(BaseModel):
    """Operator access configuration."""

    model_config = ConfigDict(extra="forbid")
    api_key: str | None = None
    max_requests_per_minute: int

    @field_validator("api_key")
    @classmethod
    def blank_key_means_unconfigured(cls, value: str | None) -> str | None:
        """Treat an empty key as not configured."""
        if value is None or not value.strip():
            return None
        return value

    @field_validator("max_requests_per_minute")
    @classmethod
    def rate_must_be_positive(cls, value: int) -> int:
        """Reject a non-positive admin request ceiling."""
        if value < 1:
            msg = "admin.max_requests_per_minute must be >= 1"
            raise ValueError(msg)
        return value


class LimitsConfig(BaseModel):
    """Monetary caps and input size limits."""

    model_config = ConfigDict(extra="forbid")
    max_task_reward: Decimal
    max_payment_amount: Decimal
    max_title_length: int
    max_description_length: int
    max_proof_length: int

    @model_validator(mode="after")
    def validate_limits(self) -> LimitsConfig:
        """Keep every created reward settleable."""
        if self.max_task_reward <= 0 or self.max_payment_amount <= 0:
            msg = "limits.max_task_reward and limits.max_payment_amount must be positive"
            raise ValueError(msg)
        if self.max_task_reward > self.max_payment_amount:
            msg = "limits.max_task_reward must not exceed limits.max_payment_amount"
            raise ValueError(msg)
        for name in ("max_title_length", "max_description_length", "max_proof_length"):
            if getattr(self, name) < 1:
                msg = f"limits.{name} must be >= 1"
                raise ValueError(msg)
        return self


class JudgeConfig(BaseModel):
    """Submission judge configuration."""

    model_config = ConfigDict(extra="forbid")
    provider: Literal["llm", "mock"] = "llm"
    model: str
    temperature: float | None = None
    timeout_seconds: float

    @model_validator(mode="after")
    def validate_judge(self) -> JudgeConfig:
        """Require a temperature for the LLM provider."""
        if self.provider == "llm" and self.temperature is None:
            msg = "judge.temperature is required when judge.provider is 'llm'"
            raise ValueError(msg)
        if self.timeout_seconds <= 0:
            msg = "judge.timeout_seconds must be positive"
            raise ValueError(msg)
        return self


class TaskGeneratorConfig(BaseModel):
    """LLM task generator configuration."""

    model_config = ConfigDict(extra="forbid")
    model: str
    temperature: float
    timeout_seconds: float
    max_tasks_per_request: int


class BudgetAdvisorConfig(BaseModel):
    """LLM budget advisor configuration."""

    model_config = ConfigDict(extra="forbid")
    model: str
    temperature: float
    timeout_seconds: float


class SettlementConfig(BaseModel):
    """Settlement gateway connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    transfer_path: str
    confirm_path: str
    balance_path: str
    funding_address: str | None = None
    timeout_seconds: float


class RewardsConfig(BaseModel):
    """Creator rewards source connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    rewards_path: str
    claim_path: str
    timeout_seconds: float


class Settings(BaseModel):
    """Root configuration container."""

    model_config = ConfigDict(extra="forbid")
    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    database: DatabaseConfig
    request: RequestConfig
    admin: AdminConfig
    limits: LimitsConfig
    judge: JudgeConfig
    task_generator: TaskGeneratorConfig | None = None
    budget_advisor: BudgetAdvisorConfig | None = None
    settlement: SettlementConfig
    rewards: RewardsConfig | None = None


def get_config_path() -> Path:
    """Resolve configuration path from CONFIG_PATH, else ./config.yaml."""
    env_path = os.environ.get("CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return Path.cwd() / "config.yaml"


def load_settings(config_path: Path) -> Settings:
    """Parse and validate a YAML configuration file."""
    raw = yaml.safe_load(config_path.read_text())
    if not isinstance(raw, dict):
        msg = f"Invalid config file: {config_path}"
        raise ValueError(msg)
    return Settings(**raw)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process."""
    return load_settings(get_config_path())


def clear_settings_cache() -> None:
    """Drop cached settings. Used in testing."""
    get_settings.cache_clear()


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: (REDACTION_MARKER if key in _SECRET_FIELDS and item is not None else _redact(item))
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


def get_safe_config() -> dict[str, Any]:
    """Return redacted config for logs/diagnostics."""
    return _redact(get_settings().model_dump(mode="json"))

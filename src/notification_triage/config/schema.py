"""Pydantic models for configuration schema."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendClassifierConfig(BaseModel):
    """Classification backend (response-envelope API) configuration."""

    base_url: str
    api_key: str | None = None
    classify_path: str = "/api/v1/classify"
    health_path: str = "/api/v1/health"

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate the backend URL scheme."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Backend base_url must start with http:// or https://")
        return v.rstrip("/")


class CompletionClassifierConfig(BaseModel):
    """OpenAI-compatible chat-completions classifier configuration."""

    base_url: str = "https://api.openai.com"
    api_key: str
    model: str = "gpt-4o-mini"
    cleanup_model: str = "gpt-4o-mini"
    max_tokens: int = Field(5, ge=1, le=4096)
    cleanup_max_tokens: int = Field(2, ge=1, le=64)
    temperature: float = Field(0.0, ge=0.0, le=2.0)
    max_cleanup_attempts: int = Field(3, ge=1, le=10)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate the completions URL scheme."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Completion base_url must start with http:// or https://")
        return v.rstrip("/")


class ClassifierConfig(BaseModel):
    """Classifier provider configuration."""

    provider: Literal["backend", "completion", "none"] = "none"
    backend: BackendClassifierConfig | None = None
    completion: CompletionClassifierConfig | None = None
    timeout: float = Field(30.0, gt=0, le=300, description="Per-attempt timeout in seconds")


class RetryConfig(BaseModel):
    """Retry configuration for classifier calls."""

    max_retries: int = Field(3, ge=1, le=10)
    base_delay: float = Field(1.0, ge=0.0, le=60.0, description="Delay after the first failure")


class SlackConfig(BaseModel):
    """Slack direct-alert configuration."""

    bot_token: str

    @field_validator("bot_token")
    @classmethod
    def validate_bot_token(cls, v: str) -> str:
        """Validate Slack bot token format."""
        if not v.startswith("xoxb-"):
            raise ValueError("Bot token must start with xoxb-")
        return v


class DeliveryConfig(BaseModel):
    """Delivery adapters configuration."""

    slack: SlackConfig | None = None
    feed_max_entries: int = Field(500, ge=1, le=100_000, description="Feed entries kept per user")


class FileLoggingConfig(BaseModel):
    """File logging configuration."""

    enabled: bool = False
    path: Path = Path("/var/log/notification-triage/triage.log")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "json"
    file: FileLoggingConfig = FileLoggingConfig()


class RuntimeConfig(BaseModel):
    """Runtime configuration."""

    max_concurrent: int = Field(5, ge=1, le=100, description="Max concurrent message pipelines")
    shutdown_timeout: float = Field(
        30.0, ge=0, le=600, description="Seconds to drain in-flight pipelines on stop"
    )


class TriageConfig(BaseSettings):
    """Root configuration for the notification triage engine."""

    classifier: ClassifierConfig = ClassifierConfig()
    retry: RetryConfig = RetryConfig()
    delivery: DeliveryConfig = DeliveryConfig()
    logging: LoggingConfig = LoggingConfig()
    runtime: RuntimeConfig = RuntimeConfig()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
    )

"""
Configuration settings for the coach agent.
Uses pydantic-settings for type-safe environment variable management.
"""
from dataclasses import dataclass
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App Info
    app_name: str = "Coach Agent API"
    app_version: str = "1.0.0"
    git_commit: Optional[str] = None  # Git commit hash from environment
    build_date: Optional[str] = None  # Build timestamp from environment
    debug: bool = False

    # Model endpoint (any OpenAI-compatible chat-completions server)
    model_base_url: Optional[str] = None
    model_api_key: Optional[str] = None
    primary_model: str = "gpt-4o"
    # Falls back to primary_model when unset
    fallback_model: Optional[str] = None
    model_temperature: float = 0.25
    delegate_temperature: float = 0.3
    model_request_timeout_seconds: float = 120.0

    # Remote backend that owns the user's records
    backend_base_url: str = "http://localhost:8787"
    backend_token: Optional[str] = None
    backend_request_timeout_seconds: float = 30.0

    # Agent loop
    model_attempts_per_candidate: int = 3
    model_backoff_ms: int = 600
    commit_max_polls: int = 20
    commit_poll_interval_ms: int = 1000
    max_tool_rounds: int = 6

    default_role: str = "trainer"
    writeback_mode: str = "remote"

    # CORS - comma-separated list in environment variable
    # Example: CORS_ORIGINS="http://localhost:8081,http://localhost:19006"
    cors_origins_str: str = Field(
        default="http://localhost:8081,http://localhost:19006",
        validation_alias="CORS_ORIGINS"
    )

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def candidate_models(self) -> List[str]:
        """Primary then fallback, blanks dropped and duplicates collapsed."""
        return unique_models([self.primary_model, self.fallback_model or self.primary_model])

    # Pydantic v2 settings config
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars so unexpected keys don't crash
    )


def unique_models(models: List[Optional[str]]) -> List[str]:
    out: List[str] = []
    for m in models:
        name = (m or "").strip()
        if name and name not in out:
            out.append(name)
    return out


@dataclass(frozen=True)
class AgentLoopConfig:
    """Retry and iteration budgets handed to the gateway, commit client and orchestrator."""

    model_attempts_per_candidate: int = 3
    model_backoff_ms: int = 600
    commit_max_polls: int = 20
    commit_poll_interval_ms: int = 1000
    max_tool_rounds: int = 6

    def __post_init__(self):
        for name in ("model_attempts_per_candidate", "commit_max_polls", "max_tool_rounds"):
            if int(getattr(self, name)) < 1:
                raise ConfigurationError(f"{name} must be >= 1")
        for name in ("model_backoff_ms", "commit_poll_interval_ms"):
            if int(getattr(self, name)) < 0:
                raise ConfigurationError(f"{name} must be >= 0")

    @classmethod
    def from_settings(cls, s: Settings) -> "AgentLoopConfig":
        return cls(
            model_attempts_per_candidate=s.model_attempts_per_candidate,
            model_backoff_ms=s.model_backoff_ms,
            commit_max_polls=s.commit_max_polls,
            commit_poll_interval_ms=s.commit_poll_interval_ms,
            max_tool_rounds=s.max_tool_rounds,
        )


# Global settings instance
settings = Settings()

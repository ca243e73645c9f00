"""Configuration models for the AI engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChunkingConfig(BaseModel):
    """Configures boundary-aware sliding-window chunking."""

    max_tokens: int = Field(default=256, ge=1)
    overlap_tokens: int = Field(default=32, ge=0)

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingConfig":
        if self.overlap_tokens >= self.max_tokens:
            raise ValueError("overlap_tokens must be less than max_tokens")
        return self


class RetrievalConfig(BaseModel):
    """Configures vector retrieval and context formatting."""

    top_k: int = Field(default=10, ge=1)
    similarity_threshold: float = Field(default=0.0, ge=-1.0, le=1.0)
    max_context_chars: int = Field(default=8000, ge=200)
    timeout_seconds: float = Field(default=10.0, gt=0.0)


class AgentConfig(BaseModel):
    """Configures the tool-calling loop."""

    max_iterations: int = Field(default=5, ge=1)
    direct_action_max_iterations: int = Field(default=3, ge=1)
    timeout_seconds: float = Field(default=60.0, gt=0.0)
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)


class SessionConfig(BaseModel):
    """Configures conversation retention."""

    ttl_seconds: float = Field(default=3600.0, gt=0.0)
    max_stored_messages: int = Field(default=40, ge=2)
    prompt_window: int = Field(default=6, ge=0)


class SyncConfig(BaseModel):
    """Configures the data sync service and its scheduler."""

    interval_seconds: float = Field(default=900.0, gt=0.0)
    organizations: list[str] = Field(default_factory=list)
    embed_batch_size: int = Field(default=10, ge=1)
    scheduler_enabled: bool = False


class ServiceConfig(BaseModel):
    """Connection settings for one downstream microservice."""

    base_url: str
    transport: Literal["http"] = "http"
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    read_retries: int = Field(default=2, ge=0, le=5)


def _default_services() -> dict[str, ServiceConfig]:
    return {
        "auth": ServiceConfig(base_url="http://localhost:3001"),
        "workforce": ServiceConfig(base_url="http://localhost:3002"),
        "projects": ServiceConfig(base_url="http://localhost:3003"),
        "clients": ServiceConfig(base_url="http://localhost:3004"),
        "knowledge": ServiceConfig(base_url="http://localhost:3005"),
        "communication": ServiceConfig(base_url="http://localhost:3006"),
        "notification": ServiceConfig(base_url="http://localhost:3008"),
    }


class Settings(BaseSettings):
    """Environment-backed process settings."""

    model_config = SettingsConfigDict(
        env_prefix="ai_engine_",
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    environment: Literal["dev", "test", "prod"] = "dev"
    log_level: str = "INFO"

    openai_api_key: str | None = None
    chat_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = Field(default=256, ge=8)
    vector_backend: Literal["memory", "faiss"] = "memory"
    answer_temperature: float = Field(default=0.3, ge=0.0, le=2.0)

    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    services: dict[str, ServiceConfig] = Field(default_factory=_default_services)

    @property
    def llm_configured(self) -> bool:
        return bool(self.openai_api_key)


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: dict[str, object] | None = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()

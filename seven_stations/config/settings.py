"""Application settings using Pydantic."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from seven_stations.models.compliance import DEFAULT_PRINCIPLES, ConstitutionalPrinciple


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Ollama LLM Configuration
    llm_ollama_base_url: str = "http://localhost:11434"
    llm_model_name: str = "gpt-oss:20b"
    llm_temperature: float = 0.0
    llm_request_timeout: int = 120
    llm_num_ctx: int = 8192

    # Generation bounds
    generation_timeout_seconds: float = Field(default=60.0, gt=0)
    cache_ttl_seconds: int = Field(default=1800, ge=0)
    prompt_token_budget: int = Field(default=6000, ge=256)

    # Compliance
    compliance_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    compliance_principles: list[ConstitutionalPrinciple] = Field(
        default_factory=lambda: [p.model_copy() for p in DEFAULT_PRINCIPLES]
    )

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

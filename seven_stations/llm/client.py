"""Ollama LLM client configuration and the default text generator."""

from functools import lru_cache
from typing import Any, Mapping

import structlog
from langchain_core.output_parsers import StrOutputParser
from langchain_ollama import OllamaLLM
from pydantic_settings import BaseSettings, SettingsConfigDict

from .generation import GenerationError

logger = structlog.get_logger(__name__)

# HTTP statuses worth retrying
TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class LLMSettings(BaseSettings):
    """LLM configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    ollama_base_url: str = "http://localhost:11434"
    model_name: str = "gpt-oss:20b"
    temperature: float = 0.0
    request_timeout: int = 120
    num_ctx: int = 8192
    num_predict: int = 2048  # Max tokens to generate


@lru_cache
def get_llm_settings() -> LLMSettings:
    """Get cached LLM settings."""
    return LLMSettings()


def create_llm_client(
    settings: LLMSettings | None = None,
    **overrides: Any,
) -> OllamaLLM:
    """Create configured Ollama LLM client.

    Args:
        settings: Optional custom settings. Uses defaults if not provided.
        **overrides: Per-call model parameters (e.g., temperature).

    Returns:
        Configured OllamaLLM instance.
    """
    settings = settings or get_llm_settings()

    return OllamaLLM(
        model=overrides.get("model", settings.model_name),
        base_url=settings.ollama_base_url,
        temperature=overrides.get("temperature", settings.temperature),
        timeout=settings.request_timeout,
        num_ctx=settings.num_ctx,
        num_predict=overrides.get("num_predict", settings.num_predict),
    )


def is_transient_error(error: Exception) -> bool:
    """Classify a client exception as retryable or not."""
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status in TRANSIENT_STATUS_CODES
    # httpx transport errors do not derive from the builtin ones
    name = type(error).__name__
    return name in {"ConnectError", "ReadTimeout", "ConnectTimeout", "RemoteProtocolError"}


class OllamaGenerator:
    """``TextGenerator`` backed by a local Ollama model through LangChain."""

    def __init__(self, settings: LLMSettings | None = None):
        self.settings = settings or get_llm_settings()

    @property
    def model_name(self) -> str:
        return self.settings.model_name

    def generate(self, prompt: str, params: Mapping[str, Any]) -> str:
        """Generate text for a fully rendered prompt.

        Args:
            prompt: Rendered prompt text.
            params: Model parameters; ``temperature`` and ``num_predict`` are
                forwarded, other keys (station, task) are ignored.

        Returns:
            Model response text.

        Raises:
            GenerationError: With ``transient`` set for retryable failures.
        """
        overrides = {k: params[k] for k in ("temperature", "num_predict") if k in params}
        chain = create_llm_client(self.settings, **overrides) | StrOutputParser()

        logger.debug(
            "ollama_generate",
            model=self.settings.model_name,
            task=params.get("task"),
            prompt_length=len(prompt),
        )

        try:
            response = chain.invoke(prompt)
        except Exception as e:
            transient = is_transient_error(e)
            logger.warning("ollama_generate_failed", error=str(e), transient=transient)
            raise GenerationError(f"Ollama call failed: {e}", transient=transient) from e

        if not response or not response.strip():
            raise GenerationError(
                f"Model {self.settings.model_name} returned an empty response",
                transient=True,
            )
        return response

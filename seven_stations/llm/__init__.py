"""Text generation access for the stations."""

from .client import LLMSettings, OllamaGenerator, create_llm_client
from .generation import (
    CacheBackend,
    GenerationError,
    GenerationGateway,
    GenerationTimeout,
    InMemoryCache,
    TextGenerator,
    cache_key,
    truncate_to_token_budget,
)
from .parsing import ResponseParseError, parse_json_response

__all__ = [
    "LLMSettings",
    "OllamaGenerator",
    "create_llm_client",
    "TextGenerator",
    "CacheBackend",
    "InMemoryCache",
    "GenerationGateway",
    "GenerationError",
    "GenerationTimeout",
    "cache_key",
    "truncate_to_token_budget",
    "ResponseParseError",
    "parse_json_response",
]

"""Bounded access to an external text-generation capability.

Stations never talk to a model client directly. They go through a
``GenerationGateway`` which:
- enforces the caller-supplied timeout on every call
- memoizes identical (prompt, model, params) calls through an optional cache
- trims prompts to a token budget

The gateway performs no retries. Whether a failure is worth retrying is
preserved on the raised ``GenerationError`` for the caller of the pipeline.
"""

import hashlib
import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

import structlog
import tiktoken

logger = structlog.get_logger(__name__)

DEFAULT_ENCODING = "cl100k_base"


class GenerationError(Exception):
    """Failure of the external generation capability.

    Attributes:
        transient: True when retrying the same call may succeed.
    """

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


class GenerationTimeout(GenerationError):
    """A generation call exceeded its time bound."""

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Generation exceeded {timeout_seconds:.1f}s timeout", transient=True)
        self.timeout_seconds = timeout_seconds


@runtime_checkable
class TextGenerator(Protocol):
    """Opaque generative-text capability."""

    def generate(self, prompt: str, params: Mapping[str, Any]) -> str:
        ...


@runtime_checkable
class CacheBackend(Protocol):
    """Cache contract used to memoize generation calls."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    def invalidate(self, key: str) -> None:
        ...


class InMemoryCache:
    """Process-local TTL cache implementing ``CacheBackend``."""

    def __init__(self):
        self._entries: dict[str, tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= time.monotonic():
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        # ttl_seconds <= 0 means no expiry
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds > 0 else None
        with self._lock:
            self._entries[key] = (value, expires_at)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


def cache_key(prompt: str, model: str, params: Mapping[str, Any]) -> str:
    """Build a stable cache key for a generation call."""
    payload = json.dumps(
        {"prompt": prompt, "model": model, "params": dict(params)},
        sort_keys=True,
        default=str,
    )
    return "generation:" + hashlib.sha256(payload.encode("utf-8")).hexdigest()


def truncate_to_token_budget(
    text: str,
    max_tokens: int,
    encoding_name: str = DEFAULT_ENCODING,
) -> str:
    """Trim text so it fits within ``max_tokens``.

    Every token covers at least one byte, so text whose UTF-8 length is
    within the budget is returned without loading a tokenizer.
    """
    if len(text.encode("utf-8")) <= max_tokens:
        return text

    try:
        encoding = tiktoken.get_encoding(encoding_name)
    except Exception:
        logger.warning("tiktoken_encoding_fallback", requested=encoding_name)
        encoding = tiktoken.get_encoding(DEFAULT_ENCODING)

    tokens = encoding.encode(text)
    if len(tokens) <= max_tokens:
        return text

    logger.debug("prompt_truncated", tokens=len(tokens), budget=max_tokens)
    return encoding.decode(tokens[:max_tokens])


class GenerationGateway:
    """Per-run wrapper around a ``TextGenerator``.

    Calls run on one worker thread owned by the gateway, so the caller can
    stop waiting after ``timeout_seconds``. A generator call cannot be
    interrupted. A call that times out keeps running on that worker until
    the generator returns, and later calls on the same gateway queue behind
    it; a queued call that times out is cancelled before it starts. At most
    one abandoned call is therefore left running per gateway. ``close``
    releases the worker when the gateway is no longer needed.

    Args:
        generator: The external capability. None disables generation.
        timeout_seconds: Bound applied to every call, including time spent
            queued behind an abandoned call.
        cache: Optional cache; its absence changes only latency.
        model_name: Part of the cache key.
        cache_ttl_seconds: TTL passed to ``cache.set``.
        token_budget: Maximum prompt size in tokens.
    """

    def __init__(
        self,
        generator: Optional[TextGenerator],
        timeout_seconds: float,
        cache: Optional[CacheBackend] = None,
        model_name: str = "default",
        cache_ttl_seconds: int = 1800,
        token_budget: int = 6000,
    ):
        self.generator = generator
        self.timeout_seconds = timeout_seconds
        self.cache = cache
        self.model_name = model_name
        self.cache_ttl_seconds = cache_ttl_seconds
        self.token_budget = token_budget
        self.calls_made = 0
        self.cache_hits = 0
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.generator is not None

    def generate(self, prompt: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """Run one bounded generation call.

        Raises:
            GenerationError: If no generator is configured or the call fails.
            GenerationTimeout: If the call exceeds ``timeout_seconds``.
        """
        if self.generator is None:
            raise GenerationError("No text generator configured", transient=False)

        params = dict(params or {})
        prompt = truncate_to_token_budget(prompt, self.token_budget)
        key = cache_key(prompt, self.model_name, params)

        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                self.cache_hits += 1
                logger.debug("generation_cache_hit", task=params.get("task"))
                return cached

        response = self._call_with_timeout(prompt, params)
        self.calls_made += 1

        if self.cache is not None and response:
            self.cache.set(key, response, self.cache_ttl_seconds)

        return response

    def close(self) -> None:
        """Release the worker thread.

        Queued calls are cancelled. A call still running is left to finish
        in the background. The gateway starts a new worker if used again.
        """
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    def _worker(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="generation")
            return self._executor

    def _call_with_timeout(self, prompt: str, params: dict) -> str:
        future = self._worker().submit(self.generator.generate, prompt, params)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                "generation_timeout",
                task=params.get("task"),
                timeout_seconds=self.timeout_seconds,
            )
            raise GenerationTimeout(self.timeout_seconds) from None
        except GenerationError:
            raise
        except Exception as e:
            logger.warning("generation_failed", task=params.get("task"), error=str(e))
            raise GenerationError(f"Generation failed: {e}", transient=False) from e

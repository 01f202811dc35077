"""Unit tests for the generation gateway, cache, client and response parsing."""

import threading
import time

import pytest
from langchain_core.runnables import RunnableLambda

from seven_stations.llm import client as client_module
from seven_stations.llm import generation
from seven_stations.llm.client import LLMSettings, OllamaGenerator, is_transient_error
from seven_stations.llm.generation import (
    CacheBackend,
    GenerationError,
    GenerationGateway,
    GenerationTimeout,
    InMemoryCache,
    TextGenerator,
    cache_key,
    truncate_to_token_budget,
)
from seven_stations.llm.parsing import ResponseParseError, parse_json_response


class CountingGenerator:
    def __init__(self, response="ok", delay=0.0, error=None):
        self.response = response
        self.delay = delay
        self.error = error
        self.calls = 0

    def generate(self, prompt, params):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return f"{self.response}:{prompt}"


class TestGenerationGateway:
    """Tests for GenerationGateway."""

    def test_protocols(self):
        assert isinstance(CountingGenerator(), TextGenerator)
        assert isinstance(InMemoryCache(), CacheBackend)

    def test_disabled_without_generator(self):
        gateway = GenerationGateway(None, timeout_seconds=1.0)
        assert gateway.enabled is False
        with pytest.raises(GenerationError) as exc_info:
            gateway.generate("prompt")
        assert exc_info.value.transient is False

    def test_timeout_is_transient(self):
        gateway = GenerationGateway(CountingGenerator(delay=0.5), timeout_seconds=0.05)

        started = time.perf_counter()
        with pytest.raises(GenerationTimeout) as exc_info:
            gateway.generate("prompt", {"task": "slow"})

        assert exc_info.value.transient is True
        assert time.perf_counter() - started < 0.4

    def test_unexpected_errors_are_wrapped(self):
        gateway = GenerationGateway(CountingGenerator(error=ValueError("bad")), timeout_seconds=1.0)
        with pytest.raises(GenerationError) as exc_info:
            gateway.generate("prompt")
        assert exc_info.value.transient is False
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_generation_errors_keep_transient_flag(self):
        error = GenerationError("overloaded", transient=True)
        gateway = GenerationGateway(CountingGenerator(error=error), timeout_seconds=1.0)
        with pytest.raises(GenerationError) as exc_info:
            gateway.generate("prompt")
        assert exc_info.value is error

    def test_identical_calls_are_memoized(self):
        generator = CountingGenerator()
        gateway = GenerationGateway(generator, timeout_seconds=1.0, cache=InMemoryCache())

        first = gateway.generate("prompt", {"task": "a"})
        second = gateway.generate("prompt", {"task": "a"})

        assert first == second
        assert generator.calls == 1
        assert gateway.cache_hits == 1

    def test_different_params_are_not_shared(self):
        generator = CountingGenerator()
        gateway = GenerationGateway(generator, timeout_seconds=1.0, cache=InMemoryCache())

        gateway.generate("prompt", {"task": "a"})
        gateway.generate("prompt", {"task": "b"})

        assert generator.calls == 2

    def test_cache_changes_only_latency(self):
        cached = GenerationGateway(CountingGenerator(), timeout_seconds=1.0, cache=InMemoryCache())
        uncached = GenerationGateway(CountingGenerator(), timeout_seconds=1.0)
        assert cached.generate("p", {"task": "t"}) == uncached.generate("p", {"task": "t"})

    def test_calls_share_one_worker_thread(self):
        threads = []

        class Recording(CountingGenerator):
            def generate(self, prompt, params):
                threads.append(threading.get_ident())
                return super().generate(prompt, params)

        gateway = GenerationGateway(Recording(), timeout_seconds=1.0)
        gateway.generate("a")
        gateway.generate("b")
        gateway.close()

        assert len(threads) == 2
        assert len(set(threads)) == 1

    def test_timeouts_leave_at_most_one_call_running(self):
        generator = CountingGenerator(delay=0.5)
        gateway = GenerationGateway(generator, timeout_seconds=0.05)

        for _ in range(3):
            with pytest.raises(GenerationTimeout):
                gateway.generate("prompt", {"task": "slow"})
        gateway.close()

        # Calls queued behind the abandoned one were cancelled before starting
        assert generator.calls == 1

    def test_gateway_is_usable_after_close(self):
        gateway = GenerationGateway(CountingGenerator(), timeout_seconds=1.0)
        gateway.generate("a")
        gateway.close()
        gateway.close()

        assert gateway.generate("b") == "ok:b"
        gateway.close()


class TestInMemoryCache:
    """Tests for InMemoryCache."""

    def test_set_get_invalidate(self):
        cache = InMemoryCache()
        cache.set("k", "v", ttl_seconds=60)
        assert cache.get("k") == "v"
        cache.invalidate("k")
        assert cache.get("k") is None
        assert cache.hits == 1
        assert cache.misses == 1

    def test_entries_expire(self, monkeypatch):
        clock = {"now": 1000.0}
        monkeypatch.setattr(generation.time, "monotonic", lambda: clock["now"])
        cache = InMemoryCache()
        cache.set("k", "v", ttl_seconds=10)

        clock["now"] = 1005.0
        assert cache.get("k") == "v"
        clock["now"] = 1011.0
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_zero_ttl_never_expires(self):
        cache = InMemoryCache()
        cache.set("k", "v", ttl_seconds=0)
        assert cache.get("k") == "v"


class TestHelpers:
    """Tests for cache keys and prompt budgets."""

    def test_cache_key_is_stable(self):
        assert cache_key("p", "m", {"a": 1, "b": 2}) == cache_key("p", "m", {"b": 2, "a": 1})
        assert cache_key("p", "m", {"a": 1}) != cache_key("p", "other", {"a": 1})

    def test_short_text_is_not_truncated(self):
        text = "A lonely astronaut discovers a signal."
        assert truncate_to_token_budget(text, 1000) is text


class TestParseJsonResponse:
    """Tests for parse_json_response."""

    def test_plain_json(self):
        assert parse_json_response('{"genre": "drama"}') == {"genre": "drama"}

    def test_code_block(self):
        response = 'Here you go:\n```json\n{"genre": "drama"}\n```'
        assert parse_json_response(response) == {"genre": "drama"}

    def test_trailing_comma(self):
        assert parse_json_response('{"themes": ["loss", "love",],}') == {"themes": ["loss", "love"]}

    def test_preamble_with_braces_in_strings(self):
        response = 'Thinking... {"thesis": "a {curly} idea", "n": 1} trailing'
        assert parse_json_response(response) == {"thesis": "a {curly} idea", "n": 1}

    @pytest.mark.parametrize("response", ["", "   ", "no json here", "[1, 2, 3]"])
    def test_unusable(self, response):
        with pytest.raises(ResponseParseError):
            parse_json_response(response)


class TestOllamaGenerator:
    """Tests for the Ollama adapter without a running server."""

    def test_generate_uses_chain(self, monkeypatch):
        monkeypatch.setattr(
            client_module,
            "create_llm_client",
            lambda settings, **overrides: RunnableLambda(lambda prompt: '{"ok": true}'),
        )
        generator = OllamaGenerator(LLMSettings(model_name="test-model"))

        assert generator.generate("prompt", {"task": "t"}) == '{"ok": true}'
        assert generator.model_name == "test-model"

    def test_empty_response_is_transient(self, monkeypatch):
        monkeypatch.setattr(
            client_module,
            "create_llm_client",
            lambda settings, **overrides: RunnableLambda(lambda prompt: "  "),
        )
        with pytest.raises(GenerationError) as exc_info:
            OllamaGenerator(LLMSettings()).generate("prompt", {})
        assert exc_info.value.transient is True

    def test_connection_failure_is_transient(self, monkeypatch):
        def refuse(prompt):
            raise ConnectionError("refused")

        monkeypatch.setattr(
            client_module,
            "create_llm_client",
            lambda settings, **overrides: RunnableLambda(refuse),
        )
        with pytest.raises(GenerationError) as exc_info:
            OllamaGenerator(LLMSettings()).generate("prompt", {})
        assert exc_info.value.transient is True

    def test_transient_classification(self):
        class HTTPError(Exception):
            def __init__(self, status_code):
                self.status_code = status_code

        assert is_transient_error(TimeoutError())
        assert is_transient_error(HTTPError(503))
        assert not is_transient_error(HTTPError(400))
        assert not is_transient_error(ValueError("bad"))

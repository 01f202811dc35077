"""Pytest configuration and fixtures."""

import json
import threading
import time

import pytest

from seven_stations.config.settings import Settings
from seven_stations.llm.generation import GenerationError


LOGLINE = "A lonely astronaut discovers a signal."


@pytest.fixture
def logline() -> str:
    """One-sentence story premise."""
    return LOGLINE


@pytest.fixture
def sample_screenplay() -> str:
    """Short screenplay excerpt with cues, scene headings and a resolved conflict."""
    return """
INT. RELAY STATION - NIGHT

Mara Voss monitors the array alone. The station hums in the dark.

MARA
Another night of silence.

A lonely astronaut, Mara intercepts a signal from the dark side of the moon.

INT. COMMAND DECK - NIGHT

Captain Reyes confronts Mara about the signal.

REYES
You should have reported it.

MARA
It was a warning, not a greeting.

Mara decodes the signal. The warning speaks of a storm.

EXT. MOON BASE - DAWN

Reyes betrays Mara and hides the key.

Mara finds the key in the dark.

Later, Mara forgives Reyes and the crew returns to Earth.
"""


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a short timeout and a prompt budget that never needs a tokenizer."""
    return Settings(
        generation_timeout_seconds=2.0,
        prompt_token_budget=1_000_000,
        compliance_threshold=0.7,
    )


class FakeGenerator:
    """Text generator returning canned JSON per station.

    Dispatches on ``params["station"]`` (or ``params["task"]`` for calls
    made outside a station) and records every call.
    """

    model_name = "fake-model"

    def __init__(self, responses: dict | None = None, default: str = "{}"):
        self.responses = responses or {}
        self.default = default
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def generate(self, prompt, params):
        with self._lock:
            self.calls.append(dict(params))
        key = params.get("station") or params.get("task")
        response = self.responses.get(key, self.default)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt, params)
        return response

    def stations_called(self) -> list[str]:
        return [c.get("station") for c in self.calls if c.get("station")]


class SlowGenerator(FakeGenerator):
    """Fake generator that sleeps before answering for selected stations."""

    def __init__(self, slow_stations: set[str], delay_seconds: float, **kwargs):
        super().__init__(**kwargs)
        self.slow_stations = slow_stations
        self.delay_seconds = delay_seconds

    def generate(self, prompt, params):
        if params.get("station") in self.slow_stations:
            time.sleep(self.delay_seconds)
        return super().generate(prompt, params)


@pytest.fixture
def fake_generator() -> FakeGenerator:
    """Generator answering every station with plausible JSON."""
    return FakeGenerator(responses={
        "S1": json.dumps({"entities": [{"name": "Signal", "kind": "object"}], "relations": []}),
        "S2": json.dumps({
            "genre": "science fiction",
            "confidence": 0.8,
            "thesis": "Isolation breaks when contact arrives.",
            "themes": ["isolation"],
        }),
        "S5": json.dumps({"motifs": [{"motif": "signal", "meaning": "hope", "confidence": 0.7}]}),
        "S7": json.dumps({"summary": "A focused premise; consider adding opposition."}),
    })


@pytest.fixture
def failing_generator_factory():
    """Build fake generators that raise for one station."""

    def factory(station: str, error: Exception | None = None) -> FakeGenerator:
        return FakeGenerator(responses={station: error or GenerationError("boom", transient=False)})

    return factory


@pytest.fixture
def slow_generator_factory():
    def factory(station: str, delay_seconds: float) -> SlowGenerator:
        return SlowGenerator({station}, delay_seconds)

    return factory


@pytest.fixture
def make_generator():
    """Build fake generators with custom responses."""
    return FakeGenerator

"""Unit tests for the pipeline orchestrator."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from seven_stations.llm.generation import GenerationError, GenerationTimeout, InMemoryCache
from seven_stations.models import STATION_ORDER, ConstitutionalCheck, PipelineInput, RunState
from seven_stations.pipeline import (
    InvalidInput,
    PipelineCancelled,
    PipelineOrchestrator,
    RunTracker,
    StationFailure,
    run_pipeline,
    validate_input,
)
from seven_stations.pipeline.stations import default_stations
from seven_stations.processing.compliance import ComplianceEvaluator


class FixedJudge:
    """Passes every principle with the same confidence."""

    def __init__(self, confidence):
        self.confidence = confidence

    def judge(self, principle, content):
        return ConstitutionalCheck(principle=principle, passed=True, confidence=self.confidence, explanation="fixed")


def recording_stations(log, on_analyzed=None):
    """Default stations that append their id to ``log`` when they start analyzing."""
    stations = []
    for station in default_stations():
        base = type(station)

        class Recording(base):
            def analyze(self, stage_input, gateway):
                log.append(self.station_id)
                result = super().analyze(stage_input, gateway)
                if on_analyzed is not None:
                    on_analyzed(self.station_id)
                return result

        stations.append(Recording())
    return stations


class TestValidateInput:
    """Tests for validate_input."""

    def test_accepts_string_mapping_and_model(self, logline):
        assert validate_input(logline).text == logline
        assert validate_input({"text": logline, "options": {"use_llm": False}}).options == {"use_llm": False}
        assert validate_input(PipelineInput(text=logline)).text == logline

    @pytest.mark.parametrize("raw_input", ["", "   \n", {"text": ""}, {"options": {}}, 42, None])
    def test_rejects_unusable_input(self, raw_input):
        with pytest.raises(InvalidInput):
            validate_input(raw_input)

    @pytest.mark.parametrize("options", [
        {"compliance_threshold": 1.5},
        {"compliance_threshold": -0.1},
        {"compliance_threshold": "strict"},
        {"timeout_seconds": "soon"},
        {"timeout_seconds": 0},
        {"timeout_seconds": float("inf")},
        {"use_llm": "maybe"},
    ])
    def test_rejects_unusable_options(self, logline, options):
        with pytest.raises(InvalidInput) as exc_info:
            validate_input({"text": logline, "options": options})
        assert list(options)[0] in str(exc_info.value)

    def test_options_are_returned_validated(self, logline):
        pipeline_input = validate_input(PipelineInput(text=logline, options={
            "timeout_seconds": "2.5",
            "use_llm": "false",
            "custom": "kept",
        }))
        assert pipeline_input.options == {"timeout_seconds": 2.5, "use_llm": False, "custom": "kept"}

    def test_explicit_none_means_default(self, logline, test_settings):
        result = PipelineOrchestrator(settings=test_settings).run(
            {"text": logline, "options": {"timeout_seconds": None, "compliance_threshold": None}}
        )
        assert result.state == RunState.COMPLETED


class TestRunTracker:
    """Tests for RunTracker."""

    def test_transitions_are_recorded(self):
        tracker = RunTracker()
        tracker.transition(RunState.VALIDATING)
        tracker.transition(RunState.RUNNING)

        assert tracker.state == RunState.RUNNING
        assert [s for s, _ in tracker.history] == [RunState.PENDING, RunState.VALIDATING, RunState.RUNNING]

    def test_run_ids_are_unique(self):
        assert RunTracker().run_id != RunTracker().run_id


class TestPipelineOrchestrator:
    """Tests for complete runs."""

    def test_logline_run(self, logline, test_settings):
        result = PipelineOrchestrator(settings=test_settings).run(logline)

        assert result.state == RunState.COMPLETED
        assert list(result.stations) == list(STATION_ORDER)
        assert result.final_report.startswith("# Script Analysis Report")
        assert result.final_report == result.stations["S7"].meta["report"]
        assert result.execution_time_ms >= 0
        assert result.compliance_flagged is False

    def test_total_confidence_is_mean(self, sample_screenplay, test_settings):
        result = PipelineOrchestrator(settings=test_settings).run(sample_screenplay)

        confidences = [r.confidence for r in result.stations.values()]
        assert result.total_confidence == pytest.approx(sum(confidences) / len(confidences))
        assert all(0.0 <= c <= 1.0 for c in confidences)

    def test_stations_see_only_earlier_results(self, logline, test_settings):
        seen = {}

        class Spy(type(default_stations()[3])):
            def analyze(self, stage_input, gateway):
                seen["S4"] = list(stage_input.previous_results)
                return super().analyze(stage_input, gateway)

        stations = list(default_stations())
        stations[3] = Spy()
        PipelineOrchestrator(settings=test_settings, stations=stations).run(logline)

        assert seen["S4"] == ["S1", "S2", "S3"]

    def test_wrong_station_order_rejected(self, test_settings):
        stations = list(default_stations())
        stations[0], stations[1] = stations[1], stations[0]
        with pytest.raises(ValueError):
            PipelineOrchestrator(settings=test_settings, stations=stations)

    def test_invalid_input_never_runs_stations(self, test_settings):
        log = []
        orchestrator = PipelineOrchestrator(settings=test_settings, stations=recording_stations(log))

        with pytest.raises(InvalidInput) as exc_info:
            orchestrator.run({"text": "  "})

        assert exc_info.value.state == RunState.FAILED
        assert exc_info.value.retryable is False
        assert log == []

    @pytest.mark.parametrize("options", [{"compliance_threshold": 1.5}, {"timeout_seconds": "soon"}])
    def test_unusable_option_fails_before_stations(self, logline, options, test_settings):
        log = []
        orchestrator = PipelineOrchestrator(settings=test_settings, stations=recording_stations(log))

        with pytest.raises(InvalidInput) as exc_info:
            orchestrator.run({"text": logline, "options": options})

        assert exc_info.value.state == RunState.FAILED
        assert exc_info.value.completed_stations == []
        assert log == []

    def test_run_pipeline_helper(self, logline, test_settings):
        result = run_pipeline(logline, settings=test_settings)
        assert result.state == RunState.COMPLETED


class TestModelBackedRuns:
    """Runs with a fake text generator."""

    def test_model_readings_are_used(self, logline, fake_generator, test_settings):
        result = PipelineOrchestrator(generator=fake_generator, settings=test_settings).run(logline)

        assert result.stations["S2"].meta["model_thesis"] == "Isolation breaks when contact arrives."
        assert result.stations["S5"].meta["symbolism"][0]["motif"] == "signal"
        assert "## Executive Summary" in result.final_report
        assert {"S1", "S2", "S5", "S7"} <= set(fake_generator.stations_called())

    def test_use_llm_option_skips_generator(self, logline, fake_generator, test_settings):
        orchestrator = PipelineOrchestrator(generator=fake_generator, settings=test_settings)
        orchestrator.run({"text": logline, "options": {"use_llm": False}})
        assert fake_generator.calls == []

    def test_unparseable_output_degrades(self, logline, make_generator, test_settings):
        baseline = PipelineOrchestrator(settings=test_settings).run(logline)
        degraded = PipelineOrchestrator(generator=make_generator(default="not json"), settings=test_settings).run(logline)

        expected = round(baseline.stations["S2"].confidence * 0.85, 4)
        assert degraded.stations["S2"].confidence == pytest.approx(expected, abs=1e-4)
        assert any(n.aspect == "genre framing" for n in degraded.stations["S2"].uncertainties)
        assert degraded.state == RunState.COMPLETED

    def test_cache_changes_only_latency(self, sample_screenplay, fake_generator, make_generator, test_settings):
        cached = PipelineOrchestrator(generator=fake_generator, cache=InMemoryCache(), settings=test_settings)
        uncached = PipelineOrchestrator(generator=make_generator(responses=fake_generator.responses), settings=test_settings)

        first = cached.run(sample_screenplay)
        second = cached.run(sample_screenplay)
        reference = uncached.run(sample_screenplay)

        assert first.final_report == second.final_report == reference.final_report
        assert len(fake_generator.calls) == 4

    def test_model_judge_option(self, logline, make_generator, test_settings):
        generator = make_generator(responses={"compliance": '{"decision": "YES", "confidence": 1.0}'})
        result = PipelineOrchestrator(generator=generator, settings=test_settings).run(
            {"text": logline, "options": {"model_judge": True}}
        )

        assert any(c.get("task") == "compliance" for c in generator.calls)
        assert result.report_metadata.compliance.overall_score == pytest.approx(1.0)


class TestFailures:
    """Failure, timeout and cancellation behavior."""

    def test_station_timeout_stops_the_run(self, logline, slow_generator_factory, test_settings):
        log = []
        orchestrator = PipelineOrchestrator(
            generator=slow_generator_factory("S2", 1.0),
            settings=test_settings,
            stations=recording_stations(log),
        )

        with pytest.raises(StationFailure) as exc_info:
            orchestrator.run({"text": logline, "options": {"timeout_seconds": 0.2}})

        error = exc_info.value
        assert error.station_id == "S2"
        assert isinstance(error.cause, GenerationTimeout)
        assert error.is_timeout
        assert error.state == RunState.FAILED
        assert error.completed_stations == ["S1"]
        assert log == ["S1", "S2"]

    def test_transient_error_is_retryable(self, logline, failing_generator_factory, test_settings):
        generator = failing_generator_factory("S1", GenerationError("overloaded", transient=True))

        with pytest.raises(StationFailure) as exc_info:
            PipelineOrchestrator(generator=generator, settings=test_settings).run(logline)

        assert exc_info.value.station_id == "S1"
        assert exc_info.value.retryable is True
        assert exc_info.value.completed_stations == []

    def test_permanent_error_is_not_retryable(self, logline, failing_generator_factory, test_settings):
        with pytest.raises(StationFailure) as exc_info:
            PipelineOrchestrator(generator=failing_generator_factory("S5"), settings=test_settings).run(logline)

        assert exc_info.value.retryable is False
        assert exc_info.value.completed_stations == ["S1", "S2", "S3", "S4"]

    def test_unexpected_station_error_is_wrapped(self, logline, test_settings):
        class Broken(type(default_stations()[2])):
            def analyze(self, stage_input, gateway):
                raise KeyError("boom")

        stations = list(default_stations())
        stations[2] = Broken()

        with pytest.raises(StationFailure) as exc_info:
            PipelineOrchestrator(settings=test_settings, stations=stations).run(logline)

        assert exc_info.value.station_id == "S3"
        assert isinstance(exc_info.value.cause, KeyError)

    def test_cancellation_between_stations(self, logline, test_settings):
        cancel = threading.Event()
        log = []

        def cancel_after(station_id):
            if station_id == "S3":
                cancel.set()

        orchestrator = PipelineOrchestrator(settings=test_settings, stations=recording_stations(log, cancel_after))

        with pytest.raises(PipelineCancelled) as exc_info:
            orchestrator.run(logline, cancel_event=cancel)

        assert exc_info.value.state == RunState.CANCELLED
        assert exc_info.value.completed_stations == ["S1", "S2", "S3"]
        assert log == ["S1", "S2", "S3"]

    def test_cancelled_before_start(self, logline, test_settings):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(PipelineCancelled) as exc_info:
            PipelineOrchestrator(settings=test_settings).run(logline, cancel_event=cancel)

        assert exc_info.value.completed_stations == []


class TestCompliance:
    """Compliance scoring of the final report."""

    def test_low_score_flags_but_delivers(self, logline, test_settings):
        evaluator = ComplianceEvaluator(judge=FixedJudge(0.4))
        result = PipelineOrchestrator(settings=test_settings, evaluator=evaluator).run(logline)

        assert result.state == RunState.COMPLETED
        assert result.final_report
        assert result.compliance_flagged
        flag = result.report_metadata.compliance_flag
        assert flag.score == pytest.approx(0.4)
        assert flag.threshold == 0.7
        assert flag.recommendations

    def test_threshold_option(self, logline, test_settings):
        evaluator = ComplianceEvaluator(judge=FixedJudge(0.4))
        result = PipelineOrchestrator(settings=test_settings, evaluator=evaluator).run(
            {"text": logline, "options": {"compliance_threshold": 0.3}}
        )

        assert result.compliance_flagged is False
        assert result.report_metadata.compliance.recommendations == []

    def test_empty_principles_score_one(self, logline, test_settings):
        evaluator = ComplianceEvaluator(principles=[])
        result = PipelineOrchestrator(settings=test_settings, evaluator=evaluator).run(logline)
        assert result.report_metadata.compliance.overall_score == 1.0


class TestConcurrency:
    """Concurrent runs on one orchestrator."""

    def test_runs_are_independent(self, logline, sample_screenplay, test_settings):
        orchestrator = PipelineOrchestrator(settings=test_settings)
        expected = {
            logline: orchestrator.run(logline).final_report,
            sample_screenplay: orchestrator.run(sample_screenplay).final_report,
        }
        texts = [logline, sample_screenplay] * 4

        with ThreadPoolExecutor(max_workers=4) as executor:
            reports = list(executor.map(lambda t: orchestrator.run(t).final_report, texts))

        assert reports == [expected[t] for t in texts]

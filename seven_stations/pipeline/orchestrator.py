"""Pipeline Orchestrator - runs the seven stations and scores the report.

Lifecycle of one run:

    pending -> validating -> running -> evaluating -> completed
                    |            |            |
                    +------------+------------+--> failed | cancelled

Stations run strictly in order S1 to S7. Each receives the text and a
read-only view of every earlier result. Any station failure ends the run
with ``StationFailure``; no partial result is ever returned. The
compliance score of the final report is attached as metadata and never
blocks delivery.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

import structlog
from pydantic import ValidationError

from seven_stations import __version__
from seven_stations.config.settings import Settings, get_settings
from seven_stations.llm.generation import CacheBackend, GenerationGateway, TextGenerator
from seven_stations.models import (
    STATION_ORDER,
    ComplianceFlag,
    OrchestrationResult,
    PipelineInput,
    ReportMetadata,
    RunOptions,
    RunState,
    StageInput,
    StageResult,
)
from seven_stations.pipeline.errors import InvalidInput, PipelineCancelled, PipelineError, StationFailure
from seven_stations.pipeline.stations import Station, default_stations
from seven_stations.processing.compliance import ComplianceEvaluator, ModelJudge

logger = structlog.get_logger(__name__)


@dataclass
class RunTracker:
    """State of a single run. Created fresh for every call to ``run``."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: RunState = RunState.PENDING
    history: list[tuple[RunState, datetime]] = field(default_factory=list)
    completed_stations: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.history.append((self.state, datetime.now()))

    def transition(self, state: RunState, **context: Any) -> None:
        logger.info(
            "run_state_transition",
            run_id=self.run_id,
            from_state=self.state.value,
            to_state=state.value,
            **context,
        )
        self.state = state
        self.history.append((state, datetime.now()))


def validate_input(raw_input: Any) -> PipelineInput:
    """Normalize a submission into a ``PipelineInput``.

    Accepts a bare string, a ``PipelineInput`` or a mapping with ``text``
    and optional ``options``. Recognized options are checked against
    ``RunOptions`` and returned in their validated form.

    Raises:
        InvalidInput: If the submission has no usable text or an option
            has an unusable value.
    """
    if isinstance(raw_input, PipelineInput):
        candidate = raw_input
    elif isinstance(raw_input, str):
        candidate = PipelineInput(text=raw_input)
    elif isinstance(raw_input, Mapping):
        try:
            candidate = PipelineInput.model_validate(dict(raw_input))
        except ValidationError as e:
            raise InvalidInput(f"Malformed submission: {e.error_count()} validation error(s)") from e
    else:
        raise InvalidInput(f"Unsupported submission type: {type(raw_input).__name__}")

    if not candidate.text.strip():
        raise InvalidInput("Submission text is empty")

    try:
        run_options = RunOptions.model_validate(candidate.options)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        raise InvalidInput(f"Invalid option value(s): {fields}") from e

    options = dict(candidate.options)
    options.update({name: getattr(run_options, name) for name in RunOptions.model_fields if name in options})
    return candidate.model_copy(update={"options": options})


def _option(options: Mapping[str, Any], name: str, default: float) -> float:
    """Read a validated numeric option. A missing or None value means ``default``."""
    value = options.get(name)
    return default if value is None else value


class PipelineOrchestrator:
    """Runs the fixed chain of seven stations.

    Args:
        generator: Optional text generator consulted by the stations.
        cache: Optional cache for generation calls.
        settings: Application settings; defaults to ``get_settings()``.
        evaluator: Compliance evaluator; built from settings when omitted.
        stations: Replacement station instances. Must be exactly S1 to S7
            in order.
    """

    def __init__(
        self,
        generator: Optional[TextGenerator] = None,
        cache: Optional[CacheBackend] = None,
        settings: Optional[Settings] = None,
        evaluator: Optional[ComplianceEvaluator] = None,
        stations: Optional[Iterable[Station]] = None,
    ):
        self.settings = settings or get_settings()
        self.generator = generator
        self.cache = cache
        self.evaluator = evaluator or ComplianceEvaluator(
            principles=list(self.settings.compliance_principles),
            threshold=self.settings.compliance_threshold,
        )
        self.stations: tuple[Station, ...] = tuple(stations) if stations is not None else default_stations()

        ids = tuple(s.station_id for s in self.stations)
        if ids != STATION_ORDER:
            raise ValueError(f"Stations must be {', '.join(STATION_ORDER)} in order, got {', '.join(ids)}")

    @property
    def model_name(self) -> str:
        return getattr(self.generator, "model_name", None) or self.settings.llm_model_name

    def run(
        self,
        raw_input: Any,
        cancel_event: Optional[threading.Event] = None,
    ) -> OrchestrationResult:
        """Run the pipeline on one submission.

        Args:
            raw_input: Text, ``PipelineInput`` or mapping with ``text``/``options``.
            cancel_event: Set to cancel cooperatively between stations.

        Returns:
            The complete OrchestrationResult.

        Raises:
            InvalidInput: If the submission has no usable text or an unusable option.
            StationFailure: If a station could not produce a result.
            PipelineCancelled: If ``cancel_event`` was set during the run.
        """
        tracker = RunTracker()
        pipeline_start = time.perf_counter()
        gateway = None

        try:
            tracker.transition(RunState.VALIDATING)
            pipeline_input = validate_input(raw_input)
            options = dict(pipeline_input.options)

            logger.info(
                "pipeline_start",
                run_id=tracker.run_id,
                text_length=len(pipeline_input.text),
                model_enabled=self.generator is not None,
            )

            gateway = GenerationGateway(
                generator=self.generator,
                timeout_seconds=_option(options, "timeout_seconds", self.settings.generation_timeout_seconds),
                cache=self.cache,
                model_name=self.model_name,
                cache_ttl_seconds=self.settings.cache_ttl_seconds,
                token_budget=self.settings.prompt_token_budget,
            )

            tracker.transition(RunState.RUNNING)
            results = self._run_stations(pipeline_input, options, gateway, tracker, cancel_event)

            if cancel_event is not None and cancel_event.is_set():
                raise PipelineCancelled(tracker.completed_stations)

            tracker.transition(RunState.EVALUATING)
            report = str(results["S7"].meta.get("report", ""))
            metadata = self._evaluate(report, options, gateway, tracker)

        except PipelineError as e:
            e.completed_stations = list(tracker.completed_stations)
            tracker.transition(e.state, error=str(e))
            raise
        finally:
            if gateway is not None:
                gateway.close()

        total_confidence = sum(r.confidence for r in results.values()) / len(results)
        execution_time_ms = int((time.perf_counter() - pipeline_start) * 1000)

        tracker.transition(RunState.COMPLETED)
        logger.info(
            "pipeline_complete",
            run_id=tracker.run_id,
            total_confidence=round(total_confidence, 4),
            execution_time_ms=execution_time_ms,
            generation_calls=gateway.calls_made,
            cache_hits=gateway.cache_hits,
        )

        return OrchestrationResult(
            state=RunState.COMPLETED,
            stations=results,
            final_report=report,
            total_confidence=min(1.0, max(0.0, total_confidence)),
            execution_time_ms=execution_time_ms,
            report_metadata=metadata,
        )

    def _run_stations(
        self,
        pipeline_input: PipelineInput,
        options: dict,
        gateway: GenerationGateway,
        tracker: RunTracker,
        cancel_event: Optional[threading.Event],
    ) -> dict[str, StageResult]:
        results: dict[str, StageResult] = {}

        for station in self.stations:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("pipeline_cancel_honored", run_id=tracker.run_id, before=station.station_id)
                raise PipelineCancelled(tracker.completed_stations)

            stage_input = StageInput(
                text=pipeline_input.text,
                previous_results=dict(results),
                options=options,
            )
            try:
                result = station.run(stage_input, gateway)
            except StationFailure:
                raise
            except Exception as e:
                logger.error("station_unexpected_error", station=station.station_id, error=str(e))
                raise StationFailure(station.station_id, e) from e

            if not isinstance(result, StageResult):
                raise StationFailure(
                    station.station_id,
                    TypeError(f"expected StageResult, got {type(result).__name__}"),
                )

            results[station.station_id] = result
            tracker.completed_stations.append(station.station_id)

        return results

    def _evaluate(
        self,
        report: str,
        options: dict,
        gateway: GenerationGateway,
        tracker: RunTracker,
    ) -> ReportMetadata:
        threshold = _option(options, "compliance_threshold", self.evaluator.threshold)

        evaluator = self.evaluator
        if options.get("model_judge") and gateway.enabled:
            evaluator = ComplianceEvaluator(
                principles=list(self.evaluator.principles),
                threshold=threshold,
                judge=ModelJudge(gateway, fallback=self.evaluator.judge),
            )

        compliance = evaluator.evaluate(report, threshold=threshold)

        flag = None
        if compliance.overall_score < threshold:
            flag = ComplianceFlag(
                score=compliance.overall_score,
                threshold=threshold,
                failed_principles=[c.principle.id for c in compliance.checks if not c.passed],
                recommendations=list(compliance.recommendations),
            )
            logger.warning(
                "compliance_flagged",
                run_id=tracker.run_id,
                score=round(compliance.overall_score, 4),
                threshold=threshold,
            )

        return ReportMetadata(
            pipeline_version=__version__,
            compliance=compliance,
            compliance_flag=flag,
        )


def run_pipeline(
    raw_input: Any,
    generator: Optional[TextGenerator] = None,
    cache: Optional[CacheBackend] = None,
    settings: Optional[Settings] = None,
    cancel_event: Optional[threading.Event] = None,
) -> OrchestrationResult:
    """Run the seven-station pipeline once.

    Convenience wrapper building a ``PipelineOrchestrator`` with default
    stations.
    """
    orchestrator = PipelineOrchestrator(generator=generator, cache=cache, settings=settings)
    return orchestrator.run(raw_input, cancel_event=cancel_event)

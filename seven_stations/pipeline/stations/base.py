"""Shared station contract.

Every station transforms ``(text, accumulated earlier results)`` into a
``StageResult``. Stations prefer degraded results over failure: sparse
evidence or unusable model output lowers confidence and adds an
uncertainty note. Only a problem that prevents any result raises
``StationFailure``.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Optional, TypeVar

import structlog
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, ValidationError

from seven_stations.config.prompts import SCRIPT_ANALYST_SYSTEM_PROMPT
from seven_stations.llm.generation import GenerationError, GenerationGateway
from seven_stations.llm.parsing import ResponseParseError, parse_json_response
from seven_stations.models import STATION_ORDER, StageInput, StageResult, UncertaintyNote
from seven_stations.pipeline.errors import StationFailure

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Confidence multiplier applied when model output could not be used
UNUSABLE_MODEL_OUTPUT_FACTOR = 0.85


class EmptyTextError(ValueError):
    """The station needs non-empty text."""

    pass


class MissingUpstreamResult(LookupError):
    """An earlier station's result is not in the accumulation."""

    pass


class Station(ABC):
    """One stage of the seven-station chain."""

    station_id: ClassVar[str]
    name: ClassVar[str]
    description: ClassVar[str]
    requires_text: ClassVar[bool] = True

    def run(
        self,
        stage_input: StageInput,
        gateway: Optional[GenerationGateway] = None,
    ) -> StageResult:
        """Run the station.

        Args:
            stage_input: Text and read-only earlier results.
            gateway: Optional bounded access to a text generator.

        Returns:
            The station's StageResult.

        Raises:
            StationFailure: If no result at all can be produced.
        """
        stage_start = time.perf_counter()
        logger.info("station_start", station=self.station_id, name=self.name)

        try:
            if self.requires_text and not stage_input.text.strip():
                raise EmptyTextError(f"{self.name} requires non-empty text")
            result = self.analyze(stage_input, gateway)
        except StationFailure:
            raise
        except (GenerationError, EmptyTextError, MissingUpstreamResult, ValidationError) as e:
            logger.error("station_failed", station=self.station_id, error=str(e))
            raise StationFailure(self.station_id, e) from e

        logger.info(
            "station_complete",
            station=self.station_id,
            confidence=result.confidence,
            uncertainties=len(result.uncertainties),
            alternates=len(result.alternates),
            duration_seconds=round(time.perf_counter() - stage_start, 3),
        )
        return result

    @abstractmethod
    def analyze(
        self,
        stage_input: StageInput,
        gateway: Optional[GenerationGateway],
    ) -> StageResult:
        """Produce the station result. Implemented by each station."""

    # -------------------------------------------------------------------------
    # Helpers for subclasses
    # -------------------------------------------------------------------------

    def require_previous(self, stage_input: StageInput, station_id: str) -> StageResult:
        """Fetch an earlier station's result.

        Raises:
            ValueError: If ``station_id`` does not run before this station.
            MissingUpstreamResult: If the result is absent.
        """
        if STATION_ORDER.index(station_id) >= STATION_ORDER.index(self.station_id):
            raise ValueError(f"{self.station_id} cannot depend on {station_id}")
        result = stage_input.get(station_id)
        if result is None:
            raise MissingUpstreamResult(f"{self.station_id} needs the result of {station_id}")
        return result

    def previous_meta(
        self,
        stage_input: StageInput,
        station_id: str,
        key: str,
        model: type[ModelT],
    ) -> ModelT:
        """Validate a typed payload stored in an earlier station's meta."""
        payload = self.require_previous(stage_input, station_id).meta.get(key)
        if payload is None:
            raise MissingUpstreamResult(f"{station_id} result carries no '{key}'")
        return model.model_validate(payload)

    def use_model(self, stage_input: StageInput, gateway: Optional[GenerationGateway]) -> bool:
        return gateway is not None and gateway.enabled and bool(stage_input.options.get("use_llm", True))

    def ask_model(
        self,
        gateway: GenerationGateway,
        user_prompt: str,
        variables: dict[str, Any],
        task: str,
        schema: Optional[type[BaseModel]] = None,
    ) -> tuple[Optional[dict], Optional[UncertaintyNote]]:
        """Ask the generator for a JSON object.

        Generation errors propagate (they are fatal to the station). Output
        that cannot be parsed, or that does not match ``schema``, is reported
        as an epistemic note instead.

        Args:
            gateway: Bounded access to the generator.
            user_prompt: Human message template.
            variables: Values for the prompt template.
            task: Task name, also used as the note's aspect.
            schema: Optional model the parsed object must satisfy. The
                validated object is returned as a plain dict.

        Returns:
            Tuple of (parsed payload or None, note explaining a failed parse or None).
        """
        prompt = ChatPromptTemplate.from_messages([
            ("system", SCRIPT_ANALYST_SYSTEM_PROMPT),
            ("human", user_prompt),
        ]).format(**variables)

        response = gateway.generate(prompt, {"station": self.station_id, "task": task})

        try:
            payload = parse_json_response(response)
        except ResponseParseError as e:
            logger.warning("station_model_output_unusable", station=self.station_id, task=task)
            return None, UncertaintyNote.epistemic(
                aspect=task,
                note=f"Model output for {task} was unusable ({e}); heuristic result kept",
            )

        if schema is None:
            return payload, None

        try:
            return schema.model_validate(payload).model_dump(), None
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) or "root" for err in e.errors())
            logger.warning(
                "station_model_output_malformed",
                station=self.station_id,
                task=task,
                fields=fields,
            )
            return None, UncertaintyNote.epistemic(
                aspect=task,
                note=f"Model output for {task} had malformed fields ({fields}); heuristic result kept",
            )

"""Contracts shared by every station.

A station receives a ``StageInput`` (the submitted text plus the results of
all earlier stations, in execution order) and returns a ``StageResult``.
"""

from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import UncertaintyKind


class UncertaintyNote(BaseModel):
    """A single annotated source of uncertainty in a station's findings.

    Aleatoric uncertainty is inherent to the material, so it is never
    reducible; ``reducible`` is forced to False for that kind.
    """

    model_config = ConfigDict(frozen=True)

    kind: UncertaintyKind = Field(..., description="epistemic or aleatoric")
    aspect: str = Field(..., description="What the note is about")
    note: str = Field(..., description="Human readable explanation")
    reducible: bool = Field(default=True, description="Whether more evidence would help")

    @model_validator(mode="before")
    @classmethod
    def _aleatoric_is_irreducible(cls, data: Any) -> Any:
        if isinstance(data, dict):
            kind = data.get("kind")
            if kind == UncertaintyKind.ALEATORIC or kind == UncertaintyKind.ALEATORIC.value:
                data = {**data, "reducible": False}
        return data

    @classmethod
    def epistemic(cls, aspect: str, note: str) -> "UncertaintyNote":
        return cls(kind=UncertaintyKind.EPISTEMIC, aspect=aspect, note=note, reducible=True)

    @classmethod
    def aleatoric(cls, aspect: str, note: str) -> "UncertaintyNote":
        return cls(kind=UncertaintyKind.ALEATORIC, aspect=aspect, note=note)


class Alternate(BaseModel):
    """A competing interpretation the station could not rule out."""

    model_config = ConfigDict(frozen=True)

    hypothesis: str
    confidence: float = Field(ge=0.0, le=1.0)


class StageResult(BaseModel):
    """Typed output of one station."""

    summary: str = Field(..., description="Short human readable summary")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Overall station confidence")
    uncertainties: list[UncertaintyNote] = Field(default_factory=list)
    alternates: list[Alternate] = Field(default_factory=list)
    meta: dict[str, Any] = Field(
        default_factory=dict,
        description="Station specific extension data, opaque to the orchestrator",
    )

    def degraded(self, factor: float, note: UncertaintyNote) -> "StageResult":
        """Return a copy with confidence scaled by ``factor`` and ``note`` appended."""
        factor = max(0.0, min(1.0, factor))
        return self.model_copy(
            update={
                "confidence": round(self.confidence * factor, 4),
                "uncertainties": [*self.uncertainties, note],
            }
        )


class RunOptions(BaseModel):
    """Per-run options recognized by the orchestrator.

    Unknown keys are allowed and passed through to the stations unchanged.
    """

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    use_llm: bool = True
    model_judge: bool = False
    timeout_seconds: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    compliance_threshold: float | None = Field(default=None, ge=0.0, le=1.0, allow_inf_nan=False)


class PipelineInput(BaseModel):
    """Normalized submission accepted by the orchestrator."""

    text: str
    options: dict[str, Any] = Field(default_factory=dict)


class StageInput(BaseModel):
    """Immutable input handed to a single station invocation."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    text: str
    previous_results: Mapping[str, StageResult] = Field(default_factory=dict)
    options: Mapping[str, Any] = Field(default_factory=dict)

    @field_validator("previous_results", "options", mode="after")
    @classmethod
    def _read_only(cls, value: Mapping) -> Mapping:
        if isinstance(value, MappingProxyType):
            return value
        return MappingProxyType(dict(value))

    def get(self, station_id: str) -> StageResult | None:
        """Look up an earlier station's result."""
        return self.previous_results.get(station_id)

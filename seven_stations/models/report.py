"""Models for the final orchestration result."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, SerializeAsAny

from .compliance import ConstitutionalResult
from .enums import STATION_ORDER, RunState
from .stage import StageResult


class ComplianceFlag(BaseModel):
    """Annotation on a completed run whose report scored below threshold.

    Not an error: the report is still delivered alongside this signal.
    """

    score: float = Field(ge=0.0, le=1.0)
    threshold: float = Field(ge=0.0, le=1.0)
    failed_principles: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class ReportMetadata(BaseModel):
    """Metadata associated with the final report text."""

    pipeline_version: str
    generated_at: datetime = Field(default_factory=datetime.now)
    compliance: ConstitutionalResult
    compliance_flag: Optional[ComplianceFlag] = Field(
        None, description="Set when the compliance score is below threshold"
    )


class OrchestrationResult(BaseModel):
    """Complete output of a successful pipeline run."""

    state: RunState = Field(default=RunState.COMPLETED)
    stations: dict[str, SerializeAsAny[StageResult]] = Field(
        ..., description="Station id to result, in execution order"
    )
    final_report: str = Field(..., description="Human readable report from station 7")
    total_confidence: float = Field(..., ge=0.0, le=1.0)
    execution_time_ms: int = Field(..., ge=0)
    report_metadata: ReportMetadata

    @property
    def compliance_flagged(self) -> bool:
        return self.report_metadata.compliance_flag is not None

    @property
    def station_confidences(self) -> dict[str, float]:
        return {sid: self.stations[sid].confidence for sid in STATION_ORDER if sid in self.stations}

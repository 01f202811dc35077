"""Models produced by the diagnostics and recommendation station."""

from typing import Optional

from pydantic import BaseModel, Field

from .enums import Priority, RecommendationCategory, Severity
from .stage import StageResult


class DiagnosticIssue(BaseModel):
    """A structural anomaly found in the conflict network."""

    id: str = Field(description="Unique within a run (e.g., 'issue_001')")
    type: str = Field(description="Anomaly type (e.g., 'isolated_node')")
    severity: Severity
    description: str
    location: Optional[str] = Field(None, description="Node or pair the issue is about")
    suggestions: list[str] = Field(default_factory=list)


class Recommendation(BaseModel):
    """A remediation action derived from one or more issues."""

    id: str = Field(description="Unique within a run (e.g., 'rec_001')")
    priority: Priority
    category: RecommendationCategory
    title: str
    description: str
    rationale: str
    impact: float = Field(ge=0.0, le=1.0)
    effort: float = Field(ge=0.0, le=1.0)
    timeline: str
    dependencies: list[str] = Field(
        default_factory=list,
        description="Ids of recommendations emitted earlier in the same run",
    )
    expected_outcome: str
    addresses: list[str] = Field(
        default_factory=list,
        description="Ids of the diagnostic issues this recommendation treats",
    )


class DiagnosticsResult(StageResult):
    """Station 6 output: a StageResult extended with the treatment model."""

    diagnostics: list[DiagnosticIssue] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    treatment_plan: list[str] = Field(
        default_factory=list,
        description="Recommendation ids in execution order",
    )

"""Pydantic data models for the analysis pipeline."""

from .enums import (
    STATION_ORDER,
    EntityKind,
    Priority,
    RecommendationCategory,
    RelationType,
    RunState,
    Severity,
    StationId,
    UncertaintyKind,
)
from .stage import Alternate, PipelineInput, RunOptions, StageInput, StageResult, UncertaintyNote
from .network import (
    ConflictNetwork,
    ConflictPair,
    ExtractedEntity,
    ExtractedRelation,
    MetricFlag,
    NetworkEdge,
    NetworkMetrics,
    NetworkNode,
)
from .diagnostics import DiagnosticIssue, DiagnosticsResult, Recommendation
from .compliance import (
    DEFAULT_PRINCIPLES,
    ConstitutionalCheck,
    ConstitutionalPrinciple,
    ConstitutionalResult,
)
from .extraction import PageContent, ScriptDocument
from .report import ComplianceFlag, OrchestrationResult, ReportMetadata
from .replies import EntitySupplement, ExecutiveSummary, FramingReading, SymbolismReading

__all__ = [
    # Enums
    "STATION_ORDER",
    "StationId",
    "UncertaintyKind",
    "Severity",
    "Priority",
    "RecommendationCategory",
    "EntityKind",
    "RelationType",
    "RunState",
    # Stage contracts
    "PipelineInput",
    "RunOptions",
    "StageInput",
    "StageResult",
    "UncertaintyNote",
    "Alternate",
    # Network
    "ExtractedEntity",
    "ExtractedRelation",
    "NetworkNode",
    "NetworkEdge",
    "ConflictPair",
    "ConflictNetwork",
    "MetricFlag",
    "NetworkMetrics",
    # Diagnostics
    "DiagnosticIssue",
    "Recommendation",
    "DiagnosticsResult",
    # Compliance
    "ConstitutionalPrinciple",
    "ConstitutionalCheck",
    "ConstitutionalResult",
    "DEFAULT_PRINCIPLES",
    # Documents
    "PageContent",
    "ScriptDocument",
    # Report
    "ComplianceFlag",
    "ReportMetadata",
    "OrchestrationResult",
    # Generator replies
    "EntitySupplement",
    "FramingReading",
    "SymbolismReading",
    "ExecutiveSummary",
]

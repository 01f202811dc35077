"""Enumeration types for the analysis models."""

from enum import Enum


class StationId(str, Enum):
    """Identifiers of the seven stations, in execution order."""

    S1 = "S1"
    S2 = "S2"
    S3 = "S3"
    S4 = "S4"
    S5 = "S5"
    S6 = "S6"
    S7 = "S7"


STATION_ORDER: tuple[str, ...] = tuple(s.value for s in StationId)


class UncertaintyKind(str, Enum):
    """Kind of uncertainty attached to a finding."""

    EPISTEMIC = "epistemic"  # reducible with more evidence
    ALEATORIC = "aleatoric"  # inherent to the material


class Severity(str, Enum):
    """Severity of a diagnostic issue."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


class Priority(str, Enum):
    """Priority of a recommendation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    IMMEDIATE = "immediate"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}

_PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.IMMEDIATE: 3,
}


class RecommendationCategory(str, Enum):
    """Closed set of areas a recommendation can address."""

    CHARACTER = "character"
    DIALOGUE = "dialogue"
    THEME = "theme"
    PLOT = "plot"
    STRUCTURE = "structure"
    PACING = "pacing"


class EntityKind(str, Enum):
    """Kinds of entities extracted from a script."""

    CHARACTER = "character"
    LOCATION = "location"
    OBJECT = "object"
    THEME = "theme"


class RelationType(str, Enum):
    """Type of a relation between two entities."""

    CONFLICT = "conflict"
    ALLIANCE = "alliance"
    ASSOCIATION = "association"


class RunState(str, Enum):
    """Lifecycle states of a single pipeline run."""

    PENDING = "pending"
    VALIDATING = "validating"
    RUNNING = "running"
    EVALUATING = "evaluating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

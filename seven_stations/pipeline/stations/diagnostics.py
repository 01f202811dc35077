"""Station 6: Diagnostics and recommendations.

Turns structural anomalies into a treatment model:

1. Anomalies are collected from the conflict network (isolated nodes,
   unresolved conflicts), from the metric flags of station 4 and from a
   flat tension curve in station 5. Connected components of the network are
   scanned in parallel; results are merged in component order.
2. Each anomaly becomes exactly one DiagnosticIssue. Severity:
   critical when story logic breaks, high when a main character's arc is
   weakened, medium for large metric deviations, low otherwise.
3. High and critical issues always get a recommendation. Medium and low
   issues get one only when it is worth it (impact >= 0.5, effort <= 0.5).
4. Recommendations depend on earlier recommendations in prerequisite
   categories; the treatment plan is a topological order of that graph.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

import networkx as nx
import structlog

from seven_stations.llm.generation import GenerationGateway
from seven_stations.models import (
    ConflictNetwork,
    DiagnosticIssue,
    DiagnosticsResult,
    EntityKind,
    MetricFlag,
    NetworkMetrics,
    Priority,
    Recommendation,
    RecommendationCategory,
    Severity,
    StageInput,
)
from seven_stations.processing.uncertainty import assess, to_confidence

from .base import Station
from .metrics import network_graph

logger = structlog.get_logger(__name__)

MAX_SCAN_WORKERS = 4

# Deviation at or above which a metric outlier counts as large
LARGE_DEVIATION = 0.5

# Worth-it gate for medium and low issues
MIN_IMPACT = 0.5
MAX_EFFORT = 0.5

SEVERITY_TO_PRIORITY = {
    Severity.CRITICAL: Priority.IMMEDIATE,
    Severity.HIGH: Priority.HIGH,
    Severity.MEDIUM: Priority.MEDIUM,
    Severity.LOW: Priority.LOW,
}

# A recommendation depends on earlier ones in these categories
CATEGORY_PREREQUISITES = {
    RecommendationCategory.STRUCTURE: frozenset(),
    RecommendationCategory.PLOT: frozenset({RecommendationCategory.STRUCTURE}),
    RecommendationCategory.CHARACTER: frozenset({RecommendationCategory.STRUCTURE, RecommendationCategory.PLOT}),
    RecommendationCategory.DIALOGUE: frozenset({RecommendationCategory.CHARACTER}),
    RecommendationCategory.PACING: frozenset({RecommendationCategory.STRUCTURE, RecommendationCategory.PLOT}),
    RecommendationCategory.THEME: frozenset({RecommendationCategory.PLOT, RecommendationCategory.CHARACTER}),
}

# Metric flags already reported item by item from the network itself
COVERED_METRICS = frozenset({"isolated_ratio", "resolution_rate"})


@dataclass
class Anomaly:
    """An anomaly before it is numbered as an issue."""

    type: str
    severity: Severity
    description: str
    location: Optional[str] = None
    label: str = ""
    support: float = 0.9
    context: dict = field(default_factory=dict)


# =============================================================================
# Anomaly Detection
# =============================================================================

def scan_component(component: list[str], network: ConflictNetwork) -> list[Anomaly]:
    """Anomalies local to one connected component of the network."""
    anomalies = []
    members = set(component)
    main = set(network.main_ids)

    if len(component) == 1:
        node = network.node(component[0])
        if node is not None and node.kind != EntityKind.THEME:
            if node.node_id == network.protagonist:
                severity = Severity.CRITICAL
            elif node.node_id in main:
                severity = Severity.HIGH
            else:
                severity = Severity.LOW
            anomalies.append(Anomaly(
                type="isolated_node",
                severity=severity,
                description=f"{node.label} ({node.kind.value}) has no relation to anything else in the story",
                location=node.node_id,
                label=node.label,
                context={"kind": node.kind.value},
            ))

    for pair in network.conflict_pairs:
        if pair.resolved or pair.source not in members:
            continue
        touches_main = bool({pair.source, pair.target} & main)
        source = network.node(pair.source)
        target = network.node(pair.target)
        label = f"{source.label if source else pair.source} / {target.label if target else pair.target}"
        anomalies.append(Anomaly(
            type="unresolved_conflict",
            severity=Severity.HIGH if touches_main else Severity.LOW,
            description=f"The conflict between {label} is never resolved",
            location=f"{pair.source}|{pair.target}",
            label=label,
            context={"main": touches_main},
        ))
    return anomalies


def flag_anomaly(flag: MetricFlag, network: ConflictNetwork) -> Optional[Anomaly]:
    """Anomaly for a metric flag, or None when the flag is covered elsewhere."""
    if flag.metric in COVERED_METRICS:
        return None
    large = flag.deviation >= LARGE_DEVIATION
    scaled = Severity.MEDIUM if large else Severity.LOW

    if flag.metric == "conflict_density" and flag.value == 0.0:
        return Anomaly(
            type="missing_conflict",
            severity=Severity.CRITICAL,
            description="No central conflict: no character is opposed by anyone or anything",
            support=0.5 + 0.5 * flag.deviation,
        )
    if flag.metric == "protagonist_centrality":
        node = network.node(flag.node_id) if flag.node_id else None
        return Anomaly(
            type="weak_protagonist",
            severity=Severity.HIGH,
            description=(
                f"The protagonist {node.label if node else flag.node_id} is peripheral to the network "
                f"(centrality {flag.value:.2f}, expected {flag.expected})"
            ),
            location=flag.node_id,
            label=node.label if node else (flag.node_id or ""),
            support=0.5 + 0.5 * flag.deviation,
        )
    if flag.metric == "components":
        return Anomaly(
            type="fragmented_structure",
            severity=scaled,
            description=f"The story splits into {int(flag.value)} disconnected groups",
            support=0.5 + 0.5 * flag.deviation,
        )
    if flag.metric == "conflict_density":
        return Anomaly(
            type="conflict_imbalance",
            severity=scaled,
            description=f"Conflict density {flag.value:.2f} is outside the expected {flag.expected}",
            support=0.5 + 0.5 * flag.deviation,
        )
    return Anomaly(
        type="metric_outlier",
        severity=scaled,
        description=f"{flag.metric} {flag.value:.2f} is outside the expected {flag.expected}",
        location=flag.node_id,
        support=0.5 + 0.5 * flag.deviation,
        context={"metric": flag.metric},
    )


def collect_anomalies(
    network: ConflictNetwork,
    metrics: NetworkMetrics,
    dynamics_flags: list[str],
) -> list[Anomaly]:
    """All anomalies in deterministic order."""
    graph = network_graph(network)
    order = {node.node_id: i for i, node in enumerate(network.nodes)}
    components = sorted(
        (sorted(c, key=order.get) for c in nx.connected_components(graph)),
        key=lambda c: order[c[0]],
    )

    anomalies: list[Anomaly] = []
    if components:
        with ThreadPoolExecutor(max_workers=min(MAX_SCAN_WORKERS, len(components))) as executor:
            for found in executor.map(lambda c: scan_component(c, network), components):
                anomalies.extend(found)

    for flag in metrics.flags:
        anomaly = flag_anomaly(flag, network)
        if anomaly is not None:
            anomalies.append(anomaly)

    if "flat_tension" in dynamics_flags:
        anomalies.append(Anomaly(
            type="flat_tension",
            severity=Severity.MEDIUM,
            description="Tension stays level across the story; there is no build or release",
            support=0.7,
        ))

    # Most severe first; stable within a severity
    return sorted(anomalies, key=lambda a: -a.severity.rank)


# =============================================================================
# Recommendation Synthesis
# =============================================================================

# type -> (category, impact, effort, title, description, expected outcome, suggestions)
TREATMENTS = {
    "isolated_node": (
        None, 0.6, 0.3,
        "Connect {label} to the story",
        "Give {label} a relation to the protagonist or to the central conflict, or cut it.",
        "Every element on the page earns its place in the story",
        ["Tie {label} to the protagonist's goal", "Remove {label} if it serves no purpose"],
    ),
    "unresolved_conflict": (
        RecommendationCategory.PLOT, 0.5, 0.5,
        "Resolve the conflict between {label}",
        "Add a scene that settles the conflict between {label}, or make the open ending deliberate.",
        "The central tension pays off",
        ["Add a confrontation or reconciliation beat", "Foreshadow the outcome earlier"],
    ),
    "missing_conflict": (
        RecommendationCategory.STRUCTURE, 0.9, 0.7,
        "Introduce a central conflict",
        "Give the protagonist an opposing force (a rival, an obstacle or an inner struggle) that drives the plot.",
        "A clear dramatic question carries the story",
        ["Name what stands in the protagonist's way", "Raise the cost of failure"],
    ),
    "weak_protagonist": (
        RecommendationCategory.CHARACTER, 0.8, 0.6,
        "Move {label} to the center of the story",
        "Let {label} drive more of the key relations and decisions.",
        "The protagonist's arc anchors the narrative",
        ["Give {label} an active choice in every act", "Route subplots through {label}"],
    ),
    "fragmented_structure": (
        RecommendationCategory.STRUCTURE, 0.6, 0.5,
        "Bridge the disconnected story groups",
        "Introduce characters or events that link the separate groups of the story.",
        "The story reads as one connected whole",
        ["Add a bridging character", "Merge or cut the weakest subplot"],
    ),
    "conflict_imbalance": (
        RecommendationCategory.PLOT, 0.5, 0.4,
        "Rebalance the amount of conflict",
        "Adjust how many relationships are antagonistic so the conflicts stay legible.",
        "Conflicts read clearly and build on each other",
        ["Consolidate parallel conflicts", "Add friction where relations are static"],
    ),
    "flat_tension": (
        RecommendationCategory.PACING, 0.7, 0.4,
        "Shape the tension curve",
        "Escalate stakes toward a climax and allow release afterwards.",
        "Rising action that builds to a climax",
        ["Add a reversal at the midpoint", "Tighten scenes before the climax"],
    ),
    "metric_outlier": (
        RecommendationCategory.STRUCTURE, 0.4, 0.4,
        "Review the flagged structural metric",
        "{description}",
        "Structural metrics back within their expected range",
        ["Revisit the relations behind the metric"],
    ),
}


def _timeline(effort: float) -> str:
    if effort <= 0.3:
        return "1-2 days"
    if effort <= 0.6:
        return "1 week"
    return "2-3 weeks"


def build_issue(anomaly: Anomaly, index: int) -> DiagnosticIssue:
    suggestions = TREATMENTS[anomaly.type][6]
    return DiagnosticIssue(
        id=f"issue_{index:03d}",
        type=anomaly.type,
        severity=anomaly.severity,
        description=anomaly.description,
        location=anomaly.location,
        suggestions=[s.format(label=anomaly.label) for s in suggestions],
    )


def propose(anomaly: Anomaly, issue: DiagnosticIssue) -> tuple[RecommendationCategory, float, float, dict]:
    """Category, impact, effort and text for treating one issue."""
    category, impact, effort, title, description, outcome, _ = TREATMENTS[anomaly.type]
    if category is None:
        is_character = anomaly.context.get("kind") == EntityKind.CHARACTER.value
        category = RecommendationCategory.CHARACTER if is_character else RecommendationCategory.PLOT
    if anomaly.type == "unresolved_conflict" and anomaly.context.get("main"):
        impact = 0.8
    text = {
        "title": title.format(label=anomaly.label),
        "description": description.format(label=anomaly.label, description=anomaly.description),
        "rationale": f"Treats {issue.id} ({issue.severity.value}): {issue.description}",
        "expected_outcome": outcome,
    }
    return category, impact, effort, text


def should_recommend(severity: Severity, impact: float, effort: float) -> bool:
    if severity in (Severity.HIGH, Severity.CRITICAL):
        return True
    return impact >= MIN_IMPACT and effort <= MAX_EFFORT


def synthesize(anomalies: list[Anomaly]) -> tuple[list[DiagnosticIssue], list[Recommendation]]:
    """Number issues and emit recommendations with dependencies."""
    issues = []
    recommendations: list[Recommendation] = []
    for anomaly in anomalies:
        issue = build_issue(anomaly, len(issues) + 1)
        issues.append(issue)

        category, impact, effort, text = propose(anomaly, issue)
        if not should_recommend(issue.severity, impact, effort):
            continue

        prerequisites = CATEGORY_PREREQUISITES[category]
        dependencies = [r.id for r in recommendations if r.category in prerequisites]
        recommendations.append(Recommendation(
            id=f"rec_{len(recommendations) + 1:03d}",
            priority=SEVERITY_TO_PRIORITY[issue.severity],
            category=category,
            impact=impact,
            effort=effort,
            timeline=_timeline(effort),
            dependencies=dependencies,
            addresses=[issue.id],
            **text,
        ))
    return issues, recommendations


def treatment_plan(recommendations: list[Recommendation]) -> list[str]:
    """Topological order of recommendations; priority then effort break ties."""
    graph = nx.DiGraph()
    index = {}
    for i, rec in enumerate(recommendations):
        graph.add_node(rec.id)
        index[rec.id] = (-rec.priority.rank, rec.effort, i)
    for rec in recommendations:
        for dependency in rec.dependencies:
            graph.add_edge(dependency, rec.id)
    return list(nx.lexicographical_topological_sort(graph, key=index.get))


# =============================================================================
# Station
# =============================================================================

class DiagnosticsStation(Station):
    """Station 6: diagnostics, recommendations and treatment plan."""

    station_id = "S6"
    name = "Diagnostics"
    description = "Diagnoses structural anomalies and plans their treatment"
    requires_text = False

    def analyze(self, stage_input: StageInput, gateway: Optional[GenerationGateway]) -> DiagnosticsResult:
        structure = self.require_previous(stage_input, "S3")
        measured = self.require_previous(stage_input, "S4")
        network = self.previous_meta(stage_input, "S3", "network", ConflictNetwork)
        metrics = self.previous_meta(stage_input, "S4", "metrics", NetworkMetrics)
        dynamics = self.require_previous(stage_input, "S5")

        anomalies = collect_anomalies(network, metrics, list(dynamics.meta.get("flags", [])))
        issues, recommendations = synthesize(anomalies)
        plan = treatment_plan(recommendations)

        evidence = [structure.confidence, measured.confidence] + [a.support for a in anomalies]
        estimate, notes = assess("diagnosis", evidence)
        confidence = to_confidence(estimate)

        by_severity = {s.value: sum(1 for i in issues if i.severity == s) for s in Severity}
        logger.info(
            "diagnostics_complete",
            issues=len(issues),
            recommendations=len(recommendations),
            **by_severity,
        )

        if issues:
            worst = issues[0]
            summary = (
                f"{len(issues)} issue(s), most severe {worst.severity.value}: {worst.description}. "
                f"{len(recommendations)} recommendation(s) planned."
            )
        else:
            summary = "No structural anomalies found."

        return DiagnosticsResult(
            summary=summary,
            confidence=confidence,
            uncertainties=notes,
            meta={
                "issue_counts": by_severity,
                "uncertainty": estimate.as_dict(),
            },
            diagnostics=issues,
            recommendations=recommendations,
            treatment_plan=plan,
        )

"""Station 4: Metrics - quantitative efficiency of the conflict network.

Reads only the network built by station 3. Every metric is computed on an
undirected networkx graph; metrics outside their expected band are raised
as flags for the diagnostics station.
"""

from typing import Optional

import networkx as nx
import structlog

from seven_stations.llm.generation import GenerationGateway
from seven_stations.models import (
    ConflictNetwork,
    MetricFlag,
    NetworkMetrics,
    RelationType,
    StageInput,
    StageResult,
)

from .base import Station

logger = structlog.get_logger(__name__)

# Below this upstream confidence, station 3's doubt carries into the metrics
LOW_UPSTREAM_CONFIDENCE = 0.5

# Contribution of each metric to the efficiency score
EFFICIENCY_WEIGHTS = {
    "global_efficiency": 0.3,
    "resolution_rate": 0.25,
    "protagonist_centrality": 0.25,
    "connectedness": 0.2,
}


def network_graph(network: ConflictNetwork) -> nx.Graph:
    """Undirected graph of the network; parallel relations sum their weights."""
    graph = nx.Graph()
    for node in network.nodes:
        graph.add_node(node.node_id, kind=node.kind.value, is_main=node.is_main)
    for edge in network.edges:
        if graph.has_edge(edge.source, edge.target):
            graph[edge.source][edge.target]["weight"] += edge.weight
            graph[edge.source][edge.target]["relations"].add(edge.relation.value)
        else:
            graph.add_edge(edge.source, edge.target, weight=edge.weight, relations={edge.relation.value})
    return graph


def band_flag(
    metric: str,
    value: float,
    low: float,
    high: float,
    node_id: Optional[str] = None,
) -> Optional[MetricFlag]:
    """Flag ``value`` when outside [low, high]; deviation is normalized to [0, 1]."""
    if low <= value <= high:
        return None
    if value < low:
        deviation = (low - value) / low if low > 0 else 1.0
    else:
        deviation = (value - high) / (1.0 - high) if high < 1.0 else 1.0
    return MetricFlag(
        metric=metric,
        value=round(value, 4),
        expected=f"{low:g}-{high:g}",
        deviation=round(min(1.0, deviation), 4),
        node_id=node_id,
    )


def compute_metrics(network: ConflictNetwork) -> tuple[NetworkMetrics, dict[str, float]]:
    """Compute metrics and flags for a conflict network.

    Returns:
        Tuple of (NetworkMetrics, betweenness centrality per node).
    """
    graph = network_graph(network)
    node_count = graph.number_of_nodes()
    if node_count == 0:
        return NetworkMetrics(), {}

    characters = network.character_ids
    conflict_edges = sum(1 for e in network.edges if e.relation == RelationType.CONFLICT)
    possible_pairs = len(characters) * (len(characters) - 1) / 2

    isolates = sorted(nx.isolates(graph))
    pairs = network.conflict_pairs
    resolution_rate = sum(1 for p in pairs if p.resolved) / len(pairs) if pairs else 1.0

    centrality = nx.degree_centrality(graph) if node_count > 1 else {n: 0.0 for n in graph}
    protagonist_centrality = centrality.get(network.protagonist, 0.0) if network.protagonist else 0.0
    global_efficiency = nx.global_efficiency(graph)
    isolated_ratio = len(isolates) / node_count

    values = {
        "global_efficiency": global_efficiency,
        "resolution_rate": resolution_rate,
        "protagonist_centrality": protagonist_centrality,
        "connectedness": 1.0 - isolated_ratio,
    }
    efficiency = sum(EFFICIENCY_WEIGHTS[k] * v for k, v in values.items())

    metrics = NetworkMetrics(
        node_count=node_count,
        edge_count=graph.number_of_edges(),
        density=round(nx.density(graph), 4),
        components=nx.number_connected_components(graph),
        global_efficiency=round(global_efficiency, 4),
        conflict_density=round(conflict_edges / possible_pairs, 4) if possible_pairs else float(conflict_edges > 0),
        resolution_rate=round(resolution_rate, 4),
        protagonist_centrality=round(protagonist_centrality, 4),
        isolated_ratio=round(isolated_ratio, 4),
        efficiency_score=round(min(1.0, max(0.0, efficiency)), 4),
    )
    metrics.flags = _flags(metrics, network, len(characters))

    betweenness = nx.betweenness_centrality(graph) if node_count > 2 else {n: 0.0 for n in graph}
    return metrics, betweenness


def _flags(metrics: NetworkMetrics, network: ConflictNetwork, character_count: int) -> list[MetricFlag]:
    flags = []

    if character_count >= 1 and not any(e.relation == RelationType.CONFLICT for e in network.edges):
        flags.append(MetricFlag(
            metric="conflict_density",
            value=0.0,
            expected="> 0",
            deviation=1.0,
        ))
    elif character_count >= 2:
        flags.append(band_flag("conflict_density", metrics.conflict_density, 0.1, 0.7))

    if network.conflict_pairs:
        flags.append(band_flag("resolution_rate", metrics.resolution_rate, 0.5, 1.0))

    flags.append(band_flag("isolated_ratio", metrics.isolated_ratio, 0.0, 0.2))

    if metrics.node_count >= 3 and network.protagonist:
        flags.append(band_flag(
            "protagonist_centrality", metrics.protagonist_centrality, 0.4, 1.0, node_id=network.protagonist,
        ))

    if metrics.components > 1:
        flags.append(MetricFlag(
            metric="components",
            value=float(metrics.components),
            expected="1",
            deviation=round(min(1.0, (metrics.components - 1) / max(1, metrics.node_count - 1)), 4),
        ))

    return [f for f in flags if f is not None]


class MetricsStation(Station):
    """Station 4: network metrics."""

    station_id = "S4"
    name = "Metrics"
    description = "Computes efficiency metrics over the conflict network"
    requires_text = False

    def analyze(self, stage_input: StageInput, gateway: Optional[GenerationGateway]) -> StageResult:
        structure = self.require_previous(stage_input, "S3")
        network = self.previous_meta(stage_input, "S3", "network", ConflictNetwork)

        metrics, betweenness = compute_metrics(network)

        # The arithmetic is exact; only a degenerate graph leaves room for doubt
        confidence = 1.0 if metrics.node_count >= 2 else 0.9
        if structure.confidence < LOW_UPSTREAM_CONFIDENCE:
            confidence *= structure.confidence

        characters = set(network.character_ids)
        central = sorted(
            (n for n in betweenness if n in characters),
            key=lambda n: (-betweenness[n], n),
        )[:3]

        logger.debug(
            "metrics_computed",
            density=metrics.density,
            efficiency=metrics.efficiency_score,
            flags=len(metrics.flags),
        )

        return StageResult(
            summary=(
                f"Efficiency {metrics.efficiency_score:.2f} over {metrics.node_count} node(s) "
                f"in {metrics.components} component(s); {len(metrics.flags)} metric flag(s)."
            ),
            confidence=round(confidence, 4),
            uncertainties=list(structure.uncertainties),
            meta={
                "metrics": metrics.model_dump(mode="json"),
                "betweenness": {n: round(v, 4) for n, v in sorted(betweenness.items())},
                "central_characters": central,
                "source_station": "S3",
            },
        )

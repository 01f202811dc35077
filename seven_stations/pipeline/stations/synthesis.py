"""Station 7: Final synthesis - the human readable report."""

from typing import Optional

import structlog

from seven_stations.config.prompts import EXECUTIVE_SUMMARY_PROMPT
from seven_stations.llm.generation import GenerationGateway
from seven_stations.models import (
    STATION_ORDER,
    ConflictNetwork,
    DiagnosticsResult,
    ExecutiveSummary,
    NetworkMetrics,
    StageInput,
    StageResult,
)
from seven_stations.processing.uncertainty import assess, to_confidence

from .base import UNUSABLE_MODEL_OUTPUT_FACTOR, Station

logger = structlog.get_logger(__name__)

# Stations whose confidence falls below this are called out in the report
LOW_CONFIDENCE = 0.5


def _diagnostics(result: StageResult) -> DiagnosticsResult:
    if isinstance(result, DiagnosticsResult):
        return result
    return DiagnosticsResult.model_validate(result.model_dump())


def render_report(
    earlier: dict[str, StageResult],
    network: ConflictNetwork,
    metrics: NetworkMetrics,
    diagnostics: DiagnosticsResult,
) -> str:
    """Markdown report over the results of stations 1 to 6."""
    framing = earlier["S2"].meta
    dynamics = earlier["S5"].meta
    lines = ["# Script Analysis Report", ""]

    # Overview
    lines += ["## Overview", ""]
    lines.append(f"- **Genre:** {framing.get('genre', 'unknown')}")
    lines.append(f"- **Thesis:** {framing.get('thesis', '')}")
    if framing.get("themes"):
        lines.append(f"- **Themes:** {', '.join(framing['themes'])}")
    if framing.get("tone"):
        lines.append(f"- **Tone:** {framing['tone']}")
    for alternate in earlier["S2"].alternates:
        lines.append(f"- *Alternative reading:* {alternate.hypothesis} (confidence {alternate.confidence:.2f})")
    lines.append("")

    # Cast and network
    lines += ["## Cast and Network", ""]
    protagonist = network.node(network.protagonist) if network.protagonist else None
    lines.append(f"- **Protagonist:** {protagonist.label if protagonist else 'undetermined'}")
    main = [n.label for n in network.nodes if n.is_main]
    if main:
        lines.append(f"- **Main characters:** {', '.join(main)}")
    lines.append(f"- **Nodes / edges:** {len(network.nodes)} / {len(network.edges)}")
    for pair in network.conflict_pairs:
        source = network.node(pair.source)
        target = network.node(pair.target)
        status = "resolved" if pair.resolved else "unresolved"
        lines.append(
            f"- Conflict: {source.label if source else pair.source} vs "
            f"{target.label if target else pair.target} ({status})"
        )
    lines.append("")

    # Metrics
    lines += ["## Structural Metrics", ""]
    lines.append("| Metric | Value |")
    lines.append("|---|---|")
    for name in (
        "efficiency_score", "density", "components", "global_efficiency",
        "conflict_density", "resolution_rate", "protagonist_centrality", "isolated_ratio",
    ):
        value = getattr(metrics, name)
        shown = f"{value:.2f}" if isinstance(value, float) else str(value)
        lines.append(f"| {name.replace('_', ' ')} | {shown} |")
    lines.append("")

    # Dynamics
    lines += ["## Dynamics", ""]
    curve = dynamics.get("tension_curve", [])
    lines.append(f"- **Arc shape:** {dynamics.get('arc_shape', 'undetermined')}")
    if curve:
        lines.append(f"- **Tension by beat:** {' / '.join(f'{v:.2f}' for v in curve)}")
    motifs = [m["motif"] for m in dynamics.get("motifs", [])]
    if motifs:
        lines.append(f"- **Motifs:** {', '.join(motifs)}")
    for pair in dynamics.get("ambivalent_relationships", []):
        lines.append(f"- Ambivalent relationship: {' and '.join(pair)}")
    lines.append(f"- **Dialogue ratio:** {dynamics.get('dialogue_ratio', 0.0):.2f}")
    lines.append("")

    # Diagnostics
    lines += ["## Diagnostics", ""]
    if diagnostics.diagnostics:
        for issue in diagnostics.diagnostics:
            lines.append(f"- **[{issue.severity.value}]** {issue.description} ({issue.id})")
    else:
        lines.append("- No structural anomalies were found.")
    lines.append("")

    # Treatment plan
    lines += ["## Recommendations", ""]
    recommendations = {r.id: r for r in diagnostics.recommendations}
    if diagnostics.treatment_plan:
        for step, rec_id in enumerate(diagnostics.treatment_plan, start=1):
            rec = recommendations[rec_id]
            lines.append(
                f"{step}. **{rec.title}** ({rec.priority.value} priority, {rec.category.value}, "
                f"{rec.timeline}): {rec.description}"
            )
    else:
        lines.append("We recommend a read-through for polish; no structural changes are needed.")
    lines.append("")

    # Confidence
    lines += ["## Confidence", ""]
    lines.append("| Station | Summary | Confidence |")
    lines.append("|---|---|---|")
    uncertain = []
    for station_id in STATION_ORDER:
        result = earlier.get(station_id)
        if result is None:
            continue
        lines.append(f"| {station_id} | {result.summary.replace('|', '/')[:120]} | {result.confidence:.2f} |")
        if result.confidence < LOW_CONFIDENCE:
            uncertain.append(station_id)
    lines.append("")
    if uncertain:
        lines.append(
            f"Findings from {', '.join(uncertain)} rest on limited evidence and remain uncertain; "
            "consider them hypotheses to check against the full script."
        )
    else:
        lines.append("Confidence is adequate across stations; findings remain interpretations, not verdicts.")

    return "\n".join(lines) + "\n"


def visualization(
    earlier: dict[str, StageResult],
    network: ConflictNetwork,
) -> dict:
    """Data for charting the network, tension curve and station confidence."""
    return {
        "nodes": [
            {"id": n.node_id, "label": n.label, "kind": n.kind.value, "is_main": n.is_main}
            for n in network.nodes
        ],
        "edges": [
            {"source": e.source, "target": e.target, "relation": e.relation.value, "weight": e.weight}
            for e in network.edges
        ],
        "tension_curve": list(earlier["S5"].meta.get("tension_curve", [])),
        "confidences": {sid: r.confidence for sid, r in earlier.items()},
    }


class SynthesisStation(Station):
    """Station 7: final report."""

    station_id = "S7"
    name = "Final synthesis"
    description = "Writes the human readable report and visualization data"
    requires_text = False

    def analyze(self, stage_input: StageInput, gateway: Optional[GenerationGateway]) -> StageResult:
        earlier = {sid: self.require_previous(stage_input, sid) for sid in STATION_ORDER[:6]}
        network = self.previous_meta(stage_input, "S3", "network", ConflictNetwork)
        metrics = self.previous_meta(stage_input, "S4", "metrics", NetworkMetrics)
        diagnostics = _diagnostics(earlier["S6"])

        report = render_report(earlier, network, metrics, diagnostics)

        estimate, notes = assess("synthesis", [r.confidence for r in earlier.values()])
        confidence = to_confidence(estimate)

        model_note = None
        if self.use_model(stage_input, gateway):
            payload, model_note = self.ask_model(
                gateway,
                EXECUTIVE_SUMMARY_PROMPT,
                {"report": report},
                task="executive summary",
                schema=ExecutiveSummary,
            )
            summary_text = str((payload or {}).get("summary") or "").strip()
            if summary_text:
                report = report.replace(
                    "# Script Analysis Report\n\n",
                    f"# Script Analysis Report\n\n## Executive Summary\n\n{summary_text}\n\n",
                    1,
                )

        logger.debug("report_rendered", characters=len(report))

        result = StageResult(
            summary=(
                f"Report covering {len(diagnostics.diagnostics)} issue(s) and "
                f"{len(diagnostics.treatment_plan)} planned step(s)."
            ),
            confidence=confidence,
            uncertainties=notes,
            meta={
                "report": report,
                "visualization": visualization(earlier, network),
            },
        )
        if model_note is not None:
            result = result.degraded(UNUSABLE_MODEL_OUTPUT_FACTOR, model_note)
        return result

"""Station 3: Structural construction - build the conflict network.

Nodes are the extracted characters, locations and objects plus one node
per detected theme. Relations observed in the same pair of entities are
folded into one weighted edge per relation type, so a pair that both
fights and helps carries two edges. Conflict edges become conflict pairs,
resolved when a later sentence mentions both sides next to a resolution
cue.
"""

from typing import Optional

import structlog

from seven_stations.extraction.text_utils import split_sentences, words
from seven_stations.llm.generation import GenerationGateway
from seven_stations.models import (
    ConflictNetwork,
    ConflictPair,
    EntityKind,
    ExtractedEntity,
    ExtractedRelation,
    NetworkEdge,
    NetworkNode,
    RelationType,
    StageInput,
    StageResult,
    UncertaintyNote,
)
from seven_stations.processing.lexicons import RESOLUTION_CUES
from seven_stations.processing.uncertainty import assess, to_confidence

from .base import Station
from .extraction import locate_mentions

logger = structlog.get_logger(__name__)

THEME_PREFIX = "theme:"

# A character is main when mentioned at least this share of the protagonist's mentions
MAIN_CHARACTER_SHARE = 0.5

MAX_EDGE_EVIDENCE = 3


def build_edges(relations: list[ExtractedRelation], node_ids: set[str]) -> list[NetworkEdge]:
    """Fold relations into one weighted edge per (pair, relation type)."""
    edges: dict[tuple[str, str, RelationType], NetworkEdge] = {}
    for relation in relations:
        if relation.source not in node_ids or relation.target not in node_ids:
            continue
        if relation.source == relation.target:
            continue
        source, target = sorted((relation.source, relation.target))
        key = (source, target, relation.relation)
        edge = edges.get(key)
        if edge is None:
            edges[key] = NetworkEdge(
                source=source,
                target=target,
                relation=relation.relation,
                weight=1.0,
                evidence=[relation.evidence] if relation.evidence else [],
            )
            continue
        edge.weight += 1.0
        if relation.evidence and len(edge.evidence) < MAX_EDGE_EVIDENCE and relation.evidence not in edge.evidence:
            edge.evidence.append(relation.evidence)
    return list(edges.values())


def choose_protagonist(
    nodes: list[NetworkNode],
    edges: list[NetworkEdge],
    suggested: Optional[str],
) -> Optional[str]:
    """Protagonist suggested by framing, else the most connected character."""
    characters = [n for n in nodes if n.kind == EntityKind.CHARACTER]
    if suggested and any(n.node_id == suggested for n in characters):
        return suggested
    if not characters:
        return None

    def degree(node_id: str) -> int:
        return sum(1 for e in edges if node_id in (e.source, e.target))

    return max(characters, key=lambda n: (n.mentions + degree(n.node_id), -nodes.index(n))).node_id


def find_conflict_pairs(
    edges: list[NetworkEdge],
    relations: list[ExtractedRelation],
    sentences: list[str],
    mention_sentences: dict[str, set[int]],
) -> list[ConflictPair]:
    """Conflict pairs with a resolved flag.

    A conflict is resolved when a sentence after its first occurrence
    mentions both sides and contains a resolution cue.
    """
    cue_sentences = {
        idx for idx, sentence in enumerate(sentences)
        if any(w in RESOLUTION_CUES for w in words(sentence))
    }
    pairs = []
    for edge in edges:
        if edge.relation != RelationType.CONFLICT:
            continue
        first = min(
            (r.sentence_index for r in relations
             if r.relation == RelationType.CONFLICT and {r.source, r.target} == {edge.source, edge.target}),
            default=0,
        )
        shared = mention_sentences.get(edge.source, set()) & mention_sentences.get(edge.target, set())
        resolving = sorted(idx for idx in shared & cue_sentences if idx > first)
        evidence = list(edge.evidence)
        if resolving:
            evidence.append(sentences[resolving[0]][:240])
        pairs.append(ConflictPair(
            source=edge.source,
            target=edge.target,
            resolved=bool(resolving),
            first_sentence=first,
            evidence=evidence,
        ))
    return pairs


class NetworkStation(Station):
    """Station 3: conflict network construction."""

    station_id = "S3"
    name = "Structural construction"
    description = "Builds the conflict network of characters, places, objects and themes"

    def analyze(self, stage_input: StageInput, gateway: Optional[GenerationGateway]) -> StageResult:
        extraction = self.require_previous(stage_input, "S1")
        framing = self.require_previous(stage_input, "S2")
        entities = [ExtractedEntity.model_validate(e) for e in extraction.meta.get("entities", [])]
        relations = [ExtractedRelation.model_validate(r) for r in extraction.meta.get("relations", [])]
        themes = list(framing.meta.get("themes", []))

        nodes = [
            NetworkNode(node_id=e.entity_id, label=e.name, kind=e.kind, mentions=e.mentions)
            for e in entities
        ]
        node_ids = {n.node_id for n in nodes}
        edges = build_edges(relations, node_ids)

        protagonist = choose_protagonist(nodes, edges, framing.meta.get("protagonist"))
        self._mark_main(nodes, protagonist)

        for theme in themes:
            theme_id = f"{THEME_PREFIX}{theme}"
            nodes.append(NetworkNode(node_id=theme_id, label=theme, kind=EntityKind.THEME, mentions=0))
            if protagonist:
                edges.append(NetworkEdge(source=protagonist, target=theme_id, relation=RelationType.ASSOCIATION, weight=0.5))

        sentences = split_sentences(stage_input.text)
        mentions = locate_mentions(sentences, entities)
        mention_sentences = {eid: {idx for idx, _ in hits} for eid, hits in mentions.items()}
        conflict_pairs = find_conflict_pairs(edges, relations, sentences, mention_sentences)

        network = ConflictNetwork(
            nodes=nodes,
            edges=edges,
            protagonist=protagonist,
            conflict_pairs=conflict_pairs,
        )

        # Observed edges support the structure in proportion to how often they recur;
        # characters seen only once are weak evidence of a role
        evidence = [min(1.0, 0.5 + 0.25 * e.weight) for e in edges if not e.target.startswith(THEME_PREFIX)]
        evidence += [1.0 if n.mentions >= 2 else 0.5 for n in nodes if n.kind == EntityKind.CHARACTER]
        estimate, notes = assess("network structure", evidence)
        confidence = to_confidence(estimate)

        if protagonist is None:
            notes.append(UncertaintyNote.epistemic(
                aspect="protagonist",
                note="No character could anchor the network; protagonist is undetermined",
            ))

        logger.debug(
            "network_built",
            nodes=len(nodes),
            edges=len(edges),
            conflicts=len(conflict_pairs),
            protagonist=protagonist,
        )

        unresolved = sum(1 for p in conflict_pairs if not p.resolved)
        return StageResult(
            summary=(
                f"Network of {len(nodes)} node(s) and {len(edges)} edge(s); "
                f"{len(conflict_pairs)} conflict(s), {unresolved} unresolved. "
                f"Protagonist: {network.node(protagonist).label if protagonist else 'none'}."
            ),
            confidence=confidence,
            uncertainties=notes,
            meta={
                "network": network.model_dump(mode="json"),
                "uncertainty": estimate.as_dict(),
            },
        )

    def _mark_main(self, nodes: list[NetworkNode], protagonist: Optional[str]) -> None:
        if protagonist is None:
            return
        lead = next(n for n in nodes if n.node_id == protagonist)
        floor = max(2, MAIN_CHARACTER_SHARE * lead.mentions)
        for node in nodes:
            if node.kind != EntityKind.CHARACTER:
                continue
            node.is_main = node.node_id == protagonist or node.mentions >= floor

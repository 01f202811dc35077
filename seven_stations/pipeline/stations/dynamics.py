"""Station 5: Deep analysis - tension, arcs, motifs and relationship dynamics."""

from collections import Counter
from typing import Optional

import structlog

from seven_stations.config.prompts import SYMBOLISM_USER_PROMPT
from seven_stations.extraction.text_utils import content_words, split_beats, split_sentences, words
from seven_stations.llm.generation import GenerationGateway
from seven_stations.models import (
    Alternate,
    ConflictNetwork,
    EntityKind,
    ExtractedEntity,
    RelationType,
    StageInput,
    StageResult,
    SymbolismReading,
    UncertaintyNote,
)
from seven_stations.processing.lexicons import SYMBOL_LEXICON, TENSION_WORDS
from seven_stations.processing.uncertainty import assess, to_confidence

from .base import UNUSABLE_MODEL_OUTPUT_FACTOR, Station
from .extraction import locate_mentions

logger = structlog.get_logger(__name__)

BEATS = 5

# Spread of raw tension density below which the curve is considered flat
FLAT_TENSION_SPREAD = 0.02

MIN_MOTIF_COUNT = 2
MAX_MOTIFS = 8


def tension_curve(beats: list[list[str]]) -> list[float]:
    """Share of tension words per beat."""
    curve = []
    for beat in beats:
        tokens = words(" ".join(beat))
        hits = sum(1 for t in tokens if t in TENSION_WORDS)
        curve.append(round(hits / len(tokens), 4) if tokens else 0.0)
    return curve


def classify_arc(curve: list[float]) -> str:
    """Shape of the tension curve.

    One of ``undetermined`` (fewer than three beats), ``flat``, ``rising``,
    ``falling``, ``classic`` (peak past the midpoint, then release) or
    ``episodic``.
    """
    if len(curve) < 3:
        return "undetermined"
    if max(curve) - min(curve) < FLAT_TENSION_SPREAD:
        return "flat"
    peak = curve.index(max(curve))
    last = len(curve) - 1
    if peak == last:
        return "rising"
    if peak == 0:
        return "falling"
    if peak >= last / 2 and curve[last] < curve[peak]:
        return "classic"
    return "episodic"


def find_motifs(text: str, character_words: set[str]) -> list[dict]:
    """Repeated content words and symbolic images, most frequent first."""
    counts = Counter(w for w in content_words(text) if w not in character_words)
    motifs = []
    for word, count in counts.most_common():
        symbolic = word in SYMBOL_LEXICON
        if count >= MIN_MOTIF_COUNT or symbolic:
            motifs.append({"motif": word, "count": count, "symbolic": symbolic})
    motifs.sort(key=lambda m: (-m["symbolic"], -m["count"], m["motif"]))
    return motifs[:MAX_MOTIFS]


def presence_pattern(beat_indices: list[int], beat_count: int) -> str:
    """How a character's appearances spread over the beats."""
    if not beat_indices:
        return "absent"
    if beat_count < 3:
        return "sustained"
    if len(set(beat_indices)) >= 0.6 * beat_count:
        return "sustained"
    if min(beat_indices) > beat_count / 2:
        return "late_entry"
    if max(beat_indices) < beat_count / 2:
        return "vanishes"
    return "intermittent"


def ambivalent_pairs(network: ConflictNetwork) -> list[tuple[str, str]]:
    """Pairs joined by both a conflict and an alliance edge."""
    kinds: dict[tuple[str, str], set[RelationType]] = {}
    for edge in network.edges:
        key = tuple(sorted((edge.source, edge.target)))
        kinds.setdefault(key, set()).add(edge.relation)
    return sorted(
        pair for pair, rels in kinds.items()
        if {RelationType.CONFLICT, RelationType.ALLIANCE} <= rels
    )


class DynamicsStation(Station):
    """Station 5: deep analysis of story dynamics."""

    station_id = "S5"
    name = "Deep analysis"
    description = "Tension curve, arc shape, motifs, presence and relationship dynamics"

    def analyze(self, stage_input: StageInput, gateway: Optional[GenerationGateway]) -> StageResult:
        extraction = self.require_previous(stage_input, "S1")
        network = self.previous_meta(stage_input, "S3", "network", ConflictNetwork)
        entities = [ExtractedEntity.model_validate(e) for e in extraction.meta.get("entities", [])]

        sentences = split_sentences(stage_input.text)
        beats = split_beats(sentences, BEATS)
        curve = tension_curve(beats)
        arc = classify_arc(curve)

        # Sentence index -> beat index
        beat_of = {}
        position = 0
        for beat_idx, beat in enumerate(beats):
            for _ in beat:
                beat_of[position] = beat_idx
                position += 1

        characters = [e for e in entities if e.kind == EntityKind.CHARACTER]
        mentions = locate_mentions(sentences, characters)
        presence = {}
        for entity in characters:
            beat_indices = sorted({beat_of[idx] for idx, _ in mentions.get(entity.entity_id, []) if idx in beat_of})
            presence[entity.entity_id] = {
                "beats": beat_indices,
                "pattern": presence_pattern(beat_indices, len(beats)),
                "is_main": bool(network.node(entity.entity_id) and network.node(entity.entity_id).is_main),
            }

        character_words = {w for e in characters for form in [e.name, *e.aliases] for w in words(form)}
        motifs = find_motifs(stage_input.text, character_words)
        ambivalent = ambivalent_pairs(network)

        sentence_count = extraction.meta.get("sentence_count") or len(sentences) or 1
        dialogue_ratio = round(min(1.0, extraction.meta.get("dialogue_lines", 0) / sentence_count), 4)

        evidence = [1.0 if value > 0 else 0.5 for value in curve]
        evidence += [min(1.0, 0.4 + 0.2 * m["count"]) for m in motifs]
        estimate, notes = assess("story dynamics", evidence)
        confidence = to_confidence(estimate)

        flags = []
        if arc == "flat":
            flags.append("flat_tension")
        if arc == "undetermined":
            notes.append(UncertaintyNote.epistemic(
                aspect="arc shape",
                note=f"Only {len(beats)} beat(s) of material; the arc shape cannot be read",
            ))

        alternates = []
        if len(curve) >= 3 and arc not in ("flat", "undetermined"):
            ordered = sorted(range(len(curve)), key=lambda i: -curve[i])
            first, second = ordered[0], ordered[1]
            if curve[second] >= 0.9 * curve[first] and abs(first - second) > 1:
                rival = classify_arc([c if i != first else 0.0 for i, c in enumerate(curve)])
                if rival != arc:
                    alternates.append(Alternate(hypothesis=f"Arc: {rival}", confidence=0.4))

        meta = {
            "tension_curve": curve,
            "arc_shape": arc,
            "motifs": motifs,
            "character_presence": presence,
            "ambivalent_relationships": [list(p) for p in ambivalent],
            "dialogue_ratio": dialogue_ratio,
            "beat_count": len(beats),
            "flags": flags,
            "uncertainty": estimate.as_dict(),
        }

        model_note = None
        if self.use_model(stage_input, gateway):
            payload, model_note = self.ask_model(
                gateway,
                SYMBOLISM_USER_PROMPT,
                {"text": stage_input.text, "motifs": ", ".join(m["motif"] for m in motifs) or "none"},
                task="symbolism",
                schema=SymbolismReading,
            )
            if payload is not None:
                meta["symbolism"] = _symbolism(payload)

        result = StageResult(
            summary=(
                f"Arc: {arc}; {len(motifs)} motif(s); {len(ambivalent)} ambivalent relationship(s); "
                f"dialogue ratio {dialogue_ratio:.2f}."
            ),
            confidence=confidence,
            uncertainties=notes,
            alternates=alternates,
            meta=meta,
        )
        if model_note is not None:
            result = result.degraded(UNUSABLE_MODEL_OUTPUT_FACTOR, model_note)
        return result


def _symbolism(payload: dict) -> list[dict]:
    readings = []
    for item in payload.get("motifs", []) or []:
        if not isinstance(item, dict) or not item.get("motif"):
            continue
        try:
            confidence = min(1.0, max(0.0, float(item.get("confidence", 0.5))))
        except (TypeError, ValueError):
            confidence = 0.5
        readings.append({
            "motif": str(item["motif"]),
            "meaning": str(item.get("meaning", "")),
            "confidence": confidence,
        })
    return readings

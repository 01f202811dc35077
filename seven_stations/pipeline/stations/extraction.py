"""Station 1: Extraction - characters, locations, objects and their relations.

Deterministic candidate generation first:
- Dialogue cues ("MARA:" or an all-caps cue line) and proper names
- Role nouns after an article ("a lonely astronaut")
- Scene headings and "in/at <Place>" for locations
- Objects of discovery/possession verbs ("discovers a signal")

Aliases are merged with fuzzy matching. The model, when available, only
fills gaps; it never removes a deterministic finding.
"""

import re
from typing import Optional

import structlog
from rapidfuzz import fuzz

from seven_stations.config.prompts import EXTRACTION_USER_PROMPT
from seven_stations.extraction.text_utils import (
    CHARACTER_CUE_PATTERN,
    NON_CHARACTER_CUES,
    SCENE_HEADING_PATTERN,
    SPEAKER_PATTERN,
    STOPWORDS,
    normalize_id,
    split_sentences,
)
from seven_stations.llm.generation import GenerationGateway
from seven_stations.models import (
    EntityKind,
    EntitySupplement,
    ExtractedEntity,
    ExtractedRelation,
    RelationType,
    StageInput,
    StageResult,
    UncertaintyNote,
)
from seven_stations.processing.lexicons import (
    ACQUISITION_VERBS,
    ALLIANCE_VERBS,
    CONFLICT_VERBS,
    LOCATION_NOUNS,
    ROLE_NOUNS,
)
from seven_stations.processing.uncertainty import assess, to_confidence

from .base import UNUSABLE_MODEL_OUTPUT_FACTOR, Station

logger = structlog.get_logger(__name__)

# Threshold for fuzzy name matching
NAME_MATCH_THRESHOLD = 85

DETERMINERS = frozenset({"a", "an", "the", "his", "her", "their", "its", "my", "our", "your", "this", "that"})
LOCATION_PREPOSITIONS = frozenset({"in", "at", "aboard", "inside", "near"})
CALENDAR_WORDS = frozenset("""
monday tuesday wednesday thursday friday saturday sunday january february march
april may june july august september october november december
""".split())

# Capitalized at the start of a sentence but never names
SENTENCE_OPENERS = frozenset("""
later suddenly meanwhile finally inside outside tonight today yesterday tomorrow
yes okay oh hey please sorry thanks
""".split())

ACTION_VERBS = ACQUISITION_VERBS | CONFLICT_VERBS | ALLIANCE_VERBS | frozenset(
    "says said asks asked tells told looks looked walks walked runs ran waits waited".split()
)

_TOKEN = re.compile(r"[A-Za-z][A-Za-z'\-]*")

# Support score per extraction signal
SIGNAL_STRENGTH = {
    "dialogue_cue": 0.95,
    "scene_heading": 0.9,
    "proper_noun": 0.8,
    "role_noun": 0.75,
    "acquisition_object": 0.7,
    "location_phrase": 0.7,
    "model": 0.6,
}


# =============================================================================
# Candidate Generation
# =============================================================================

class _Candidates:
    """Accumulates entity candidates keyed by normalized id."""

    def __init__(self):
        self.entities: dict[str, ExtractedEntity] = {}
        self.kind_votes: dict[str, dict[EntityKind, int]] = {}

    def add(
        self,
        name: str,
        kind: EntityKind,
        source: str,
        sentence_index: int = 0,
        descriptors: Optional[list[str]] = None,
    ) -> None:
        entity_id = normalize_id(name)
        if not entity_id:
            return
        votes = self.kind_votes.setdefault(entity_id, {})
        votes[kind] = votes.get(kind, 0) + 1

        existing = self.entities.get(entity_id)
        if existing is None:
            self.entities[entity_id] = ExtractedEntity(
                entity_id=entity_id,
                name=name,
                kind=kind,
                descriptors=list(descriptors or []),
                mentions=0,
                first_sentence=sentence_index,
                sources=[source],
            )
            return

        if source not in existing.sources:
            existing.sources.append(source)
        for d in descriptors or []:
            if d not in existing.descriptors:
                existing.descriptors.append(d)
        existing.first_sentence = min(existing.first_sentence, sentence_index)
        existing.kind = max(votes.items(), key=lambda kv: kv[1])[0]


def _collect_cues(text: str, candidates: _Candidates) -> int:
    """Add characters from dialogue cues. Returns the number of dialogue lines."""
    dialogue_lines = 0

    for match in SPEAKER_PATTERN.finditer(text):
        name = match.group(1).strip()
        if _is_cue_name(name):
            candidates.add(name.title() if name.isupper() else name, EntityKind.CHARACTER, "dialogue_cue")
            dialogue_lines += 1

    for match in CHARACTER_CUE_PATTERN.finditer(text):
        name = match.group(1).strip()
        if _is_cue_name(name):
            candidates.add(name.title(), EntityKind.CHARACTER, "dialogue_cue")
            dialogue_lines += 1

    for match in SCENE_HEADING_PATTERN.finditer(text):
        place = match.group(1).strip()
        if place:
            candidates.add(place.title(), EntityKind.LOCATION, "scene_heading")

    return dialogue_lines


def _is_cue_name(name: str) -> bool:
    upper = name.upper()
    if len(name) < 2 or len(name.split()) > 3:
        return False
    if any(upper.startswith(cue) for cue in NON_CHARACTER_CUES):
        return False
    return name.lower() not in STOPWORDS


def _collect_phrases(sentences: list[str], candidates: _Candidates) -> None:
    """Add role-noun characters, locations, objects and proper names."""
    for idx, sentence in enumerate(sentences):
        tokens = _TOKEN.findall(sentence)
        lowered = [t.lower() for t in tokens]

        for i, word in enumerate(lowered):
            # Determiner + up to two modifiers + noun
            if word in DETERMINERS:
                window = lowered[i + 1:i + 4]
                for j, candidate in enumerate(window):
                    if candidate in ROLE_NOUNS:
                        modifiers = [w for w in window[:j] if w not in STOPWORDS]
                        candidates.add(candidate, EntityKind.CHARACTER, "role_noun", idx, modifiers)
                        break
                    if candidate in LOCATION_NOUNS and i > 0 and lowered[i - 1] in LOCATION_PREPOSITIONS:
                        candidates.add(candidate, EntityKind.LOCATION, "location_phrase", idx)
                        break
                    if candidate in STOPWORDS:
                        break

            # Acquisition verb + determiner + object phrase
            if word in ACQUISITION_VERBS:
                phrase = _object_phrase(lowered[i + 1:i + 5])
                if phrase:
                    noun, modifiers = phrase
                    if noun in ROLE_NOUNS:
                        candidates.add(noun, EntityKind.CHARACTER, "role_noun", idx, modifiers)
                    else:
                        candidates.add(noun, EntityKind.OBJECT, "acquisition_object", idx, modifiers)

        for name, position in _proper_names(tokens):
            if position == 0:
                # Sentence-initial capitals count only when an action verb follows
                following = lowered[len(name.split())] if len(lowered) > len(name.split()) else ""
                if following in ACTION_VERBS:
                    candidates.add(name, EntityKind.CHARACTER, "proper_noun", idx)
                continue
            preceding = lowered[position - 1]
            is_place = preceding in LOCATION_PREPOSITIONS or name.lower() in LOCATION_NOUNS
            kind = EntityKind.LOCATION if is_place else EntityKind.CHARACTER
            source = "location_phrase" if kind == EntityKind.LOCATION else "proper_noun"
            candidates.add(name, kind, source, idx)


def _object_phrase(window: list[str]) -> Optional[tuple[str, list[str]]]:
    if not window or window[0] not in DETERMINERS:
        return None
    words = []
    for w in window[1:]:
        if w in STOPWORDS or w in DETERMINERS:
            break
        words.append(w)
    if not words:
        return None
    return words[-1], words[:-1]


def _proper_names(tokens: list[str]) -> list[tuple[str, int]]:
    """Runs of capitalized, non-stopword tokens with their start position."""
    names = []
    run: list[str] = []
    start = 0
    for i, token in enumerate(tokens):
        is_proper = (
            token[0].isupper()
            and not token.isupper()
            and token.lower() not in STOPWORDS
            and token.lower() not in CALENDAR_WORDS
            and token.lower() not in SENTENCE_OPENERS
            and token.lower() not in DETERMINERS
        )
        if is_proper:
            if not run:
                start = i
            run.append(token)
            continue
        if run:
            names.append((" ".join(run), start))
            run = []
    if run:
        names.append((" ".join(run), start))
    return names


# =============================================================================
# Alias Merging, Mentions and Relations
# =============================================================================

def merge_aliases(entities: list[ExtractedEntity]) -> list[ExtractedEntity]:
    """Merge entities of the same kind whose names refer to the same thing.

    Names match when their fuzzy ratio reaches ``NAME_MATCH_THRESHOLD`` or
    when one name's words are a subset of the other's ("Mara" / "Mara Voss").
    The longer name becomes canonical.
    """
    merged: list[ExtractedEntity] = []
    for entity in sorted(entities, key=lambda e: (-len(e.name), e.first_sentence)):
        target = next((m for m in merged if m.kind == entity.kind and _same_entity(m.name, entity.name)), None)
        if target is None:
            merged.append(entity.model_copy(deep=True))
            continue
        if entity.name not in target.aliases and entity.name.lower() != target.name.lower():
            target.aliases.append(entity.name)
        target.aliases.extend(a for a in entity.aliases if a not in target.aliases)
        target.sources.extend(s for s in entity.sources if s not in target.sources)
        target.descriptors.extend(d for d in entity.descriptors if d not in target.descriptors)
        target.first_sentence = min(target.first_sentence, entity.first_sentence)
    return sorted(merged, key=lambda e: (e.first_sentence, e.entity_id))


def _same_entity(name1: str, name2: str) -> bool:
    a, b = name1.lower(), name2.lower()
    if fuzz.ratio(a, b) >= NAME_MATCH_THRESHOLD:
        return True
    words1, words2 = set(a.split()), set(b.split())
    return bool(words1 and words2) and (words1 <= words2 or words2 <= words1)


def _surface_pattern(entity: ExtractedEntity) -> re.Pattern:
    forms = sorted({entity.name, *entity.aliases}, key=len, reverse=True)
    return re.compile(r"\b(?:" + "|".join(re.escape(f) for f in forms) + r")\b", re.IGNORECASE)


def locate_mentions(
    sentences: list[str],
    entities: list[ExtractedEntity],
) -> dict[str, list[tuple[int, int]]]:
    """Map entity_id to (sentence index, char position) of each mention."""
    positions: dict[str, list[tuple[int, int]]] = {}
    for entity in entities:
        pattern = _surface_pattern(entity)
        hits = []
        for idx, sentence in enumerate(sentences):
            hits.extend((idx, m.start()) for m in pattern.finditer(sentence))
        positions[entity.entity_id] = hits
    return positions


def extract_relations(
    sentences: list[str],
    positions: dict[str, list[tuple[int, int]]],
    kinds: Optional[dict[str, EntityKind]] = None,
) -> list[ExtractedRelation]:
    """Relations between entities that share a sentence.

    Between two characters the relation is typed by the verbs in the
    sentence: any conflict verb makes it a conflict, otherwise any alliance
    verb an alliance, otherwise a plain association. Relations involving a
    place or an object are always associations.
    """
    kinds = kinds or {}
    by_sentence: dict[int, list[tuple[int, str]]] = {}
    for entity_id, hits in positions.items():
        seen = set()
        for idx, char_pos in hits:
            if idx in seen:
                continue
            seen.add(idx)
            by_sentence.setdefault(idx, []).append((char_pos, entity_id))

    relations = []
    for idx in sorted(by_sentence):
        present = [eid for _, eid in sorted(by_sentence[idx])]
        if len(present) < 2:
            continue
        sentence = sentences[idx]
        lowered = [t.lower() for t in _TOKEN.findall(sentence)]
        typed = _type_relation(lowered)
        untyped = (RelationType.ASSOCIATION, next((w for w in lowered if w in ACQUISITION_VERBS), None))
        for i, source in enumerate(present):
            for target in present[i + 1:]:
                both_characters = (
                    kinds.get(source, EntityKind.CHARACTER) == EntityKind.CHARACTER
                    and kinds.get(target, EntityKind.CHARACTER) == EntityKind.CHARACTER
                )
                relation, verb = typed if both_characters else untyped
                relations.append(ExtractedRelation(
                    source=source,
                    target=target,
                    relation=relation,
                    verb=verb,
                    sentence_index=idx,
                    evidence=sentence[:240],
                ))
    return relations


def _type_relation(lowered: list[str]) -> tuple[RelationType, Optional[str]]:
    for word in lowered:
        if word in CONFLICT_VERBS:
            return RelationType.CONFLICT, word
    for word in lowered:
        if word in ALLIANCE_VERBS:
            return RelationType.ALLIANCE, word
    verb = next((w for w in lowered if w in ACQUISITION_VERBS), None)
    return RelationType.ASSOCIATION, verb


# =============================================================================
# Station
# =============================================================================

class ExtractionStation(Station):
    """Station 1: entities and relations."""

    station_id = "S1"
    name = "Extraction"
    description = "Extracts characters, locations, objects and their relations"

    def analyze(self, stage_input: StageInput, gateway: Optional[GenerationGateway]) -> StageResult:
        text = stage_input.text
        sentences = split_sentences(text)

        candidates = _Candidates()
        dialogue_lines = _collect_cues(text, candidates)
        _collect_phrases(sentences, candidates)
        entities = merge_aliases(list(candidates.entities.values()))

        model_note = None
        if self.use_model(stage_input, gateway):
            entities, model_note = self._supplement_with_model(gateway, text, entities)

        positions = locate_mentions(sentences, entities)
        for entity in entities:
            hits = positions.get(entity.entity_id, [])
            entity.mentions = max(1, len({idx for idx, _ in hits}))
            if hits:
                entity.first_sentence = min(idx for idx, _ in hits)

        relations = extract_relations(sentences, positions, {e.entity_id: e.kind for e in entities})

        evidence = [
            max(SIGNAL_STRENGTH.get(s, 0.5) for s in e.sources) for e in entities
        ] + [0.8 if r.relation != RelationType.ASSOCIATION else 0.65 for r in relations]
        estimate, notes = assess("entity extraction", evidence)
        confidence = to_confidence(estimate)

        characters = [e for e in entities if e.kind == EntityKind.CHARACTER]
        if not characters:
            confidence = round(confidence * 0.6, 4)
            notes.append(UncertaintyNote.epistemic(
                aspect="characters",
                note="No characters could be identified; later stations work from objects and themes only",
            ))

        result = StageResult(
            summary=_summary(entities, relations),
            confidence=confidence,
            uncertainties=notes,
            meta={
                "entities": [e.model_dump(mode="json") for e in entities],
                "relations": [r.model_dump(mode="json") for r in relations],
                "sentence_count": len(sentences),
                "dialogue_lines": dialogue_lines,
                "format": "screenplay" if dialogue_lines >= 2 else "prose",
                "uncertainty": estimate.as_dict(),
            },
        )

        if model_note is not None:
            result = result.degraded(UNUSABLE_MODEL_OUTPUT_FACTOR, model_note)

        logger.debug(
            "extraction_result",
            characters=len(characters),
            entities=len(entities),
            relations=len(relations),
        )
        return result

    def _supplement_with_model(
        self,
        gateway: GenerationGateway,
        text: str,
        entities: list[ExtractedEntity],
    ):
        known = ", ".join(f"{e.name} ({e.kind.value})" for e in entities) or "none"
        payload, note = self.ask_model(
            gateway,
            EXTRACTION_USER_PROMPT,
            {"text": text, "known_entities": known},
            task="entity extraction",
            schema=EntitySupplement,
        )
        if payload is None:
            return entities, note

        additions = []
        for item in payload.get("entities", []) or []:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            try:
                kind = EntityKind(str(item.get("kind", "character")).lower())
            except ValueError:
                kind = EntityKind.CHARACTER
            additions.append(ExtractedEntity(
                entity_id=normalize_id(item["name"]),
                name=str(item["name"]).strip(),
                kind=kind,
                mentions=0,
                first_sentence=0,
                sources=["model"],
            ))
        # Heuristic entities win over model proposals with the same id
        seen = {e.entity_id for e in entities}
        unique = []
        for addition in additions:
            if addition.entity_id and addition.entity_id not in seen:
                seen.add(addition.entity_id)
                unique.append(addition)
        additions = unique
        logger.debug("model_entities", proposed=len(additions))
        return merge_aliases(entities + additions), None


def _summary(entities: list[ExtractedEntity], relations: list[ExtractedRelation]) -> str:
    counts = {kind: sum(1 for e in entities if e.kind == kind) for kind in EntityKind}
    names = ", ".join(e.name for e in entities if e.kind == EntityKind.CHARACTER)[:200]
    summary = (
        f"Found {counts[EntityKind.CHARACTER]} character(s), {counts[EntityKind.LOCATION]} location(s), "
        f"{counts[EntityKind.OBJECT]} object(s) and {len(relations)} relation(s)."
    )
    if names:
        summary += f" Characters: {names}."
    return summary

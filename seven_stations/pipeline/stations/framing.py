"""Station 2: Framing - genre, thesis, themes and tone.

Genre comes from lexicon hits weighted by frequency. The thesis is built
from the protagonist and the strongest relation found by extraction. When
two genres score close together, or the model disagrees with the lexicon,
the losing reading is kept as an alternate.
"""

from collections import Counter
from typing import Optional

import structlog

from seven_stations.config.prompts import FRAMING_USER_PROMPT
from seven_stations.extraction.text_utils import words
from seven_stations.llm.generation import GenerationGateway
from seven_stations.models import (
    Alternate,
    EntityKind,
    ExtractedEntity,
    ExtractedRelation,
    FramingReading,
    RelationType,
    StageInput,
    StageResult,
    UncertaintyNote,
)
from seven_stations.processing.lexicons import GENRE_LEXICON, THEME_LEXICON, TONE_LEXICON
from seven_stations.processing.uncertainty import assess, to_confidence

from .base import UNUSABLE_MODEL_OUTPUT_FACTOR, Station

logger = structlog.get_logger(__name__)

# Runner-up genre within this share of the winner is reported as an alternate
CLOSE_GENRE_RATIO = 0.75

FALLBACK_GENRE = "drama"


def score_genres(tokens: list[str]) -> list[tuple[str, float]]:
    """Rank genres by lexicon hits, normalized to sum to 1.

    Returns:
        (genre, share) pairs, best first. Empty when nothing matched.
    """
    counts = Counter(tokens)
    raw = {
        genre: sum(counts[w] for w in lexicon)
        for genre, lexicon in GENRE_LEXICON.items()
    }
    total = sum(raw.values())
    if total == 0:
        return []
    ranked = sorted(raw.items(), key=lambda kv: (-kv[1], kv[0]))
    return [(genre, round(hits / total, 4)) for genre, hits in ranked if hits > 0]


def detect_themes(tokens: list[str], limit: int = 3) -> list[str]:
    counts = Counter(tokens)
    scored = [
        (theme, sum(counts[w] for w in lexicon))
        for theme, lexicon in THEME_LEXICON.items()
    ]
    scored = [s for s in scored if s[1] > 0]
    scored.sort(key=lambda kv: (-kv[1], kv[0]))
    return [theme for theme, _ in scored[:limit]]


def detect_tone(tokens: list[str]) -> Optional[str]:
    counts = Counter(tokens)
    best, best_hits = None, 0
    for tone, lexicon in TONE_LEXICON.items():
        hits = sum(counts[w] for w in lexicon)
        if hits > best_hits:
            best, best_hits = tone, hits
    return best


def pick_protagonist(entities: list[ExtractedEntity]) -> Optional[ExtractedEntity]:
    """Most mentioned character; earliest appearance breaks ties."""
    characters = [e for e in entities if e.kind == EntityKind.CHARACTER]
    if not characters:
        return None
    return min(characters, key=lambda e: (-e.mentions, e.first_sentence, e.entity_id))


def build_thesis(
    protagonist: Optional[ExtractedEntity],
    relations: list[ExtractedRelation],
    entities: list[ExtractedEntity],
    themes: list[str],
) -> str:
    """One sentence statement of what the story is about."""
    names = {e.entity_id: e for e in entities}
    theme_clause = f", exploring {' and '.join(themes[:2])}" if themes else ""

    if protagonist is None:
        return f"A story without a clear protagonist{theme_clause}."

    label = _describe(protagonist)
    involving = [r for r in relations if protagonist.entity_id in (r.source, r.target)]
    if not involving:
        return f"The story follows {label}{theme_clause}."

    # Conflict drives a story more than alliance, alliance more than association
    rank = {RelationType.CONFLICT: 0, RelationType.ALLIANCE: 1, RelationType.ASSOCIATION: 2}
    central = min(involving, key=lambda r: (rank[r.relation], r.sentence_index))
    other_id = central.target if central.source == protagonist.entity_id else central.source
    other = names.get(other_id)
    other_label = _describe(other) if other else other_id.replace("_", " ")

    if central.relation == RelationType.CONFLICT:
        action = f"is pitted against {other_label}"
    elif central.relation == RelationType.ALLIANCE:
        action = f"is bound to {other_label}"
    elif central.verb:
        action = f"{central.verb} {other_label}"
    else:
        action = f"is drawn to {other_label}"
    return f"{label[0].upper()}{label[1:]} {action}{theme_clause}."


def _describe(entity: ExtractedEntity) -> str:
    if "proper_noun" in entity.sources or "dialogue_cue" in entity.sources:
        return entity.name
    descriptors = " ".join(entity.descriptors[:2])
    return f"a {descriptors} {entity.name}".replace("  ", " ") if descriptors else f"the {entity.name}"


class FramingStation(Station):
    """Station 2: genre and thesis framing."""

    station_id = "S2"
    name = "Framing"
    description = "Classifies genre and states the central thesis"

    def analyze(self, stage_input: StageInput, gateway: Optional[GenerationGateway]) -> StageResult:
        extraction = self.require_previous(stage_input, "S1")
        entities = [ExtractedEntity.model_validate(e) for e in extraction.meta.get("entities", [])]
        relations = [ExtractedRelation.model_validate(r) for r in extraction.meta.get("relations", [])]

        tokens = words(stage_input.text)
        ranking = score_genres(tokens)
        themes = detect_themes(tokens)
        tone = detect_tone(tokens)
        protagonist = pick_protagonist(entities)
        thesis = build_thesis(protagonist, relations, entities, themes)

        genre = ranking[0][0] if ranking else FALLBACK_GENRE
        genre_share = ranking[0][1] if ranking else 0.0

        # One observation per genre hit: winner hits support, the rest dilute
        evidence = []
        counts = Counter(tokens)
        for g, lexicon in GENRE_LEXICON.items():
            hits = sum(counts[w] for w in lexicon)
            evidence.extend([1.0 if g == genre else 0.0] * hits)
        estimate, notes = assess("genre", evidence)
        confidence = to_confidence(estimate)

        alternates = []
        if len(ranking) > 1 and ranking[1][1] >= CLOSE_GENRE_RATIO * ranking[0][1]:
            alternates.append(Alternate(hypothesis=f"Genre: {ranking[1][0]}", confidence=ranking[1][1]))

        if not ranking:
            notes.append(UncertaintyNote.epistemic(
                aspect="genre",
                note=f"No genre markers found; defaulted to {FALLBACK_GENRE}",
            ))

        meta = {
            "genre": genre,
            "genre_ranking": [{"genre": g, "score": s} for g, s in ranking],
            "thesis": thesis,
            "themes": themes,
            "tone": tone,
            "protagonist": protagonist.entity_id if protagonist else None,
            "uncertainty": estimate.as_dict(),
        }

        model_note = None
        if self.use_model(stage_input, gateway):
            payload, model_note = self.ask_model(
                gateway,
                FRAMING_USER_PROMPT,
                {
                    "text": stage_input.text,
                    "characters": ", ".join(e.name for e in entities if e.kind == EntityKind.CHARACTER) or "none",
                    "genre_ranking": ", ".join(f"{g} ({s:.2f})" for g, s in ranking) or "none",
                },
                task="genre framing",
                schema=FramingReading,
            )
            if payload is not None:
                alternates.extend(self._reconcile(payload, meta, genre_share))

        result = StageResult(
            summary=f"{meta['genre'].title()}. {meta['thesis']}",
            confidence=confidence,
            uncertainties=notes,
            alternates=alternates,
            meta=meta,
        )
        if model_note is not None:
            result = result.degraded(UNUSABLE_MODEL_OUTPUT_FACTOR, model_note)
        return result

    def _reconcile(self, payload: dict, meta: dict, genre_share: float) -> list[Alternate]:
        """Fold the model's reading into ``meta``. Returns alternates for disagreements."""
        alternates = []
        model_genre = str(payload.get("genre") or "").strip().lower()
        try:
            model_confidence = float(payload.get("confidence", 0.5))
        except (TypeError, ValueError):
            model_confidence = 0.5
        model_confidence = min(1.0, max(0.0, model_confidence))

        if model_genre and model_genre != meta["genre"]:
            if model_confidence > genre_share and not meta["genre_ranking"]:
                # Lexicon found nothing; take the model's reading
                alternates.append(Alternate(hypothesis=f"Genre: {meta['genre']}", confidence=0.2))
                meta["genre"] = model_genre
            else:
                alternates.append(Alternate(hypothesis=f"Genre: {model_genre}", confidence=model_confidence))
            logger.info("genre_disagreement", heuristic=meta["genre"], model=model_genre)

        thesis = str(payload.get("thesis") or "").strip()
        if thesis:
            meta["model_thesis"] = thesis

        for theme in payload.get("themes", []) or []:
            theme = str(theme).strip().lower()
            if theme and theme not in meta["themes"]:
                meta["themes"].append(theme)
        return alternates

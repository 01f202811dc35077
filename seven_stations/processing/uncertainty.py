"""Uncertainty quantification for station findings.

Evidence is a sequence of support scores in [0, 1], one per observation
backing a finding (1.0 = the observation fully supports it). Two parts are
estimated:

- epistemic: how sparse the evidence is, 1/sqrt(1 + n). Reducible by
  gathering more evidence.
- aleatoric: how much the observations disagree, 4 * p * (1 - p) where p is
  the mean support. This is the variance of the pooled observations scaled
  to [0, 1]; split or ambiguous evidence drives it up.
"""

import math
from dataclasses import dataclass
from typing import Any

from seven_stations.models import UncertaintyNote

# Above these levels a note is attached to the station result
NOTE_THRESHOLD = 0.5


@dataclass(frozen=True)
class UncertaintyEstimate:
    """Epistemic and aleatoric parts of a station's uncertainty."""

    epistemic: float
    aleatoric: float

    @property
    def total(self) -> float:
        return self.epistemic + self.aleatoric

    def as_dict(self) -> dict[str, float]:
        return {
            "epistemic": round(self.epistemic, 4),
            "aleatoric": round(self.aleatoric, 4),
            "total": round(self.total, 4),
        }


BASELINE = UncertaintyEstimate(epistemic=1.0, aleatoric=0.0)


def _coerce_scores(evidence: Any) -> list[float]:
    if evidence is None:
        return []
    if isinstance(evidence, dict):
        evidence = evidence.get("scores", [])
    if isinstance(evidence, (str, bytes)):
        return []
    try:
        items = list(evidence)
    except TypeError:
        return []

    scores = []
    for item in items:
        if isinstance(item, bool):
            value = 1.0 if item else 0.0
        elif isinstance(item, (int, float)):
            value = float(item)
        else:
            continue
        if math.isnan(value):
            continue
        scores.append(min(1.0, max(0.0, value)))
    return scores


def quantify(evidence: Any) -> UncertaintyEstimate:
    """Estimate uncertainty from evidence scores.

    Never raises. Missing, empty or wholly malformed evidence returns the
    baseline (epistemic=1.0, aleatoric=0.0): maximal reducible uncertainty.

    Args:
        evidence: Sequence of support scores, or a mapping with a
            ``scores`` key.

    Returns:
        UncertaintyEstimate with non-negative parts.
    """
    scores = _coerce_scores(evidence)
    if not scores:
        return BASELINE

    n = len(scores)
    mean = sum(scores) / n
    epistemic = 1.0 / math.sqrt(1.0 + n)
    aleatoric = 4.0 * mean * (1.0 - mean)
    return UncertaintyEstimate(epistemic=epistemic, aleatoric=max(0.0, aleatoric))


def to_confidence(estimate: UncertaintyEstimate) -> float:
    """Map an estimate to a confidence in [0, 1]."""
    confidence = (1.0 - 0.6 * min(1.0, estimate.epistemic)) * (1.0 - 0.4 * min(1.0, estimate.aleatoric))
    return round(max(0.0, min(1.0, confidence)), 4)


def notes_for(aspect: str, estimate: UncertaintyEstimate) -> list[UncertaintyNote]:
    """Build uncertainty notes for the parts above the note threshold."""
    notes = []
    if estimate.epistemic >= NOTE_THRESHOLD:
        notes.append(UncertaintyNote.epistemic(
            aspect=aspect,
            note=f"Sparse evidence for {aspect} (epistemic {estimate.epistemic:.2f}); more text would help",
        ))
    if estimate.aleatoric >= NOTE_THRESHOLD:
        notes.append(UncertaintyNote.aleatoric(
            aspect=aspect,
            note=f"Signals for {aspect} disagree (aleatoric {estimate.aleatoric:.2f}); the text is ambiguous",
        ))
    return notes


def assess(aspect: str, evidence: Any) -> tuple[UncertaintyEstimate, list[UncertaintyNote]]:
    """Quantify evidence and produce the matching notes."""
    estimate = quantify(evidence)
    return estimate, notes_for(aspect, estimate)

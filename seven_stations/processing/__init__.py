"""Scoring utilities shared by the stations and the orchestrator."""

from .compliance import ComplianceEvaluator, ModelJudge, PatternJudge
from .uncertainty import UncertaintyEstimate, assess, quantify, to_confidence

__all__ = [
    "ComplianceEvaluator",
    "PatternJudge",
    "ModelJudge",
    "UncertaintyEstimate",
    "quantify",
    "to_confidence",
    "assess",
]

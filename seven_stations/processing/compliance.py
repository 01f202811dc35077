"""Constitutional compliance scoring of generated content.

Each configured principle is judged pass/fail with a confidence. The
overall score is the weighted share of passing confidence:

    score = sum(confidence * weight for passed checks) / sum(weight)

A low score is a signal for the caller, never a veto. Scoring never
raises: a judge that fails falls back to the pattern judge.
"""

import re
from typing import Optional, Protocol

import structlog
from langchain_core.prompts import ChatPromptTemplate

from seven_stations.config.prompts import COMPLIANCE_JUDGE_PROMPT, SCRIPT_ANALYST_SYSTEM_PROMPT
from seven_stations.llm.generation import GenerationError, GenerationGateway
from seven_stations.llm.parsing import ResponseParseError, parse_json_response
from seven_stations.models import (
    DEFAULT_PRINCIPLES,
    ConstitutionalCheck,
    ConstitutionalPrinciple,
    ConstitutionalResult,
)

logger = structlog.get_logger(__name__)

DEFAULT_THRESHOLD = 0.7

# Passing checks below this confidence are still worth a recommendation
LOW_CHECK_CONFIDENCE = 0.7

# Pattern judge confidence when support patterns exist but none matched
BASE_SUPPORT_CONFIDENCE = 0.6


class PrincipleJudge(Protocol):
    """Decides whether content satisfies one principle."""

    def judge(self, principle: ConstitutionalPrinciple, content: str) -> ConstitutionalCheck:
        ...


class PatternJudge:
    """Judge driven by the regexes configured on each principle.

    Any violation pattern fails the principle. Otherwise it passes with
    confidence 1.0 when it has no support patterns, or with a confidence
    that grows with the share of support patterns found.
    """

    def judge(self, principle: ConstitutionalPrinciple, content: str) -> ConstitutionalCheck:
        violations = [p for p in principle.violation_patterns if _search(p, content)]
        if violations:
            return ConstitutionalCheck(
                principle=principle,
                passed=False,
                confidence=min(1.0, 0.7 + 0.1 * len(violations)),
                explanation=f"Matched {len(violations)} violation pattern(s): {', '.join(violations)}",
            )

        if not principle.support_patterns:
            return ConstitutionalCheck(
                principle=principle,
                passed=True,
                confidence=1.0,
                explanation="No violation patterns matched",
            )

        found = sum(1 for p in principle.support_patterns if _search(p, content))
        share = found / len(principle.support_patterns)
        return ConstitutionalCheck(
            principle=principle,
            passed=True,
            confidence=round(BASE_SUPPORT_CONFIDENCE + (1.0 - BASE_SUPPORT_CONFIDENCE) * share, 4),
            explanation=f"No violations; {found} of {len(principle.support_patterns)} support pattern(s) present",
        )


def _search(pattern: str, content: str) -> bool:
    try:
        return re.search(pattern, content, re.IGNORECASE) is not None
    except re.error:
        logger.warning("invalid_principle_pattern", pattern=pattern)
        return False


class ModelJudge:
    """Judge that asks the text generator for a YES/NO decision.

    Any generation or parse problem falls back to the pattern judge for
    that principle.
    """

    def __init__(self, gateway: GenerationGateway, fallback: Optional[PrincipleJudge] = None):
        self.gateway = gateway
        self.fallback = fallback or PatternJudge()

    def judge(self, principle: ConstitutionalPrinciple, content: str) -> ConstitutionalCheck:
        prompt = ChatPromptTemplate.from_messages([
            ("system", SCRIPT_ANALYST_SYSTEM_PROMPT),
            ("human", COMPLIANCE_JUDGE_PROMPT),
        ]).format(name=principle.name, description=principle.description, content=content)

        try:
            response = self.gateway.generate(prompt, {"task": "compliance", "principle": principle.id})
            payload = parse_json_response(response)
            decision = str(payload.get("decision", "")).strip().upper()
            if decision not in ("YES", "NO"):
                raise ResponseParseError(f"Unexpected decision: {decision!r}")
            confidence = min(1.0, max(0.0, float(payload.get("confidence", 0.8))))
        except (GenerationError, ResponseParseError, TypeError, ValueError) as e:
            logger.warning("model_judge_fallback", principle=principle.id, error=str(e))
            return self.fallback.judge(principle, content)

        return ConstitutionalCheck(
            principle=principle,
            passed=decision == "YES",
            confidence=confidence,
            explanation=str(payload.get("reasoning") or f"Model decision: {decision}"),
        )


class ComplianceEvaluator:
    """Scores content against an ordered, weighted set of principles."""

    def __init__(
        self,
        principles: Optional[list[ConstitutionalPrinciple]] = None,
        threshold: float = DEFAULT_THRESHOLD,
        judge: Optional[PrincipleJudge] = None,
    ):
        self.principles = tuple(DEFAULT_PRINCIPLES if principles is None else principles)
        self.threshold = threshold
        self.judge = judge or PatternJudge()

    def evaluate(self, content: str, threshold: Optional[float] = None) -> ConstitutionalResult:
        """Score ``content``.

        Args:
            content: Text to score, usually the final report.
            threshold: Overrides the evaluator threshold for this call.

        Returns:
            ConstitutionalResult. Recommendations are empty when the score
            reaches the threshold and non-empty otherwise.
        """
        threshold = self.threshold if threshold is None else threshold
        if not self.principles:
            return ConstitutionalResult(overall_score=1.0, checks=[], recommendations=[])

        checks = [self._check(p, content) for p in self.principles]

        total_weight = sum(c.principle.weight for c in checks)
        earned = sum(c.confidence * c.principle.weight for c in checks if c.passed)
        score = min(1.0, max(0.0, earned / total_weight))

        recommendations = [] if score >= threshold else self._recommendations(checks)

        logger.info(
            "compliance_evaluated",
            score=round(score, 4),
            threshold=threshold,
            failed=[c.principle.id for c in checks if not c.passed],
        )
        return ConstitutionalResult(overall_score=score, checks=checks, recommendations=recommendations)

    def _check(self, principle: ConstitutionalPrinciple, content: str) -> ConstitutionalCheck:
        try:
            return self.judge.judge(principle, content)
        except Exception as e:
            logger.error("principle_judge_failed", principle=principle.id, error=str(e))
            return ConstitutionalCheck(
                principle=principle,
                passed=False,
                confidence=0.0,
                explanation=f"Could not be judged: {e}",
            )

    def _recommendations(self, checks: list[ConstitutionalCheck]) -> list[str]:
        recommendations = []
        for check in checks:
            if not check.passed:
                recommendations.append(
                    f"Revise the content to satisfy {check.principle.name}: {check.principle.description}"
                )
            elif check.confidence < LOW_CHECK_CONFIDENCE:
                recommendations.append(
                    f"Strengthen {check.principle.name.lower()} (confidence {check.confidence:.2f})"
                )
        if not recommendations:
            recommendations.append("Review the content against all principles; overall confidence is low")
        return recommendations

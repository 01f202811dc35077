"""Unit tests for constitutional compliance scoring."""

import json

import pytest

from seven_stations.llm.generation import GenerationError, GenerationGateway
from seven_stations.models import ConstitutionalCheck, ConstitutionalPrinciple
from seven_stations.processing.compliance import ComplianceEvaluator, ModelJudge, PatternJudge


class FixedJudge:
    """Judge returning the same verdict for every principle."""

    def __init__(self, passed=True, confidence=1.0, overrides=None):
        self.passed = passed
        self.confidence = confidence
        self.overrides = overrides or {}

    def judge(self, principle, content):
        passed, confidence = self.overrides.get(principle.id, (self.passed, self.confidence))
        return ConstitutionalCheck(principle=principle, passed=passed, confidence=confidence, explanation="fixed")


class ExplodingJudge:
    def judge(self, principle, content):
        raise RuntimeError("judge crashed")


def principle(pid, weight=1.0, **patterns):
    return ConstitutionalPrinciple(id=pid, name=pid.title(), description=f"{pid} rule", weight=weight, **patterns)


class TestPatternJudge:
    """Tests for the default pattern judge."""

    def test_violation_fails(self):
        check = PatternJudge().judge(principle("harm", violation_patterns=[r"\bworthless\b"]), "A WORTHLESS draft.")
        assert check.passed is False
        assert check.confidence == pytest.approx(0.8)

    def test_no_support_patterns_pass_fully(self):
        check = PatternJudge().judge(principle("plain"), "Anything at all.")
        assert check.passed is True
        assert check.confidence == 1.0

    def test_support_share_sets_confidence(self):
        p = principle("honesty", support_patterns=[r"\bconfidence\b", r"\buncertain"])
        assert PatternJudge().judge(p, "Stated with confidence.").confidence == pytest.approx(0.8)
        assert PatternJudge().judge(p, "Nothing relevant.").confidence == pytest.approx(0.6)

    def test_invalid_pattern_is_ignored(self):
        check = PatternJudge().judge(principle("broken", violation_patterns=["("]), "text")
        assert check.passed is True


class TestComplianceEvaluator:
    """Tests for ComplianceEvaluator."""

    def test_default_principles_on_constructive_report(self):
        report = (
            "We recommend you consider a stronger antagonist. "
            "Confidence is moderate and the arc remains uncertain."
        )
        result = ComplianceEvaluator().evaluate(report)

        assert result.overall_score == pytest.approx(1.0)
        assert result.recommendations == []
        assert [c.principle.id for c in result.checks] == ["helpfulness", "harmlessness", "honesty"]

    def test_harmful_content_scores_low(self):
        result = ComplianceEvaluator().evaluate("This script is worthless.")

        assert result.overall_score == pytest.approx(0.4)
        assert any("Harmlessness" in r for r in result.recommendations)
        assert any(r.startswith("Strengthen helpfulness") for r in result.recommendations)

    def test_empty_principle_set_scores_one(self):
        result = ComplianceEvaluator(principles=[]).evaluate("anything")
        assert result.overall_score == 1.0
        assert result.checks == []
        assert result.recommendations == []

    def test_full_marks_with_mixed_weights(self):
        evaluator = ComplianceEvaluator(principles=[principle("a", weight=2.0), principle("b", weight=0.5)])
        result = evaluator.evaluate("clean content")
        assert result.overall_score == 1.0
        assert result.recommendations == []

    def test_weighted_score(self):
        evaluator = ComplianceEvaluator(
            principles=[principle("a", weight=3.0), principle("b", weight=1.0)],
            judge=FixedJudge(overrides={"a": (True, 0.9), "b": (False, 0.9)}),
        )
        result = evaluator.evaluate("content")
        assert result.overall_score == pytest.approx(2.7 / 4.0)
        assert result.recommendations == ["Revise the content to satisfy B: b rule"]

    def test_low_confidence_pass_below_threshold(self):
        evaluator = ComplianceEvaluator(judge=FixedJudge(passed=True, confidence=0.4))
        result = evaluator.evaluate("content")

        assert result.overall_score == pytest.approx(0.4)
        assert len(result.recommendations) == 3

    def test_threshold_override(self):
        evaluator = ComplianceEvaluator(judge=FixedJudge(passed=True, confidence=0.4))
        assert evaluator.evaluate("content", threshold=0.3).recommendations == []

    def test_recommendations_never_empty_below_threshold(self):
        evaluator = ComplianceEvaluator(judge=FixedJudge(passed=True, confidence=0.75), threshold=0.9)
        result = evaluator.evaluate("content")
        assert result.overall_score < 0.9
        assert result.recommendations

    def test_failing_judge_does_not_raise(self):
        result = ComplianceEvaluator(judge=ExplodingJudge()).evaluate("content")
        assert result.overall_score == 0.0
        assert all(not c.passed and c.confidence == 0.0 for c in result.checks)
        assert result.recommendations


class TestModelJudge:
    """Tests for the model-backed judge."""

    def _gateway(self, generator):
        return GenerationGateway(generator, timeout_seconds=2.0, token_budget=1_000_000)

    def test_model_decision(self, make_generator):
        generator = make_generator(responses={
            "compliance": json.dumps({"decision": "NO", "confidence": 0.9, "reasoning": "Too harsh."}),
        })
        check = ModelJudge(self._gateway(generator)).judge(principle("harm"), "content")

        assert check.passed is False
        assert check.confidence == pytest.approx(0.9)
        assert check.explanation == "Too harsh."
        assert generator.calls[0] == {"task": "compliance", "principle": "harm"}

    @pytest.mark.parametrize("response", [
        "not json",
        json.dumps({"decision": "MAYBE"}),
        json.dumps({"decision": "YES", "confidence": "high"}),
        GenerationError("offline", transient=True),
    ])
    def test_falls_back_to_patterns(self, make_generator, response):
        generator = make_generator(responses={"compliance": response})
        p = principle("harm", violation_patterns=[r"\bworthless\b"])

        check = ModelJudge(self._gateway(generator)).judge(p, "A worthless draft.")

        assert check.passed is False
        assert check.confidence == pytest.approx(0.8)

    def test_evaluator_with_model_judge(self, make_generator):
        generator = make_generator(responses={"compliance": json.dumps({"decision": "YES", "confidence": 1.0})})
        evaluator = ComplianceEvaluator(judge=ModelJudge(self._gateway(generator)))

        result = evaluator.evaluate("content")

        assert result.overall_score == pytest.approx(1.0)
        assert len(generator.calls) == 3

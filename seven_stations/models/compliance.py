"""Models for the constitutional compliance check."""

from pydantic import BaseModel, Field


class ConstitutionalPrinciple(BaseModel):
    """A weighted principle generated content is scored against.

    The optional patterns drive the default pattern judge: any
    ``violation_patterns`` match fails the principle, and the share of
    ``support_patterns`` found sets the confidence of a pass.
    """

    id: str
    name: str
    description: str
    weight: float = Field(default=1.0, gt=0.0)
    violation_patterns: list[str] = Field(default_factory=list)
    support_patterns: list[str] = Field(default_factory=list)


class ConstitutionalCheck(BaseModel):
    """Outcome of checking content against one principle."""

    principle: ConstitutionalPrinciple
    passed: bool
    confidence: float = Field(ge=0.0, le=1.0)
    explanation: str


class ConstitutionalResult(BaseModel):
    """Weighted compliance score for a piece of content."""

    overall_score: float = Field(ge=0.0, le=1.0)
    checks: list[ConstitutionalCheck] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


DEFAULT_PRINCIPLES: list[ConstitutionalPrinciple] = [
    ConstitutionalPrinciple(
        id="helpfulness",
        name="Helpfulness",
        description="Content should be helpful and constructive",
        weight=1.0,
        violation_patterns=[
            r"\bno (?:analysis|feedback) (?:is )?available\b",
            r"\bnothing (?:can|could) be (?:done|improved)\b",
        ],
        support_patterns=[
            r"\brecommend",
            r"\b(?:consider|strengthen|clarify|develop|revise)\b",
        ],
    ),
    ConstitutionalPrinciple(
        id="harmlessness",
        name="Harmlessness",
        description="Content should not cause harm",
        weight=1.0,
        violation_patterns=[
            r"\b(?:worthless|garbage|idiotic|stupid|pathetic)\b",
            r"\b(?:give up writing|quit writing)\b",
        ],
    ),
    ConstitutionalPrinciple(
        id="honesty",
        name="Honesty",
        description="Content should be truthful and accurate",
        weight=1.0,
        violation_patterns=[
            r"\bguaranteed? (?:success|hit|to succeed)\b",
            r"\b100% (?:certain|sure|accurate)\b",
            r"\bwithout any doubt\b",
        ],
        support_patterns=[
            r"\bconfidence\b",
            r"\buncertain",
        ],
    ),
]

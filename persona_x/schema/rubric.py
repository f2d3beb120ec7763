"""
Rubric Schema — the six-dimension judgement profile carried by every persona.

Every persona is scored 1–10 on six fixed dimensions, each with an
interpretive note describing how the score shows up in practice.
All six dimensions are always required; coherence between them is
advisory only and reported as warnings.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, StrictInt

from persona_x.schema.validation import ValidationResult, validate_model

RUBRIC_DIMENSIONS: tuple[str, ...] = (
    "risk_appetite",
    "evidence_threshold",
    "tolerance_for_ambiguity",
    "intervention_frequency",
    "escalation_bias",
    "delivery_vs_rigour_bias",
)

RUBRIC_DIMENSION_LABELS: dict[str, str] = {
    "risk_appetite": "Risk Appetite",
    "evidence_threshold": "Evidence Threshold",
    "tolerance_for_ambiguity": "Tolerance for Ambiguity",
    "intervention_frequency": "Intervention Frequency",
    "escalation_bias": "Escalation Bias",
    "delivery_vs_rigour_bias": "Delivery vs Rigour Bias",
}

RUBRIC_DIMENSION_DESCRIPTIONS: dict[str, str] = {
    "risk_appetite": (
        "How willing the persona is to accept downside, uncertainty, or "
        "incomplete assurance in order to move forward."
    ),
    "evidence_threshold": (
        "How much and what kind of evidence the persona requires before "
        "accepting a claim, proposal, or conclusion."
    ),
    "tolerance_for_ambiguity": (
        "How comfortable the persona is operating when inputs are incomplete, "
        "messy, or still evolving."
    ),
    "intervention_frequency": (
        "How often the persona tends to step into a discussion to challenge, "
        "clarify, or redirect."
    ),
    "escalation_bias": (
        "How quickly the persona tends to escalate issues, risks, or concerns "
        "rather than handling them locally."
    ),
    "delivery_vs_rigour_bias": (
        "Where the persona naturally sits on the spectrum between "
        "speed/enablement and thoroughness/precision."
    ),
}


class RubricScore(BaseModel):
    """A single rubric dimension: integer score plus interpretive note."""

    score: StrictInt = Field(ge=1, le=10)
    note: str = Field(min_length=10, description="How the score shows up in practice")


class RubricProfile(BaseModel):
    """The complete judgement profile. No dimension is optional."""

    risk_appetite: RubricScore
    evidence_threshold: RubricScore
    tolerance_for_ambiguity: RubricScore
    intervention_frequency: RubricScore
    escalation_bias: RubricScore
    delivery_vs_rigour_bias: RubricScore

    def score_of(self, dimension: str) -> int:
        return getattr(self, dimension).score


def validate_rubric_profile(data: Any) -> ValidationResult[RubricProfile]:
    """Validate raw data as a complete RubricProfile."""
    return validate_model(RubricProfile, data)


def validate_rubric_coherence(profile: RubricProfile) -> list[str]:
    """
    Flag unusual dimension combinations.

    These are warnings, never errors: an unusual profile may be exactly
    what the persona author intended.
    """
    warnings: list[str] = []

    risk = profile.risk_appetite.score
    evidence = profile.evidence_threshold.score
    if risk >= 8 and evidence >= 8:
        warnings.append(
            f"High risk appetite ({risk}) combined with high evidence threshold "
            f"({evidence}) is unusual. Consider whether the persona genuinely needs "
            "strong evidence before taking risks, or whether one score should be adjusted."
        )

    if profile.tolerance_for_ambiguity.score <= 3 and evidence <= 3:
        warnings.append(
            "Low tolerance for ambiguity combined with low evidence threshold suggests "
            "the persona wants clarity but doesn't require strong proof. "
            "Verify this is intentional."
        )

    if profile.intervention_frequency.score >= 8 and profile.escalation_bias.score <= 3:
        warnings.append(
            "High intervention frequency with low escalation bias suggests a hands-on "
            "persona that prefers to fix issues locally rather than escalate. "
            "Confirm this is the intended pattern."
        )

    return warnings

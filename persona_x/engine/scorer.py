"""
Rubric Scorer — translates discovery signals into rubric scores.

Each priority signal influences a fixed set of rubric dimensions. A
signal yields one score candidate per dimension it influences; the
candidates for a dimension are then resolved into a single score:
the highest-confidence candidates win, equally-confident ones are
averaged, and the result is clamped to 1–10.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel

from persona_x.engine.discovery import Confidence, ExtractedSignal, PrioritySignal
from persona_x.schema.rubric import (
    RUBRIC_DIMENSION_LABELS,
    RUBRIC_DIMENSIONS,
    RubricProfile,
    RubricScore,
    validate_rubric_coherence,
)

# Candidates start at the midpoint; the generative step refines them
DEFAULT_CANDIDATE_SCORE = 5

SIGNAL_TO_DIMENSION_MAP: dict[PrioritySignal, tuple[str, ...]] = {
    PrioritySignal.DISCOMFORT_TRIGGERS: ("risk_appetite", "escalation_bias"),
    PrioritySignal.EVIDENCE_CHANGE_THRESHOLDS: ("evidence_threshold", "delivery_vs_rigour_bias"),
    PrioritySignal.AMBIGUITY_HANDLING: ("tolerance_for_ambiguity", "delivery_vs_rigour_bias"),
    PrioritySignal.PRESSURE_BEHAVIOUR: (
        "intervention_frequency",
        "escalation_bias",
        "delivery_vs_rigour_bias",
    ),
    PrioritySignal.DEFERRAL_PREFERENCES: ("escalation_bias", "intervention_frequency"),
}


class ScoreCandidate(BaseModel):
    model_config = {"frozen": True}

    dimension: str
    score: int
    confidence: Confidence
    source: str
    reasoning: str


@dataclass
class RubricBuild:
    """Outcome of scoring a set of signals."""

    scores: dict[str, RubricScore] = field(default_factory=dict)
    missing_dimensions: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing_dimensions

    def to_profile(self) -> RubricProfile | None:
        if not self.is_complete:
            return None
        return RubricProfile(**self.scores)


def generate_score_candidates(signals: list[ExtractedSignal] | tuple[ExtractedSignal, ...]) -> list[ScoreCandidate]:
    candidates: list[ScoreCandidate] = []
    for signal in signals:
        for dimension in SIGNAL_TO_DIMENSION_MAP.get(signal.signal, ()):
            candidates.append(
                ScoreCandidate(
                    dimension=dimension,
                    score=DEFAULT_CANDIDATE_SCORE,
                    confidence=signal.confidence,
                    source=signal.source_question_id,
                    reasoning=f"Derived from {signal.signal.value}: {signal.value}",
                )
            )
    return candidates


def resolve_score(dimension: str, candidates: list[ScoreCandidate]) -> RubricScore | None:
    """Resolve the candidates for one dimension, or None if there are none."""
    relevant = [c for c in candidates if c.dimension == dimension]
    if not relevant:
        return None

    best_rank = max(c.confidence.rank for c in relevant)
    best = [c for c in relevant if c.confidence.rank == best_rank]

    mean = Decimal(sum(c.score for c in best)) / Decimal(len(best))
    score = int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return RubricScore(
        score=max(1, min(10, score)),
        note=". ".join(c.reasoning for c in best),
    )


def build_rubric_profile(signals: list[ExtractedSignal] | tuple[ExtractedSignal, ...]) -> RubricBuild:
    """
    Score every dimension the signals reach.

    Coherence warnings are only produced once all six dimensions are scored.
    """
    candidates = generate_score_candidates(signals)
    build = RubricBuild()

    for dimension in RUBRIC_DIMENSIONS:
        resolved = resolve_score(dimension, candidates)
        if resolved is None:
            build.missing_dimensions.append(dimension)
        else:
            build.scores[dimension] = resolved

    profile = build.to_profile()
    if profile is not None:
        build.warnings = validate_rubric_coherence(profile)
    return build


def format_rubric_profile(profile: RubricProfile) -> str:
    lines = ["## Judgement & Reasoning Profile", ""]
    for dimension in RUBRIC_DIMENSIONS:
        entry: RubricScore = getattr(profile, dimension)
        bar = "█" * entry.score + "░" * (10 - entry.score)
        lines.append(f"**{RUBRIC_DIMENSION_LABELS[dimension]}**: {bar} {entry.score}/10")
        lines.append(f"  {entry.note}")
        lines.append("")
    return "\n".join(lines)

"""
Inference Engine — the Ask-vs-Infer rule for population sections.

A section may be inferred only when several non-conflicting signals
point the same way:

1. purpose and boundaries are never inferred (identity and refusal posture)
2. relevant signals are those mapped to the section
3. any signal name with two or more distinct values is a conflict → ask
4. two high-confidence signals → infer (high); one high plus one medium →
   infer (medium); anything weaker → ask

Inference keeps momentum; it is never used to invent behaviour.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from persona_x.engine.discovery import Confidence, ExtractedSignal, PrioritySignal
from persona_x.engine.population import NEVER_INFERRED, PipelineState, PopulationSection
from persona_x.schema.persona import ChallengeStrength, PrimaryMode

SECTION_SIGNAL_MAP: dict[PopulationSection, tuple[PrioritySignal, ...]] = {
    PopulationSection.PURPOSE: (),
    PopulationSection.PANEL_ROLE: (
        PrioritySignal.DISCOMFORT_TRIGGERS,
        PrioritySignal.DEFERRAL_PREFERENCES,
    ),
    PopulationSection.RUBRIC: tuple(PrioritySignal),
    PopulationSection.REASONING: (
        PrioritySignal.EVIDENCE_CHANGE_THRESHOLDS,
        PrioritySignal.AMBIGUITY_HANDLING,
        PrioritySignal.PRESSURE_BEHAVIOUR,
    ),
    PopulationSection.INTERACTION: (
        PrioritySignal.PRESSURE_BEHAVIOUR,
        PrioritySignal.DEFERRAL_PREFERENCES,
    ),
    PopulationSection.BOUNDARIES: (),
    PopulationSection.OPTIONAL: (),
}

_NEVER_INFERRED_REASONS: dict[PopulationSection, str] = {
    PopulationSection.PURPOSE: (
        "Persona purpose is foundational and must be stated by the user. "
        "Inference is not permitted for this section."
    ),
    PopulationSection.BOUNDARIES: (
        "Boundaries, refusals, and escalation postures must be explicitly stated. "
        "Inference is not permitted for this section."
    ),
}


class InferenceDecision(BaseModel):
    model_config = {"frozen": True}

    section: PopulationSection
    can_infer: bool
    confidence: Confidence
    justification: str
    supporting_signals: tuple[ExtractedSignal, ...] = ()
    conflicts: tuple[str, ...] = Field(default=())


def relevant_signals(
    section: PopulationSection, signals: tuple[ExtractedSignal, ...] | list[ExtractedSignal]
) -> list[ExtractedSignal]:
    names = SECTION_SIGNAL_MAP[PopulationSection(section)]
    return [s for s in signals if s.signal in names]


def detect_conflicts(signals: list[ExtractedSignal]) -> list[str]:
    """One message per signal name that has been given two or more distinct values."""
    values: dict[PrioritySignal, list[str]] = {}
    for s in signals:
        seen = values.setdefault(s.signal, [])
        if s.value not in seen:
            seen.append(s.value)

    return [
        f"Signal '{name.value}' has conflicting values: {' vs '.join(distinct)}"
        for name, distinct in values.items()
        if len(distinct) > 1
    ]


def evaluate_inference(section: PopulationSection, state: PipelineState) -> InferenceDecision:
    """Decide whether ``section`` can be inferred from the discovery signals."""
    section = PopulationSection(section)

    if section in NEVER_INFERRED:
        return InferenceDecision(
            section=section,
            can_infer=False,
            confidence=Confidence.LOW,
            justification=_NEVER_INFERRED_REASONS[section],
        )

    relevant = relevant_signals(section, state.discovery.signals)
    conflicts = detect_conflicts(relevant)
    if conflicts:
        return InferenceDecision(
            section=section,
            can_infer=False,
            confidence=Confidence.LOW,
            justification=(
                f"Conflicting signals detected: {'; '.join(conflicts)}. Must ask user to resolve."
            ),
            supporting_signals=tuple(relevant),
            conflicts=tuple(conflicts),
        )

    high = sum(1 for s in relevant if s.confidence == Confidence.HIGH)
    medium = sum(1 for s in relevant if s.confidence == Confidence.MEDIUM)

    if high >= 2:
        return InferenceDecision(
            section=section,
            can_infer=True,
            confidence=Confidence.HIGH,
            justification=f"{high} high-confidence signals converge. Safe to infer.",
            supporting_signals=tuple(relevant),
        )

    if high >= 1 and medium >= 1:
        return InferenceDecision(
            section=section,
            can_infer=True,
            confidence=Confidence.MEDIUM,
            justification=(
                f"Mixed confidence signals ({high} high, {medium} medium) but directionally "
                "consistent. Can infer with flagging."
            ),
            supporting_signals=tuple(relevant),
        )

    return InferenceDecision(
        section=section,
        can_infer=False,
        confidence=Confidence.LOW,
        justification="Insufficient signal strength to infer safely. Must ask user.",
        supporting_signals=tuple(relevant),
    )


def check_cross_section_consistency(section: PopulationSection, state: PipelineState) -> list[str]:
    """
    Advisory warnings when a newly populated section sits oddly with the rubric.

    Never blocks advancement.
    """
    section = PopulationSection(section)
    partial = state.partial_persona
    rubric = partial.rubric
    warnings: list[str] = []

    if rubric is None:
        return warnings

    if section == PopulationSection.REASONING and rubric.evidence_threshold.score >= 7:
        reasoning = partial.reasoning
        if reasoning is not None and not reasoning.systematically_questions:
            warnings.append(
                "Reasoning has no systematically questioned items, but the rubric shows a "
                "high evidence threshold. These should align."
            )

    if section == PopulationSection.INTERACTION and rubric.intervention_frequency.score >= 7:
        interaction = partial.interaction
        if (
            interaction is not None
            and interaction.primary_mode == PrimaryMode.QUESTIONS
            and interaction.challenge_strength == ChallengeStrength.GENTLE
        ):
            warnings.append(
                "Interaction shows gentle questioning, but the rubric indicates high "
                "intervention frequency. Consider whether the persona actively intervenes "
                "with questions or remains more passive."
            )

    return warnings

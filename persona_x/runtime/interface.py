"""
Panel Runtime Interface — the contract between persona files and the panels that use them.

A persona file is consumed read-only: it is loaded once, wrapped in a
:class:`LoadedPersona`, and rendered into a deterministic system prompt
that shapes every response the persona gives in a panel.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field

from persona_x.schema.persona import PersonaFile
from persona_x.schema.rubric import RUBRIC_DIMENSION_LABELS, RUBRIC_DIMENSIONS


class Moderation(str, enum.Enum):
    NONE = "none"
    LIGHT = "light"
    STRICT = "strict"


class LoadedPersona(BaseModel):
    """A persona loaded and ready for use in a panel."""

    model_config = {"frozen": True}

    file: PersonaFile
    id: str
    active: bool = True

    @property
    def name(self) -> str:
        return self.file.metadata.name

    @property
    def intervention_frequency(self) -> int:
        return self.file.rubric.intervention_frequency.score


class RubricInfluence(BaseModel):
    """How the rubric shaped one particular response."""

    dominant_dimensions: list[str] = Field(default_factory=list)
    behaviour_notes: list[str] = Field(default_factory=list)


class PanelMessage(BaseModel):
    persona_id: str
    persona_name: str
    content: str
    timestamp: str
    rubric_influence: RubricInfluence = Field(default_factory=RubricInfluence)


class PanelConfig(BaseModel):
    topic: str
    context: str
    personas: list[LoadedPersona]
    max_rounds: int = Field(ge=1)
    moderation: Moderation = Moderation.LIGHT


class PanelRound(BaseModel):
    round_number: int = Field(ge=1)
    messages: list[PanelMessage]
    summary: str


def _bullets(lines: list[str], items: list[str]) -> None:
    lines.extend(f"- {item}" for item in items)


def generate_persona_system_prompt(persona: PersonaFile) -> str:
    """
    Render the system prompt that embodies a persona.

    The prompt is a pure function of the persona definition: purpose,
    functional contribution, the full rubric with notes, reasoning
    tendencies, interaction style and boundaries, followed by the
    knowledge base contract when the persona carries one.
    """
    lines: list[str] = [f"You are {persona.metadata.name}.", ""]

    lines += ["## Your Role", persona.purpose.description, ""]

    role = persona.panel_role
    lines += [
        "## Your Functional Contribution",
        f"Contribution type: {role.contribution_type}",
        role.expected_value,
        "",
        "Failure modes you exist to surface:",
    ]
    _bullets(lines, role.failure_modes_surfaced)
    lines.append("")

    lines.append("## Your Judgement Profile")
    for dim in RUBRIC_DIMENSIONS:
        score = getattr(persona.rubric, dim)
        label = RUBRIC_DIMENSION_LABELS[dim]
        lines.append(f"{label}: {score.score}/10 — {score.note}")
    lines.append("")

    reasoning = persona.reasoning
    lines += ["## How You Reason", "Default assumptions:"]
    _bullets(lines, reasoning.default_assumptions)
    lines += ["", "You notice first:"]
    _bullets(lines, reasoning.notices_first)
    lines += ["", "You systematically question:"]
    _bullets(lines, reasoning.systematically_questions)
    lines += ["", f"Under pressure: {reasoning.under_pressure}", ""]

    interaction = persona.interaction
    lines += [
        "## How You Interact",
        f"Primary mode: {interaction.primary_mode.value}",
        f"Challenge strength: {interaction.challenge_strength.value}",
        f"When input is poor: {interaction.handles_poor_input}",
        "",
        "You remain silent when:",
    ]
    _bullets(lines, interaction.silent_when)
    lines.append("")

    boundaries = persona.boundaries
    lines += ["## Boundaries", "Will not engage on:"]
    _bullets(lines, boundaries.will_not_engage)
    lines += ["", "Will not claim:"]
    _bullets(lines, boundaries.will_not_claim)
    lines += ["", "Defers by design to:"]
    _bullets(lines, boundaries.defers_by_design)

    kb = persona.knowledge_base
    if kb is not None:
        contract = kb.contract
        lines += [
            "",
            "## Your Knowledge Base",
            contract.purpose,
            f"Permitted uses: {', '.join(use.value for use in contract.permitted_uses)}",
            f"Currency: {contract.currency_rule}",
            f"Citation: {contract.citation_behaviour}",
            f"Does not cover: {contract.coverage_limits}",
            "",
            "Never use it to:",
        ]
        _bullets(lines, contract.prohibited_uses)
        lines += ["", "Items:"]
        _bullets(lines, [f"{item.id} {item.title}: {item.scope}" for item in kb.items])

    return "\n".join(lines)


def select_personas_for_topic(topic: str, personas: list[LoadedPersona]) -> list[LoadedPersona]:
    """
    Personas eligible for a panel on ``topic``.

    Only the ``active`` flag is considered. ``topic`` is not matched
    against invocation cues; callers choose the panel explicitly.
    """
    return [p for p in personas if p.active]

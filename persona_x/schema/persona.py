"""
Persona Schema — Pydantic models for persona definition files.

A persona file is the canonical description of one panel member:
what it is for, what it contributes, how it judges (the rubric),
how it reasons and interacts, and what it will never do. Panel
runtime code consumes these read-only.

Sections:
    metadata      — name, type, owner, version, audience
    purpose       — what the persona is for and when to invoke it
    bio           — professional background and how it shapes perspective
    panel_role    — functional contribution and failure modes surfaced
    rubric        — six-dimension judgement profile
    reasoning     — default assumptions, what it notices and questions
    interaction   — challenge style and silence conditions
    communication — optional clarity/brevity and tone preferences
    boundaries    — refusals, non-claims and deliberate deferrals
    knowledge_base — optional reference material and its use contract
    invocation    — concrete include / exclude cues
    provenance    — optional creation and version history
"""

from __future__ import annotations

import enum
from datetime import date
from typing import Any

from pydantic import BaseModel, Field, field_validator

from persona_x.schema.knowledge_base import KnowledgeBase
from persona_x.schema.rubric import RubricProfile
from persona_x.schema.validation import ValidationResult, validate_model


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class PersonaType(str, enum.Enum):
    """designed = created from scratch; human_derived = based on a real person's patterns."""

    DESIGNED = "designed"
    HUMAN_DERIVED = "human_derived"


class PrimaryMode(str, enum.Enum):
    QUESTIONS = "questions"
    ASSERTIONS = "assertions"
    MIXED = "mixed"


class ChallengeStrength(str, enum.Enum):
    GENTLE = "gentle"
    MODERATE = "moderate"
    STRONG = "strong"
    CONFRONTATIONAL = "confrontational"


class ClarityPreference(str, enum.Enum):
    CLARITY = "clarity"
    BREVITY = "brevity"
    BALANCED = "balanced"


# ════════════════════════════════════════════════════════════════
# Sections
# ════════════════════════════════════════════════════════════════


class PersonaMetadata(BaseModel):
    name: str = Field(min_length=1)
    type: PersonaType
    owner: str = Field(min_length=1)
    version: str = Field(default="1.0.0", pattern=r"^\d+\.\d+\.\d+$")
    last_updated: str
    audience: str = Field(min_length=1)

    @field_validator("last_updated", mode="before")
    @classmethod
    def _date_to_string(cls, value: Any) -> Any:
        # YAML loaders turn bare ISO dates into date objects
        if isinstance(value, date):
            return value.isoformat()
        return value


class PersonaPurpose(BaseModel):
    description: str = Field(min_length=1)
    invoke_when: list[str] = Field(min_length=1)
    do_not_invoke_when: list[str] = Field(min_length=1)


class PersonaBio(BaseModel):
    background: str = Field(min_length=1)
    perspective_origin: str = Field(min_length=1)


class PanelRole(BaseModel):
    contribution_type: str = Field(min_length=1)
    expected_value: str = Field(min_length=1)
    failure_modes_surfaced: list[str] = Field(min_length=1)


class ReasoningTendencies(BaseModel):
    default_assumptions: list[str] = Field(min_length=1)
    notices_first: list[str] = Field(min_length=1)
    systematically_questions: list[str] = Field(min_length=1)
    under_pressure: str = Field(min_length=1)


class InteractionStyle(BaseModel):
    primary_mode: PrimaryMode
    challenge_strength: ChallengeStrength
    silent_when: list[str] = Field(min_length=1)
    handles_poor_input: str = Field(min_length=1)


class CommunicationStyle(BaseModel):
    clarity_vs_brevity: ClarityPreference
    structure_preference: str | None = None
    tone_markers: list[str] | None = None


class Boundaries(BaseModel):
    will_not_engage: list[str] = Field(min_length=1)
    will_not_claim: list[str] = Field(min_length=1)
    defers_by_design: list[str] = Field(min_length=1)


class InvocationCues(BaseModel):
    include_when: list[str] = Field(min_length=1)
    exclude_when: list[str] = Field(min_length=1)


class ProvenanceEntry(BaseModel):
    version: str
    date: str
    author: str
    changes: list[str] = Field(min_length=1)

    @field_validator("date", mode="before")
    @classmethod
    def _date_to_string(cls, value: Any) -> Any:
        if isinstance(value, date):
            return value.isoformat()
        return value


class Provenance(BaseModel):
    created_by: str
    history: list[ProvenanceEntry] | None = None


class PersonaFile(BaseModel):
    """The complete persona definition file."""

    metadata: PersonaMetadata
    purpose: PersonaPurpose
    bio: PersonaBio
    panel_role: PanelRole
    rubric: RubricProfile
    reasoning: ReasoningTendencies
    interaction: InteractionStyle
    communication: CommunicationStyle | None = None
    boundaries: Boundaries
    invocation: InvocationCues
    knowledge_base: KnowledgeBase | None = None
    provenance: Provenance | None = None


def validate_persona_file(data: Any) -> ValidationResult[PersonaFile]:
    """Validate a raw mapping (e.g. parsed YAML) as a PersonaFile."""
    return validate_model(PersonaFile, data)

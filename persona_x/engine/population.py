"""
Population Pipeline — builds a persona file section by section in a fixed order.

Order:
    purpose → panel_role → rubric → reasoning → interaction → boundaries → optional

Each section is written through a typed payload: a tagged union over
the seven section names in which every member carries its own data
type and knows which slot of the partial persona it fills. Recording
a section and advancing past it are separate steps, so a caller can
validate or display a section before committing to it.

Invariants:
- sections are recorded only when current, and at most once
- purpose and boundaries are never populated by inference
- the optional section may be skipped (or flagged) without blocking completeness
"""

from __future__ import annotations

import enum
import logging
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from persona_x.engine.discovery import Confidence, DiscoveryState
from persona_x.schema.persona import (
    Boundaries,
    CommunicationStyle,
    InteractionStyle,
    InvocationCues,
    PanelRole,
    PersonaBio,
    PersonaFile,
    PersonaMetadata,
    PersonaPurpose,
    Provenance,
    ReasoningTendencies,
    validate_persona_file,
)
from persona_x.schema.rubric import RubricProfile
from persona_x.schema.validation import (
    SchemaValidationError,
    ValidationResult,
    issues_from_error,
)

logger = logging.getLogger(__name__)


class PopulationError(ValueError):
    """Raised when a section is recorded out of order, twice, or by forbidden inference."""
    pass


class PopulationSection(str, enum.Enum):
    PURPOSE = "purpose"
    PANEL_ROLE = "panel_role"
    RUBRIC = "rubric"
    REASONING = "reasoning"
    INTERACTION = "interaction"
    BOUNDARIES = "boundaries"
    OPTIONAL = "optional"


POPULATION_ORDER: tuple[PopulationSection, ...] = (
    PopulationSection.PURPOSE,
    PopulationSection.PANEL_ROLE,
    PopulationSection.RUBRIC,
    PopulationSection.REASONING,
    PopulationSection.INTERACTION,
    PopulationSection.BOUNDARIES,
    PopulationSection.OPTIONAL,
)

REQUIRED_SECTIONS: tuple[PopulationSection, ...] = POPULATION_ORDER[:6]

NEVER_INFERRED: frozenset[PopulationSection] = frozenset(
    {PopulationSection.PURPOSE, PopulationSection.BOUNDARIES}
)


class PopulationMethod(str, enum.Enum):
    DIRECT_INPUT = "direct_input"
    STRUCTURED_CHOICE = "structured_choice"
    SCENARIO_BASED = "scenario_based"
    INFERENCE = "inference"


# ════════════════════════════════════════════════════════════════
# Partial Persona & Section Payloads
# ════════════════════════════════════════════════════════════════


class PartialPersona(BaseModel):
    """The persona under construction. Each slot is written exactly once."""

    model_config = {"frozen": True}

    purpose: PersonaPurpose | None = None
    panel_role: PanelRole | None = None
    rubric: RubricProfile | None = None
    reasoning: ReasoningTendencies | None = None
    interaction: InteractionStyle | None = None
    boundaries: Boundaries | None = None
    communication: CommunicationStyle | None = None
    invocation: InvocationCues | None = None
    bio: PersonaBio | None = None


class OptionalSections(BaseModel):
    communication: CommunicationStyle | None = None
    invocation: InvocationCues | None = None
    bio: PersonaBio | None = None


class PurposePayload(BaseModel):
    section: Literal["purpose"] = "purpose"
    data: PersonaPurpose

    def apply_to(self, partial: PartialPersona) -> PartialPersona:
        return partial.model_copy(update={"purpose": self.data})


class PanelRolePayload(BaseModel):
    section: Literal["panel_role"] = "panel_role"
    data: PanelRole

    def apply_to(self, partial: PartialPersona) -> PartialPersona:
        return partial.model_copy(update={"panel_role": self.data})


class RubricPayload(BaseModel):
    section: Literal["rubric"] = "rubric"
    data: RubricProfile

    def apply_to(self, partial: PartialPersona) -> PartialPersona:
        return partial.model_copy(update={"rubric": self.data})


class ReasoningPayload(BaseModel):
    section: Literal["reasoning"] = "reasoning"
    data: ReasoningTendencies

    def apply_to(self, partial: PartialPersona) -> PartialPersona:
        return partial.model_copy(update={"reasoning": self.data})


class InteractionPayload(BaseModel):
    section: Literal["interaction"] = "interaction"
    data: InteractionStyle

    def apply_to(self, partial: PartialPersona) -> PartialPersona:
        return partial.model_copy(update={"interaction": self.data})


class BoundariesPayload(BaseModel):
    section: Literal["boundaries"] = "boundaries"
    data: Boundaries

    def apply_to(self, partial: PartialPersona) -> PartialPersona:
        return partial.model_copy(update={"boundaries": self.data})


class OptionalPayload(BaseModel):
    section: Literal["optional"] = "optional"
    data: OptionalSections

    def apply_to(self, partial: PartialPersona) -> PartialPersona:
        provided = {
            key: getattr(self.data, key)
            for key in ("communication", "invocation", "bio")
            if getattr(self.data, key) is not None
        }
        return partial.model_copy(update=provided)


SectionPayload = Annotated[
    Union[
        PurposePayload,
        PanelRolePayload,
        RubricPayload,
        ReasoningPayload,
        InteractionPayload,
        BoundariesPayload,
        OptionalPayload,
    ],
    Field(discriminator="section"),
]

SECTION_PAYLOADS: dict[PopulationSection, type[BaseModel]] = {
    PopulationSection.PURPOSE: PurposePayload,
    PopulationSection.PANEL_ROLE: PanelRolePayload,
    PopulationSection.RUBRIC: RubricPayload,
    PopulationSection.REASONING: ReasoningPayload,
    PopulationSection.INTERACTION: InteractionPayload,
    PopulationSection.BOUNDARIES: BoundariesPayload,
    PopulationSection.OPTIONAL: OptionalPayload,
}

if set(SECTION_PAYLOADS) != set(PopulationSection):
    raise RuntimeError("Every population section needs a payload type")

_PAYLOAD_ADAPTER: TypeAdapter = TypeAdapter(SectionPayload)


def parse_section_payload(section: PopulationSection, data: object) -> SectionPayload:
    """
    Validate raw section data into its typed payload.

    Raises:
        SchemaValidationError: If the data does not fit the section's schema.
    """
    section = PopulationSection(section)
    try:
        return _PAYLOAD_ADAPTER.validate_python({"section": section.value, "data": data})
    except ValidationError as e:
        raise SchemaValidationError(f"{section.value} section", issues_from_error(e)) from e


# ════════════════════════════════════════════════════════════════
# Pipeline State
# ════════════════════════════════════════════════════════════════


class PopulationRecord(BaseModel):
    """How one section was populated."""

    model_config = {"frozen": True}

    section: PopulationSection
    method: PopulationMethod
    confidence: Confidence
    source_signals: tuple[str, ...] = ()
    inferred: bool = False
    inference_justification: str | None = None


class FlaggedSection(BaseModel):
    model_config = {"frozen": True}

    section: PopulationSection
    reason: str


class PipelineState(BaseModel):
    model_config = {"frozen": True}

    current_section_index: int = 0
    completed_sections: tuple[PopulationSection, ...] = ()
    records: tuple[PopulationRecord, ...] = ()
    partial_persona: PartialPersona = PartialPersona()
    discovery: DiscoveryState
    flagged_sections: tuple[FlaggedSection, ...] = ()


def create_pipeline_state(discovery: DiscoveryState) -> PipelineState:
    return PipelineState(discovery=discovery)


def get_current_section(state: PipelineState) -> PopulationSection | None:
    if state.current_section_index >= len(POPULATION_ORDER):
        return None
    return POPULATION_ORDER[state.current_section_index]


def advance_section(state: PipelineState) -> PipelineState:
    """Mark the current section complete and move on. No-op past the end."""
    current = get_current_section(state)
    if current is None:
        return state
    return state.model_copy(
        update={
            "current_section_index": state.current_section_index + 1,
            "completed_sections": state.completed_sections + (current,),
        }
    )


def record_population(
    state: PipelineState,
    payload: SectionPayload,
    method: PopulationMethod,
    confidence: Confidence = Confidence.MEDIUM,
    source_signals: list[str] | tuple[str, ...] = (),
    inference_justification: str | None = None,
) -> PipelineState:
    """
    Write a section into the partial persona and log how it was populated.

    Does not advance; call :func:`advance_section` to commit.

    Raises:
        PopulationError: If the section is not current, was already
            recorded, or is purpose/boundaries populated by inference.
    """
    section = PopulationSection(payload.section)
    current = get_current_section(state)

    if section != current:
        raise PopulationError(
            f"Cannot record '{section.value}': current section is "
            f"'{current.value if current else 'none'}'"
        )
    if any(record.section == section for record in state.records):
        raise PopulationError(f"Section '{section.value}' has already been recorded")
    if method == PopulationMethod.INFERENCE and section in NEVER_INFERRED:
        raise PopulationError(f"Section '{section.value}' must come from direct user input")

    record = PopulationRecord(
        section=section,
        method=method,
        confidence=confidence,
        source_signals=tuple(source_signals),
        inferred=method == PopulationMethod.INFERENCE,
        inference_justification=inference_justification,
    )
    logger.info("Section %s recorded via %s (%s)", section.value, method.value, confidence.value)

    return state.model_copy(
        update={
            "records": state.records + (record,),
            "partial_persona": payload.apply_to(state.partial_persona),
        }
    )


def flag_section(state: PipelineState, section: PopulationSection, reason: str) -> PipelineState:
    """Flag a section for later manual refinement."""
    section = PopulationSection(section)
    logger.warning("Section %s flagged: %s", section.value, reason)
    return state.model_copy(
        update={
            "flagged_sections": state.flagged_sections
            + (FlaggedSection(section=section, reason=reason),)
        }
    )


def is_pipeline_complete(state: PipelineState) -> bool:
    """True once all six required sections have been advanced through."""
    return all(section in state.completed_sections for section in REQUIRED_SECTIONS)


def generate_build_trace(state: PipelineState) -> str:
    """Markdown record of how each section was built."""
    lines = [
        "# Build Trace",
        "",
        f"Sections populated: {len(state.completed_sections)}/{len(POPULATION_ORDER)}",
        "",
    ]

    for record in state.records:
        lines.append(f"## {record.section.value}")
        lines.append(f"- Method: {record.method.value}")
        lines.append(f"- Confidence: {record.confidence.value}")
        if record.inferred and record.inference_justification:
            lines.append(f"- Inference: {record.inference_justification}")
        lines.append(f"- Source signals: {', '.join(record.source_signals) or 'none'}")
        lines.append("")

    if state.flagged_sections:
        lines.append("## Flagged for refinement")
        for flagged in state.flagged_sections:
            lines.append(f"- {flagged.section.value}: {flagged.reason}")
        lines.append("")

    return "\n".join(lines)


def assemble_persona(
    state: PipelineState,
    metadata: PersonaMetadata,
    provenance: Provenance | None = None,
) -> ValidationResult[PersonaFile]:
    """Combine the populated sections with metadata and validate the full persona file."""
    data = state.partial_persona.model_dump(mode="json", exclude_none=True)
    data["metadata"] = metadata.model_dump(mode="json")
    data["provenance"] = (
        provenance.model_dump(mode="json", exclude_none=True)
        if provenance
        else {"created_by": "persona-x population pipeline"}
    )
    return validate_persona_file(data)

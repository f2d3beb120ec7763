"""
Persona Engine — coordinates end-to-end persona creation.

Phases: discovery → population → review → complete.

The engine holds no I/O of its own. An interface (CLI or web) asks
``get_next_action`` what to do, performs it (asking the user, or
calling the generation steps), and feeds the results back through
the discovery and population functions.
"""

from __future__ import annotations

import enum
import logging
from typing import Any

from pydantic import BaseModel, Field

from persona_x.engine.discovery import (
    DiscoveryState,
    complete_discovery,
    create_discovery_state,
    has_signal_sufficiency,
    select_next_question,
)
from persona_x.engine.inference import evaluate_inference
from persona_x.engine.population import (
    PipelineState,
    assemble_persona,
    create_pipeline_state,
    generate_build_trace,
    get_current_section,
    is_pipeline_complete,
)
from persona_x.engine.scorer import format_rubric_profile
from persona_x.schema.persona import PersonaFile, PersonaMetadata, Provenance
from persona_x.schema.validation import SchemaValidationError

logger = logging.getLogger(__name__)


class EnginePhase(str, enum.Enum):
    DISCOVERY = "discovery"
    POPULATION = "population"
    REVIEW = "review"
    COMPLETE = "complete"


class ActionType(str, enum.Enum):
    ASK_USER = "ask_user"
    PRESENT_CHOICE = "present_choice"
    INFER_AND_CONFIRM = "infer_and_confirm"
    GENERATE_SECTION = "generate_section"
    PRESENT_FILE = "present_file"


class EngineState(BaseModel):
    model_config = {"frozen": True}

    phase: EnginePhase = EnginePhase.DISCOVERY
    discovery: DiscoveryState = Field(default_factory=create_discovery_state)
    pipeline: PipelineState | None = None
    persona: PersonaFile | None = None
    build_trace: str | None = None


class EngineAction(BaseModel):
    """What the interface should do next. ``payload`` depends on ``type``."""

    model_config = {"frozen": True}

    type: ActionType
    payload: dict[str, Any] = Field(default_factory=dict)


def create_engine_state() -> EngineState:
    return EngineState()


def get_next_action(state: EngineState) -> EngineAction:
    """The main decision loop driving persona creation."""
    if state.phase == EnginePhase.DISCOVERY:
        if has_signal_sufficiency(state.discovery):
            return EngineAction(
                type=ActionType.PRESENT_CHOICE,
                payload={
                    "message": (
                        "I have enough signal to generate a persona file. Shall I proceed, "
                        "or do you want to add more detail?"
                    ),
                    "options": ["Proceed to generation", "Add more detail"],
                },
            )
        question = select_next_question(state.discovery)
        return EngineAction(type=ActionType.ASK_USER, payload={"question": question})

    if state.phase == EnginePhase.POPULATION:
        if state.pipeline is None:
            return EngineAction(
                type=ActionType.GENERATE_SECTION, payload={"section": "initialise_pipeline"}
            )

        section = get_current_section(state.pipeline)
        if section is None:
            return EngineAction(
                type=ActionType.PRESENT_FILE,
                payload={"message": "All sections populated. Generating final persona file."},
            )

        decision = evaluate_inference(section, state.pipeline)
        if decision.can_infer:
            return EngineAction(
                type=ActionType.INFER_AND_CONFIRM,
                payload={
                    "section": section,
                    "confidence": decision.confidence,
                    "justification": decision.justification,
                },
            )
        return EngineAction(
            type=ActionType.ASK_USER,
            payload={
                "section": section,
                "message": f"I need your input for {section.value}. {decision.justification}",
            },
        )

    if state.phase == EnginePhase.REVIEW:
        return EngineAction(
            type=ActionType.PRESENT_FILE,
            payload={
                "message": (
                    "Here is the complete persona file for your review. You can accept it "
                    "or refine specific sections."
                )
            },
        )

    return EngineAction(
        type=ActionType.PRESENT_FILE, payload={"message": "Persona file is finalised."}
    )


def transition_to_population(state: EngineState) -> EngineState:
    """Close discovery and open a fresh population pipeline over its signals."""
    discovery = complete_discovery(state.discovery)
    logger.info("Engine entering population with %d signals", len(discovery.signals))
    return state.model_copy(
        update={
            "phase": EnginePhase.POPULATION,
            "discovery": discovery,
            "pipeline": create_pipeline_state(discovery),
        }
    )


def transition_to_review(state: EngineState) -> EngineState:
    trace = generate_build_trace(state.pipeline) if state.pipeline else None
    return state.model_copy(update={"phase": EnginePhase.REVIEW, "build_trace": trace})


def finalise_persona(
    state: EngineState,
    metadata: PersonaMetadata,
    provenance: Provenance | None = None,
) -> EngineState:
    """
    Assemble and validate the persona, moving the engine to ``complete``.

    Raises:
        ValueError: If population has not finished all required sections.
        SchemaValidationError: If the assembled persona file is invalid.
    """
    if state.pipeline is None or not is_pipeline_complete(state.pipeline):
        raise ValueError("Persona cannot be finalised before all required sections are populated")

    result = assemble_persona(state.pipeline, metadata, provenance)
    if not result.success:
        raise SchemaValidationError("persona file", result.errors)

    logger.info("Persona '%s' finalised", metadata.name)
    return state.model_copy(update={"phase": EnginePhase.COMPLETE, "persona": result.data})


def get_rubric_summary(state: EngineState) -> str | None:
    if state.pipeline is None or state.pipeline.partial_persona.rubric is None:
        return None
    return format_rubric_profile(state.pipeline.partial_persona.rubric)

"""
Generation — LLM-backed steps of persona creation.

Discovery:
    extract_purpose                  — purpose and domain context from a free description
    extract_signals                  — priority signals from an answer to a discovery question
    generate_conversational_question — rephrase a bank question for the user

Population:
    generate_section  — one section, validated into its typed payload
    populate_persona  — walk every section, asking or inferring, recording as it goes

All section output is validated before it is accepted. Invalid output
surfaces as SchemaValidationError (or JSONExtractionError when no JSON
could be found at all).
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from persona_x.config import settings
from persona_x.engine.discovery import (
    Confidence,
    DiscoveryQuestion,
    DiscoveryState,
    ExtractedSignal,
    PrioritySignal,
)
from persona_x.engine.inference import check_cross_section_consistency, evaluate_inference
from persona_x.engine.population import (
    PipelineState,
    PopulationMethod,
    PopulationSection,
    SectionPayload,
    advance_section,
    flag_section,
    get_current_section,
    parse_section_payload,
    record_population,
)
from persona_x.llm.client import JSONExtractionError, LLMClient, LLMServiceError
from persona_x.schema.rubric import RUBRIC_DIMENSION_LABELS
from persona_x.schema.validation import SchemaValidationError

logger = logging.getLogger(__name__)

AskUser = Callable[[PopulationSection, str], Awaitable[str]]

SECTION_TEMPERATURE = 0.5


# ════════════════════════════════════════════════════════════════
# Discovery
# ════════════════════════════════════════════════════════════════

SIGNAL_EXTRACTION_SYSTEM = """You are an expert signal extractor for Persona-x.
Analyse a user's response to a discovery question and extract structured signals.

The five priority signals are:
1. discomfort_triggers: what makes this persona uncomfortable or causes it to push back
2. evidence_change_thresholds: how much evidence is needed before accepting or changing position
3. ambiguity_handling: how the persona deals with incomplete information or unclear situations
4. pressure_behaviour: how the persona behaves under time pressure or conflict
5. deferral_preferences: when and how the persona defers to others or sets boundaries

Rate confidence for each signal you detect:
- high: the response directly and clearly addresses this signal
- medium: the response implies this signal through context
- low: the response only tangentially touches this signal

Respond ONLY with a JSON array. Each item has "signal", "value" and "confidence".
Only include signals that are genuinely present. Return [] if none are."""

PURPOSE_EXTRACTION_SYSTEM = """You are the Persona-x purpose extraction engine. Given a user's
description of the persona they want to create, extract:
1. purpose: what this persona does in a panel (1-2 sentences)
2. context: the domain, industry or situation (1 sentence, or null if not provided)

Use Australian English spelling. Describe judgement and reasoning, not character.

Respond with a JSON object: {"purpose": "...", "context": "..."}"""


async def extract_purpose(llm: LLMClient, description: str) -> dict[str, str | None]:
    """Returns ``{"purpose": str, "context": str | None}``."""

    def _validate(data: Any) -> dict[str, str | None]:
        if not isinstance(data, dict):
            raise SchemaValidationError("purpose extraction", [])
        context = data.get("context")
        return {
            "purpose": str(data.get("purpose") or ""),
            "context": str(context) if context else None,
        }

    return await llm.complete_structured(
        PURPOSE_EXTRACTION_SYSTEM,
        [{"role": "user", "content": description}],
        validator=_validate,
        max_tokens=512,
        temperature=0.3,
        model=settings.population_model,
    )


def _coerce_signals(data: Any, question_id: str) -> list[ExtractedSignal]:
    if not isinstance(data, list):
        raise SchemaValidationError("signal extraction", [])

    known = {s.value for s in PrioritySignal}
    signals = []
    for item in data:
        if not isinstance(item, dict):
            continue
        name = str(item.get("signal", ""))
        if name not in known:
            logger.debug("Dropping unknown signal %r from question %s", name, question_id)
            continue
        confidence = str(item.get("confidence", ""))
        signals.append(
            ExtractedSignal(
                signal=PrioritySignal(name),
                value=str(item.get("value", "")),
                confidence=(
                    Confidence(confidence)
                    if confidence in {c.value for c in Confidence}
                    else Confidence.MEDIUM
                ),
                source_question_id=question_id,
            )
        )
    return signals


async def extract_signals(
    llm: LLMClient, question: DiscoveryQuestion, response: str
) -> list[ExtractedSignal]:
    """
    Extract priority signals from the user's answer to ``question``.

    Unknown signal names are dropped; an unknown confidence is read as medium.
    """
    lines = [f'Discovery question asked:\n"{question.text}"']
    if question.options:
        lines.append(f"Options presented: {', '.join(question.options)}")
    if question.scenario_context:
        lines.append(f"Scenario context: {question.scenario_context}")
    lines.append(f'\nUser\'s response:\n"{response}"\n')
    targets = ", ".join(t.value for t in question.targets) or "general purpose establishment"
    lines.append(f"Extract all priority signals. The question targeted: {targets}")

    return await llm.complete_structured(
        SIGNAL_EXTRACTION_SYSTEM,
        [{"role": "user", "content": "\n".join(lines)}],
        validator=lambda data: _coerce_signals(data, question.id),
        max_tokens=1024,
        temperature=0.3,
        model=settings.population_model,
    )


async def generate_conversational_question(
    llm: LLMClient, question: DiscoveryQuestion, state: DiscoveryState
) -> str:
    if state.persona_purpose:
        context = f'The persona\'s purpose has been established as: "{state.persona_purpose}"'
    else:
        context = "We are still establishing the persona's core purpose."
    if state.signals:
        gathered = "; ".join(f"{s.signal.value}: {s.value}" for s in state.signals)
        previous = f"Signals gathered so far: {gathered}"
    else:
        previous = "No signals gathered yet."

    lines = [
        "You are guiding a user through persona creation for Persona-x.",
        "",
        context,
        previous,
        "",
        "The next structured question to ask is:",
        f"Type: {question.type.value}",
        f'Text: "{question.text}"',
    ]
    if question.options:
        lines.append(f"Options: {' | '.join(question.options)}")
    if question.spectrum_anchors:
        anchors = question.spectrum_anchors
        lines.append(f"Spectrum: {anchors.low} <-> {anchors.high}")
    if question.scenario_context:
        lines.append(f"Scenario: {question.scenario_context}")
    lines += [
        "",
        "Rephrase this as a natural, direct, decision-oriented question in Australian English "
        "that preserves its intent. Respond with ONLY the question text.",
    ]

    response = await llm.complete(
        None,
        [{"role": "user", "content": "\n".join(lines)}],
        max_tokens=512,
        temperature=0.6,
        model=settings.population_model,
    )
    return response.content.strip()


# ════════════════════════════════════════════════════════════════
# Population
# ════════════════════════════════════════════════════════════════

POPULATION_SYSTEM = """You are the Persona-x population engine. You generate structured persona
file sections from discovery signals.

Rules:
- Use Australian English spelling
- Generate functional descriptions, not character descriptions
- Focus on judgement, reasoning and decision-making patterns
- All array fields must have at least one item
- Respond ONLY with the JSON object for the requested section"""

_SECTION_SHAPES: dict[PopulationSection, str] = {
    PopulationSection.PURPOSE: (
        "- description: 1-2 sentences on what this persona does in a panel\n"
        "- invoke_when: situations where this persona should be activated (min 1)\n"
        "- do_not_invoke_when: situations where it should NOT be activated (min 1)"
    ),
    PopulationSection.PANEL_ROLE: (
        "- contribution_type: challenger, integrator, sense-checker, specialist or facilitator\n"
        "- expected_value: what this persona contributes to a panel (1-2 sentences)\n"
        "- failure_modes_surfaced: failure modes this persona exists to catch (min 1)"
    ),
    PopulationSection.RUBRIC: "\n".join(
        f"- {key}: {label} (score 1-10 integer, note of at least 10 characters)"
        for key, label in RUBRIC_DIMENSION_LABELS.items()
    )
    + "\nAvoid every dimension clustering at 5; give the profile a distinctive shape.",
    PopulationSection.REASONING: (
        "- default_assumptions: what this persona assumes unless told otherwise (min 1)\n"
        "- notices_first: what it pays attention to first (min 1)\n"
        "- systematically_questions: what it always challenges (min 1)\n"
        "- under_pressure: how it behaves when time or conflict escalates"
    ),
    PopulationSection.INTERACTION: (
        '- primary_mode: "questions" | "assertions" | "mixed"\n'
        '- challenge_strength: "gentle" | "moderate" | "strong" | "confrontational"\n'
        "- silent_when: situations where this persona stays quiet (min 1)\n"
        "- handles_poor_input: how it responds to vague or low-quality input"
    ),
    PopulationSection.BOUNDARIES: (
        "- will_not_engage: topics or activities it refuses to take part in (min 1)\n"
        "- will_not_claim: assertions it will never make (min 1)\n"
        "- defers_by_design: areas where it explicitly defers to others (min 1)"
    ),
    PopulationSection.OPTIONAL: (
        '- communication: {"clarity_vs_brevity": "clarity" | "brevity" | "balanced", '
        '"structure_preference": "...", "tone_markers": ["..."]}\n'
        '- invocation: {"include_when": ["..."], "exclude_when": ["..."]}\n'
        '- bio: {"background": "...", "perspective_origin": "..."}'
    ),
}

_SECTION_MAX_TOKENS: dict[PopulationSection, int] = {
    PopulationSection.RUBRIC: 2048,
    PopulationSection.OPTIONAL: 2048,
}


def format_signal_summary(state: PipelineState) -> str:
    if not state.discovery.signals:
        return "Discovery signals: none gathered yet."
    lines = ["Discovery signals:"]
    lines += [
        f"  - {s.signal.value} ({s.confidence.value}): {s.value}" for s in state.discovery.signals
    ]
    return "\n".join(lines)


def format_prior_sections(state: PipelineState) -> str:
    p = state.partial_persona
    lines = []
    if p.purpose:
        lines.append(f"Purpose: {p.purpose.description}")
    if p.panel_role:
        lines.append(f"Panel role: {p.panel_role.contribution_type}: {p.panel_role.expected_value}")
    if p.rubric:
        scores = ", ".join(
            f"{key}={getattr(p.rubric, key).score}" for key in RUBRIC_DIMENSION_LABELS
        )
        lines.append(f"Rubric: {scores}")
    if p.reasoning:
        lines.append(f"Notices first: {', '.join(p.reasoning.notices_first)}")
    if p.interaction:
        lines.append(
            f"Interaction: {p.interaction.primary_mode.value}, "
            f"{p.interaction.challenge_strength.value} challenge"
        )
    if p.boundaries:
        lines.append(f"Will not engage: {', '.join(p.boundaries.will_not_engage)}")
    return "\n".join(lines)


async def generate_section(
    llm: LLMClient,
    section: PopulationSection,
    state: PipelineState,
    user_input: str | None = None,
) -> SectionPayload:
    """
    Generate one persona section and validate it into its payload.

    Raises:
        LLMServiceError: On transport failure after retries.
        JSONExtractionError: If the output holds no JSON.
        SchemaValidationError: If the JSON does not fit the section.
    """
    section = PopulationSection(section)
    parts = [f'Generate the "{section.value}" section of a persona file.', ""]
    if state.discovery.persona_purpose:
        parts.append(f"Discovery purpose: {state.discovery.persona_purpose}")
    prior = format_prior_sections(state)
    if prior:
        parts.append(prior)
    if user_input:
        parts.append(f'User\'s input: "{user_input}"')
    parts += [
        format_signal_summary(state),
        "",
        "The section must have:",
        _SECTION_SHAPES[section],
        "",
        "Respond with a JSON object matching this structure.",
    ]

    return await llm.complete_structured(
        POPULATION_SYSTEM,
        [{"role": "user", "content": "\n".join(parts)}],
        validator=lambda data: parse_section_payload(section, data),
        max_tokens=_SECTION_MAX_TOKENS.get(section, 1024),
        temperature=SECTION_TEMPERATURE,
        model=settings.population_model,
    )


async def populate_persona(llm: LLMClient, state: PipelineState, ask_user: AskUser) -> PipelineState:
    """
    Populate every remaining section in order.

    Each section is inferred when the signals allow it and asked for
    otherwise. A section whose generation fails is flagged and skipped
    without retrying; cross-section warnings are logged, never blocking.
    """
    while True:
        section = get_current_section(state)
        if section is None:
            break
        decision = evaluate_inference(section, state)

        if decision.can_infer:
            user_input = None
            method = PopulationMethod.INFERENCE
        else:
            user_input = await ask_user(
                section, f"I need your input for {section.value}. {decision.justification}"
            )
            method = PopulationMethod.DIRECT_INPUT

        try:
            payload = await generate_section(llm, section, state, user_input)
        except (LLMServiceError, JSONExtractionError, SchemaValidationError) as e:
            state = advance_section(flag_section(state, section, f"Generation failed: {e}"))
            continue

        state = record_population(
            state,
            payload,
            method,
            confidence=decision.confidence if decision.can_infer else Confidence.HIGH,
            source_signals=[s.signal.value for s in decision.supporting_signals],
            inference_justification=decision.justification if decision.can_infer else None,
        )
        for warning in check_cross_section_consistency(section, state):
            logger.warning("Consistency warning for %s: %s", section.value, warning)
        state = advance_section(state)

    return state

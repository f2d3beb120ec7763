"""
Stage Runner — drives one decision stage end-to-end, and the full engine loop.

For the current stage:
1. Resolve the stage's four personas from the persona directory
2. Create a panel session (topic and context framed for the stage)
3. Run the stage's rounds: speaking order by intervention_frequency,
   contributors filtered per round, responses generated strictly in
   order so each persona sees those before it, then a round summary
4. Synthesise the full transcript into the stage artefact with one
   structured completion, validated before acceptance
5. Record the artefact in the pipeline (gate + audit entry)
6. Evaluate the cross-stage kill criteria

Persona load failures, transport failures and invalid artefacts all
propagate. The pipeline state passed in remains valid, so a failed
stage can be re-run from it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from persona_x.config import settings
from persona_x.decision.pipeline import (
    STAGE_PANELS,
    DecisionPipelineState,
    TranscriptMessage,
    TranscriptRound,
    advance_to_next_stage,
    check_kill_criteria,
    create_decision_pipeline,
    is_pipeline_done,
    mark_killed,
    record_stage_result,
)
from persona_x.decision.schema import (
    STAGE_ARTEFACT_MODELS,
    DecisionStage,
    StageArtefact,
    parse_artefact,
)
from persona_x.llm.client import LLMClient
from persona_x.runtime.discussion import generate_persona_response, generate_round_summary
from persona_x.runtime.interface import Moderation, PanelConfig, PanelMessage, PanelRound
from persona_x.runtime.loader import PersonaCache, load_required_personas
from persona_x.runtime.panel import (
    PanelSession,
    create_panel_session,
    determine_speaking_order,
    should_persona_contribute,
)

logger = logging.getLogger(__name__)

SYNTHESIS_MAX_TOKENS = 4096
SYNTHESIS_TEMPERATURE = 0.3

_ARTEFACT_TITLES: dict[DecisionStage, str] = {
    DecisionStage.PROPOSE: "Opportunity Brief",
    DecisionStage.CHALLENGE: "Challenge Report",
    DecisionStage.PROTOTYPE: "Prototype Specification",
    DecisionStage.EXECUTE: "Delivery Plan",
}


@dataclass
class StageRunResult:
    state: DecisionPipelineState
    transcript: list[TranscriptRound] = field(default_factory=list)
    kill_reason: str | None = None
    session: PanelSession | None = None


# ════════════════════════════════════════════════════════════════
# Stage framing
# ════════════════════════════════════════════════════════════════


def build_stage_topic(state: DecisionPipelineState) -> str:
    title = state.opportunity_title
    if state.current_stage == DecisionStage.PROPOSE:
        return f"Opportunity evaluation: {state.opportunity_input[:100]}"
    if state.current_stage == DecisionStage.CHALLENGE:
        return f"Adversarial challenge: {title}"
    if state.current_stage == DecisionStage.PROTOTYPE:
        return f"Prototype design: {title}"
    return f"Execution readiness: {title}"


def build_stage_context(state: DecisionPipelineState) -> str:
    brief = state.artefacts.opportunity_brief
    opportunity = brief.opportunity if brief else None

    if state.current_stage == DecisionStage.PROPOSE:
        return (
            "Evaluate this raw opportunity and structure it into a scored Opportunity Brief."
            f"\n\nOpportunity: {state.opportunity_input}"
        )
    if state.current_stage == DecisionStage.CHALLENGE:
        return "\n".join(
            [
                "Adversarially challenge this Opportunity Brief that passed Stage 1.",
                "",
                f"Title: {opportunity.title if opportunity else ''}",
                f"Problem: {opportunity.problem_statement if opportunity else ''}",
                f"Solution: {opportunity.proposed_solution if opportunity else ''}",
                f"Buyer: {opportunity.target_buyer if opportunity else ''}",
                f"Composite Score: {brief.scores.composite if brief else 0}/10",
            ]
        )

    lead = (
        "Design the minimum viable prototype for this validated opportunity."
        if state.current_stage == DecisionStage.PROTOTYPE
        else "Plan delivery and assess launch readiness for this opportunity."
    )
    lines = [
        lead,
        "",
        f"Opportunity: {opportunity.title if opportunity else ''}",
        f"Proposed solution: {opportunity.proposed_solution if opportunity else ''}",
    ]
    report = state.artefacts.challenge_report
    if report is not None and report.conditions_for_stage_3:
        lines += ["", "Conditions from the challenge stage:"]
        lines += [f"- {condition}" for condition in report.conditions_for_stage_3]
    return "\n".join(lines)


def format_transcript_for_synthesis(transcript: list[TranscriptRound]) -> str:
    blocks = []
    for r in transcript:
        messages = "\n\n".join(f"{m.persona_name}: {m.content}" for m in r.messages)
        blocks.append(
            f"--- Round {r.round_number} ---\n{messages}\n\nRound summary: {r.summary}"
        )
    return "\n\n".join(blocks)


def _to_transcript_round(panel_round: PanelRound) -> TranscriptRound:
    return TranscriptRound(
        round_number=panel_round.round_number,
        messages=tuple(
            TranscriptMessage(
                persona_name=m.persona_name, content=m.content, timestamp=m.timestamp
            )
            for m in panel_round.messages
        ),
        summary=panel_round.summary,
    )


# ════════════════════════════════════════════════════════════════
# Runner
# ════════════════════════════════════════════════════════════════


class StageRunner:
    """
    Runs decision stages against a persona directory and an LLM client.

    The persona cache is injected so separate runners can share or
    isolate loaded personas explicitly.
    """

    def __init__(
        self,
        llm: LLMClient,
        persona_dir: str | Path | None = None,
        persona_cache: PersonaCache | None = None,
        panel_model: str | None = None,
        synthesis_model: str | None = None,
        on_stage_complete: Callable[[StageRunResult], None] | None = None,
    ) -> None:
        """
        Args:
            llm: Completion client used for every generative call.
            persona_dir: Directory holding ``<slug>.yaml`` stage personas.
            persona_cache: Cache of loaded personas; a private one is created if omitted.
            panel_model: Model override for persona responses and round summaries.
            synthesis_model: Model override for artefact synthesis.
            on_stage_complete: Called with each stage result as the engine loop runs.
        """
        self.llm = llm
        self.persona_dir = Path(persona_dir) if persona_dir else settings.persona_dir
        self.persona_cache = persona_cache if persona_cache is not None else PersonaCache()
        self.panel_model = panel_model
        self.synthesis_model = synthesis_model
        self.on_stage_complete = on_stage_complete

    async def run_stage(self, state: DecisionPipelineState) -> StageRunResult:
        """
        Run the pipeline's current stage.

        Raises:
            ValueError: If the pipeline is no longer active.
            PersonaLoadError: If any stage persona cannot be loaded.
            LLMServiceError: If a generative call fails after retries.
            JSONExtractionError: If the synthesis output holds no JSON.
            SchemaValidationError: If the synthesised artefact is invalid.
        """
        if is_pipeline_done(state):
            raise ValueError(f"Cannot run a stage on a {state.status.value} pipeline")

        stage = state.current_stage
        panel = STAGE_PANELS[stage]
        personas = load_required_personas(panel.personas, self.persona_dir, self.persona_cache)

        topic = build_stage_topic(state)
        session = create_panel_session(
            PanelConfig(
                topic=topic,
                context=build_stage_context(state),
                personas=personas,
                max_rounds=panel.rounds,
                moderation=Moderation.LIGHT,
            )
        )

        logger.info(
            "Stage %s starting: %s, %d rounds", stage.value, panel.name, panel.rounds
        )

        transcript: list[TranscriptRound] = []
        for round_number in range(1, panel.rounds + 1):
            contributing = [
                p
                for p in determine_speaking_order(personas)
                if should_persona_contribute(p, round_number, panel.rounds)
            ]

            messages: list[PanelMessage] = []
            for persona in contributing:
                message = await generate_persona_response(
                    self.llm, session, persona, round_number, list(messages), model=self.panel_model
                )
                messages.append(message)

            summary = await generate_round_summary(
                self.llm, topic, messages, model=self.panel_model
            )
            panel_round = PanelRound(round_number=round_number, messages=messages, summary=summary)
            session.append_round(panel_round)
            transcript.append(_to_transcript_round(panel_round))

        artefact = await self.synthesise_artefact(state, transcript)
        updated = record_stage_result(state, stage, artefact, transcript)
        kill_reason = check_kill_criteria(updated)

        logger.info(
            "Stage %s complete: %s", stage.value, updated.audit_trail[-1].action
        )
        return StageRunResult(
            state=updated, transcript=transcript, kill_reason=kill_reason, session=session
        )

    async def synthesise_artefact(
        self, state: DecisionPipelineState, transcript: list[TranscriptRound]
    ) -> StageArtefact:
        """Turn a stage transcript into its validated artefact."""
        stage = state.current_stage
        title = _ARTEFACT_TITLES[stage]
        schema = json.dumps(STAGE_ARTEFACT_MODELS[stage].model_json_schema(), indent=2)

        system = (
            f"You are synthesising a panel discussion into a structured {title} for the "
            "Persona-x Decision Engine. Use Australian English spelling. "
            "Respond ONLY with valid JSON — no preamble, no explanation."
        )
        if stage == DecisionStage.PROPOSE:
            reference = f"Opportunity input:\n{state.opportunity_input}"
        else:
            reference = f'Opportunity reference: "{state.opportunity_title}"'

        prompt = (
            f"{reference}\n\n"
            f"Panel discussion transcript:\n{format_transcript_for_synthesis(transcript)}\n\n"
            f"Produce a JSON object matching this JSON Schema exactly:\n{schema}"
        )

        return await self.llm.complete_structured(
            system,
            [{"role": "user", "content": prompt}],
            validator=lambda data: parse_artefact(stage, data),
            max_tokens=SYNTHESIS_MAX_TOKENS,
            temperature=SYNTHESIS_TEMPERATURE,
            model=self.synthesis_model,
        )

    async def run_decision_engine(
        self, opportunity: str | DecisionPipelineState
    ) -> DecisionPipelineState:
        """
        Run stages until the pipeline passes, is deferred, or is killed.

        A kill reason from any stage overrides the stage gate and ends
        the run with status ``killed``.
        """
        state = (
            create_decision_pipeline(opportunity) if isinstance(opportunity, str) else opportunity
        )

        while not is_pipeline_done(state):
            result = await self.run_stage(state)
            if self.on_stage_complete is not None:
                self.on_stage_complete(result)
            state = result.state

            if result.kill_reason:
                state = mark_killed(state, result.kill_reason)
                break

            state = advance_to_next_stage(state)

        logger.info("Decision engine finished: status=%s", state.status.value)
        return state

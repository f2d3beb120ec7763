"""
Tests for the Stage Runner and the decision engine loop.

Uses the bundled stage personas and a scripted completion function:
persona turns get free text, round summaries are recognised by the
moderator system prompt, and synthesis calls by the JSON Schema in
their prompt.
"""

from __future__ import annotations

from typing import Any

import pytest

from persona_x.decision.pipeline import (
    PipelineStatus,
    TranscriptMessage,
    TranscriptRound,
    create_decision_pipeline,
    mark_killed,
)
from persona_x.decision.runner import (
    StageRunner,
    build_stage_context,
    build_stage_topic,
    format_transcript_for_synthesis,
)
from persona_x.decision.schema import DecisionStage
from persona_x.llm.client import LLMClient
from persona_x.runtime.discussion import SUMMARY_SYSTEM
from persona_x.runtime.loader import PersonaCache, PersonaLoadError
from persona_x.schema.validation import SchemaValidationError
from tests.helpers import (
    ScriptedCompletion,
    as_json,
    make_brief,
    make_challenge_report,
    make_delivery_plan,
    make_prototype_spec,
    no_sleep,
)


def _router(artefacts: dict[str, Any]):
    """Route each completion by what kind of call it is."""

    def _respond(kwargs: dict[str, Any]) -> str:
        system = kwargs["messages"][0]["content"]
        prompt = kwargs["messages"][-1]["content"]
        if system == SUMMARY_SYSTEM:
            return "The panel debated the opportunity and agreed to continue."
        if "JSON Schema" in prompt:
            for title, artefact in artefacts.items():
                if f"structured {title}" in system:
                    return as_json(artefact)
            raise AssertionError(f"Unexpected synthesis request: {system[:80]}")
        return "I have concerns about the evidence behind this claim."

    return _respond


def _runner(artefacts: dict[str, Any], **kwargs: Any) -> tuple[StageRunner, ScriptedCompletion]:
    fake = ScriptedCompletion(_router(artefacts))
    llm = LLMClient(model="test/model", max_retries=1, completion_fn=fake, sleep=no_sleep)
    return StageRunner(llm, persona_cache=PersonaCache(), **kwargs), fake


class TestStageFraming:
    def test_propose_topic_uses_input(self):
        state = create_decision_pipeline("Certified refurbished lab equipment")
        assert build_stage_topic(state) == (
            "Opportunity evaluation: Certified refurbished lab equipment"
        )
        assert "Certified refurbished lab equipment" in build_stage_context(state)

    def test_transcript_formatting(self):
        transcript = [
            TranscriptRound(
                round_number=1,
                messages=(
                    TranscriptMessage(
                        persona_name="Risk Sentinel", content="Too risky.", timestamp="t"
                    ),
                ),
                summary="Risk raised.",
            )
        ]
        text = format_transcript_for_synthesis(transcript)
        assert text.startswith("--- Round 1 ---")
        assert "Risk Sentinel: Too risky." in text
        assert text.endswith("Round summary: Risk raised.")


class TestRunStage:
    @pytest.mark.asyncio
    async def test_propose_stage_runs_rounds_and_records(self):
        runner, fake = _runner({"Opportunity Brief": make_brief()})
        state = create_decision_pipeline("Certified refurbished lab equipment")

        result = await runner.run_stage(state)

        assert len(result.transcript) == 2
        assert result.state.artefacts.opportunity_brief is not None
        assert result.state.audit_trail[-1].action == "gate_passed"
        assert result.kill_reason is None
        assert result.session is not None
        assert len(result.session.rounds) == 2
        # 4 personas × 2 rounds + 2 summaries + 1 synthesis
        assert len(fake.calls) == 11

    @pytest.mark.asyncio
    async def test_speakers_in_intervention_order(self):
        runner, _ = _runner({"Opportunity Brief": make_brief()})
        result = await runner.run_stage(create_decision_pipeline("Lab equipment"))
        first_round = [m.persona_name for m in result.transcript[0].messages]
        assert first_round[0] == "Opportunity Architect"
        assert first_round[1] == "Market Realist"

    @pytest.mark.asyncio
    async def test_later_speakers_see_earlier_contributions(self):
        runner, fake = _runner({"Opportunity Brief": make_brief()})
        await runner.run_stage(create_decision_pipeline("Lab equipment"))
        second_speaker_prompt = fake.calls[1]["messages"][-1]["content"]
        assert "Opportunity Architect: I have concerns" in second_speaker_prompt

    @pytest.mark.asyncio
    async def test_rejects_finished_pipeline(self):
        runner, _ = _runner({})
        done = mark_killed(create_decision_pipeline("Lab equipment"), "stop")
        with pytest.raises(ValueError):
            await runner.run_stage(done)

    @pytest.mark.asyncio
    async def test_missing_personas_raise(self, tmp_path):
        runner, fake = _runner({}, persona_dir=tmp_path)
        with pytest.raises(PersonaLoadError) as exc_info:
            await runner.run_stage(create_decision_pipeline("Lab equipment"))
        assert len(exc_info.value.errors) == 4
        assert fake.calls == []

    @pytest.mark.asyncio
    async def test_invalid_artefact_propagates(self):
        runner, _ = _runner({"Opportunity Brief": {"rationale": "incomplete"}})
        state = create_decision_pipeline("Lab equipment")
        with pytest.raises(SchemaValidationError):
            await runner.run_stage(state)
        assert state.audit_trail == ()


class TestDecisionEngine:
    @pytest.mark.asyncio
    async def test_low_composite_defers_after_propose(self):
        runner, _ = _runner({"Opportunity Brief": make_brief((5, 5, 4, 6, 4, 3))})

        state = await runner.run_decision_engine("Certified refurbished lab equipment")

        assert state.status == PipelineStatus.DEFERRED
        assert state.current_stage == DecisionStage.PROPOSE
        assert len(state.audit_trail) == 1
        assert state.audit_trail[0].action == "gate_failed"

    @pytest.mark.asyncio
    async def test_ethical_fail_kills_at_challenge(self):
        runner, _ = _runner(
            {
                "Opportunity Brief": make_brief(),
                "Challenge Report": make_challenge_report(ethical="fail"),
            }
        )

        state = await runner.run_decision_engine("Certified refurbished lab equipment")

        assert state.status == PipelineStatus.KILLED
        assert state.stage_index == 1
        assert [e.action for e in state.audit_trail] == ["gate_passed", "gate_failed", "killed"]

    @pytest.mark.asyncio
    async def test_full_run_passes_and_reports_stages(self):
        completed: list[DecisionStage] = []
        runner, _ = _runner(
            {
                "Opportunity Brief": make_brief(),
                "Challenge Report": make_challenge_report(),
                "Prototype Specification": make_prototype_spec(),
                "Delivery Plan": make_delivery_plan(),
            },
            on_stage_complete=lambda result: completed.append(result.state.current_stage),
        )

        state = await runner.run_decision_engine("Certified refurbished lab equipment")

        assert state.status == PipelineStatus.PASSED
        assert completed == [
            DecisionStage.PROPOSE,
            DecisionStage.CHALLENGE,
            DecisionStage.PROTOTYPE,
            DecisionStage.EXECUTE,
        ]
        assert len(state.audit_trail) == 4

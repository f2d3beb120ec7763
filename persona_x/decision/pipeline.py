"""
Decision Pipeline — the four-stage Propose → Challenge → Prototype → Execute state machine.

Each stage:
1. Takes input from the previous stage
2. Runs a panel of four purpose-built personas
3. Produces a structured artefact
4. Passes through a quantified gate (proceed / defer / kill)

The pipeline state is an immutable value. Every transition returns a
new state with the audit trail extended; nothing here performs I/O.
Pipeline status is monotone: once ``passed``, ``deferred`` or ``killed``
it never returns to ``active``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import BaseModel

from persona_x.decision.schema import (
    DECISION_STAGES,
    ChallengeReport,
    DecisionStage,
    DeliveryPlan,
    GateResult,
    OpportunityBrief,
    PrototypeSpec,
    StageArtefact,
    StageDecision,
    StageVerdict,
    check_stage1_gate,
    check_stage2_gate,
    check_stage3_gate,
    check_stage4_gate,
    parse_artefact,
)

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════
# State Types
# ════════════════════════════════════════════════════════════════


class PipelineStatus(str, enum.Enum):
    ACTIVE = "active"
    PASSED = "passed"
    DEFERRED = "deferred"
    KILLED = "killed"


class TranscriptMessage(BaseModel):
    model_config = {"frozen": True}

    persona_name: str
    content: str
    timestamp: str


class TranscriptRound(BaseModel):
    """One discussion round as kept in the audit trail."""

    model_config = {"frozen": True}

    round_number: int
    messages: tuple[TranscriptMessage, ...] = ()
    summary: str


class AuditEntry(BaseModel):
    model_config = {"frozen": True}

    stage: DecisionStage
    timestamp: str
    action: str
    detail: str
    transcript: tuple[TranscriptRound, ...] | None = None


class StageArtefacts(BaseModel):
    model_config = {"frozen": True}

    opportunity_brief: OpportunityBrief | None = None
    challenge_report: ChallengeReport | None = None
    prototype_spec: PrototypeSpec | None = None
    delivery_plan: DeliveryPlan | None = None


class GateResults(BaseModel):
    model_config = {"frozen": True}

    stage_1: GateResult | None = None
    stage_2: GateResult | None = None
    stage_3: GateResult | None = None
    stage_4: GateResult | None = None


class DecisionPipelineState(BaseModel):
    """Complete, immutable state of one decision pipeline run."""

    model_config = {"frozen": True}

    current_stage: DecisionStage = DecisionStage.PROPOSE
    stage_index: int = 0
    opportunity_input: str
    artefacts: StageArtefacts = StageArtefacts()
    gate_results: GateResults = GateResults()
    status: PipelineStatus = PipelineStatus.ACTIVE
    audit_trail: tuple[AuditEntry, ...] = ()

    @property
    def opportunity_title(self) -> str:
        brief = self.artefacts.opportunity_brief
        return brief.opportunity.title if brief else "opportunity"


# ════════════════════════════════════════════════════════════════
# Stage Panels
# ════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StagePanel:
    """The fixed persona panel that runs one stage."""

    name: str
    personas: tuple[str, ...]
    rounds: int
    output_type: str


STAGE_PANELS: dict[DecisionStage, StagePanel] = {
    DecisionStage.PROPOSE: StagePanel(
        name="Opportunity Structuring Panel",
        personas=(
            "opportunity-architect",
            "market-realist",
            "societal-impact-assessor",
            "technical-feasibility-analyst",
        ),
        rounds=2,
        output_type="opportunity_brief",
    ),
    DecisionStage.CHALLENGE: StagePanel(
        name="Adversarial Challenge Panel",
        personas=(
            "sceptical-investor",
            "failure-archaeologist",
            "ethical-boundary-guardian",
            "customer-devils-advocate",
        ),
        rounds=3,
        output_type="challenge_report",
    ),
    DecisionStage.PROTOTYPE: StagePanel(
        name="Prototype Design Panel",
        personas=(
            "product-architect",
            "user-experience-advocate",
            "revenue-model-analyst",
            "build-vs-buy-pragmatist",
        ),
        rounds=2,
        output_type="prototype_spec",
    ),
    DecisionStage.EXECUTE: StagePanel(
        name="Execution Readiness Panel",
        personas=(
            "delivery-realist",
            "risk-sentinel",
            "market-entry-strategist",
            "operations-scaler",
        ),
        rounds=3,
        output_type="delivery_plan",
    ),
}


@dataclass(frozen=True)
class _StageRule:
    gate_key: str
    gate: Callable[[Any], GateResult]
    passed_detail: Callable[[Any], str]


def _go_no_go_detail(plan: DeliveryPlan) -> str:
    return f"Go/No-Go recommendation: {plan.go_no_go.recommendation.value}"


_STAGE_RULES: dict[DecisionStage, _StageRule] = {
    DecisionStage.PROPOSE: _StageRule(
        gate_key="stage_1",
        gate=check_stage1_gate,
        passed_detail=lambda brief: (
            f"Composite score: {brief.scores.composite}. Proceeding to Challenge."
        ),
    ),
    DecisionStage.CHALLENGE: _StageRule(
        gate_key="stage_2",
        gate=check_stage2_gate,
        passed_detail=lambda _: "All challenges addressed. Proceeding to Prototype.",
    ),
    DecisionStage.PROTOTYPE: _StageRule(
        gate_key="stage_3",
        gate=check_stage3_gate,
        passed_detail=lambda _: "Prototype specification complete. Proceeding to Execute.",
    ),
    DecisionStage.EXECUTE: _StageRule(
        gate_key="stage_4",
        gate=check_stage4_gate,
        passed_detail=_go_no_go_detail,
    ),
}


# ════════════════════════════════════════════════════════════════
# Transitions
# ════════════════════════════════════════════════════════════════


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_decision_pipeline(opportunity_input: str) -> DecisionPipelineState:
    """Create a new pipeline positioned at the propose stage."""
    return DecisionPipelineState(opportunity_input=opportunity_input)


def get_current_stage_panel(state: DecisionPipelineState) -> StagePanel:
    return STAGE_PANELS[state.current_stage]


def is_pipeline_done(state: DecisionPipelineState) -> bool:
    """True once the pipeline has passed, been deferred or been killed."""
    return state.status != PipelineStatus.ACTIVE


def record_stage_result(
    state: DecisionPipelineState,
    stage: DecisionStage,
    artefact: StageArtefact | dict[str, Any],
    transcript: list[TranscriptRound] | tuple[TranscriptRound, ...] | None = None,
) -> DecisionPipelineState:
    """
    Store a stage artefact, gate it, and append one audit entry.

    Pure: returns a new state. Writes to a terminated pipeline, and a
    second artefact for a stage that already has one, are rejected by
    returning the state unchanged.

    Args:
        state: The current pipeline state.
        stage: The stage this artefact belongs to.
        artefact: The stage artefact, typed or raw. Either form is validated.
        transcript: Optional discussion rounds to attach to the audit entry.

    Returns:
        The updated pipeline state.

    Raises:
        SchemaValidationError: If ``artefact`` is not a valid artefact for ``stage``.
    """
    stage = DecisionStage(stage)
    if is_pipeline_done(state):
        logger.warning(
            "Ignoring %s result: pipeline already %s", stage.value, state.status.value
        )
        return state

    slot = STAGE_PANELS[stage].output_type
    if getattr(state.artefacts, slot) is not None:
        logger.warning("Ignoring %s result: %s already recorded", stage.value, slot)
        return state

    # typed artefacts are re-validated so derived fields are recomputed
    if isinstance(artefact, BaseModel):
        artefact = artefact.model_dump()
    artefact = parse_artefact(stage, artefact)

    rule = _STAGE_RULES[stage]
    gate = rule.gate(artefact)
    if gate.passed:
        detail = rule.passed_detail(artefact)
    elif stage == DecisionStage.EXECUTE:
        detail = f"{_go_no_go_detail(artefact)}. Gate failures: {'; '.join(gate.failures)}"
    else:
        detail = f"Gate failures: {'; '.join(gate.failures)}"

    entry = AuditEntry(
        stage=stage,
        timestamp=_now(),
        action="gate_passed" if gate.passed else "gate_failed",
        detail=detail,
        transcript=tuple(transcript) if transcript is not None else None,
    )

    logger.info(
        "Stage %s gated: passed=%s decision=%s",
        stage.value,
        gate.passed,
        gate.decision.value,
    )

    return state.model_copy(
        update={
            "artefacts": state.artefacts.model_copy(update={slot: artefact}),
            "gate_results": state.gate_results.model_copy(update={rule.gate_key: gate}),
            "audit_trail": state.audit_trail + (entry,),
        }
    )


def advance_to_next_stage(state: DecisionPipelineState) -> DecisionPipelineState:
    """
    Move past the current stage according to its gate.

    A missing or failed gate terminates the pipeline: ``killed`` when
    the gate decided kill, otherwise ``deferred``. A passed gate moves
    to the next stage, or marks the pipeline ``passed`` after execute.
    """
    if is_pipeline_done(state):
        return state

    gate: GateResult | None = getattr(state.gate_results, f"stage_{state.stage_index + 1}")

    if gate is None or not gate.passed:
        killed = gate is not None and gate.decision == StageDecision.KILL
        status = PipelineStatus.KILLED if killed else PipelineStatus.DEFERRED
        logger.info("Pipeline %s at stage %s", status.value, state.current_stage.value)
        return state.model_copy(update={"status": status})

    next_index = state.stage_index + 1
    if next_index >= len(DECISION_STAGES):
        logger.info("Pipeline passed all %d stages", len(DECISION_STAGES))
        return state.model_copy(update={"status": PipelineStatus.PASSED})

    next_stage = DECISION_STAGES[next_index]
    logger.info(
        "Pipeline advancing: %s → %s", state.current_stage.value, next_stage.value
    )
    return state.model_copy(update={"current_stage": next_stage, "stage_index": next_index})


def check_kill_criteria(state: DecisionPipelineState) -> str | None:
    """
    Cross-stage kill conditions, independent of any single stage gate.

    Returns:
        A human-readable kill reason, or None if no kill condition holds.
    """
    report = state.artefacts.challenge_report
    if report is not None and report.final_positions.ethical_boundary_guardian == StageVerdict.FAIL:
        return "Ethical Boundary Guardian declared fail — opportunity killed"

    brief = state.artefacts.opportunity_brief
    if brief is not None:
        if brief.scores.societal_benefit.score <= 2:
            return "Societal benefit score <= 2 — extractive solutions are not permitted"
        if brief.scores.persona_x_fit.score <= 3:
            return "Persona-x fit score <= 3 — problem does not need multi-perspective challenge"

    return None


def mark_killed(state: DecisionPipelineState, reason: str) -> DecisionPipelineState:
    """Force an active pipeline to ``killed`` and record why."""
    if is_pipeline_done(state):
        return state

    logger.warning("Pipeline killed at stage %s: %s", state.current_stage.value, reason)
    entry = AuditEntry(
        stage=state.current_stage,
        timestamp=_now(),
        action="killed",
        detail=reason,
    )
    return state.model_copy(
        update={"status": PipelineStatus.KILLED, "audit_trail": state.audit_trail + (entry,)}
    )


def format_audit_trail(state: DecisionPipelineState) -> str:
    """Render the audit trail as Markdown."""
    lines = [
        "# Decision Engine Audit Trail",
        "",
        f"Opportunity: {state.opportunity_input[:100]}",
        f"Status: {state.status.value}",
        f"Current stage: {state.current_stage.value}",
        "",
    ]

    for entry in state.audit_trail:
        lines.append(f"## Stage: {entry.stage.value}")
        lines.append(f"- Action: {entry.action}")
        lines.append(f"- Detail: {entry.detail}")
        lines.append(f"- Timestamp: {entry.timestamp}")
        lines.append("")

    return "\n".join(lines)

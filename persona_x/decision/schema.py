"""
Decision Engine Schema — artefacts and quantified gates for each stage.

The Decision Engine moves an opportunity through four stages:
1. PROPOSE   — Opportunity Brief, scored on six weighted dimensions
2. CHALLENGE — Challenge Report, adversarial risks and final positions
3. PROTOTYPE — Prototype Specification, scope, journey and revenue model
4. EXECUTE   — Delivery Plan, workstreams and go/no-go readiness

Each artefact is validated all-or-nothing before it can be gated.
These models measure opportunities, not personas.
"""

from __future__ import annotations

import enum
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Union

from pydantic import BaseModel, Field, StrictBool, StrictInt

from persona_x.schema.validation import (
    SchemaValidationError,
    ValidationResult,
    validate_model,
)


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class DecisionStage(str, enum.Enum):
    """The four decision stages, in pipeline order."""

    PROPOSE = "propose"
    CHALLENGE = "challenge"
    PROTOTYPE = "prototype"
    EXECUTE = "execute"


DECISION_STAGES: tuple[DecisionStage, ...] = (
    DecisionStage.PROPOSE,
    DecisionStage.CHALLENGE,
    DecisionStage.PROTOTYPE,
    DecisionStage.EXECUTE,
)


class StageDecision(str, enum.Enum):
    PROCEED = "proceed"
    DEFER = "defer"
    KILL = "kill"


class StageVerdict(str, enum.Enum):
    PASS = "pass"
    CONDITIONAL_PASS = "conditional_pass"
    FAIL = "fail"


class RiskSeverity(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RiskStatus(str, enum.Enum):
    MITIGATED = "mitigated"
    ACCEPTED = "accepted"
    UNRESOLVED = "unresolved"


class ReadinessVerdict(str, enum.Enum):
    READY = "ready"
    CONDITIONAL = "conditional"
    NOT_READY = "not_ready"


class LaunchRecommendation(str, enum.Enum):
    GO = "go"
    CONDITIONAL_GO = "conditional_go"
    NO_GO = "no_go"


class DesignEffort(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ════════════════════════════════════════════════════════════════
# Stage 1: Opportunity Brief
# ════════════════════════════════════════════════════════════════

EVALUATION_DIMENSIONS: tuple[str, ...] = (
    "problem_severity",
    "societal_benefit",
    "market_viability",
    "persona_x_fit",
    "defensibility",
    "execution_complexity",
)

EVALUATION_WEIGHTS: dict[str, Decimal] = {
    "problem_severity": Decimal("0.20"),
    "societal_benefit": Decimal("0.20"),
    "market_viability": Decimal("0.20"),
    "persona_x_fit": Decimal("0.20"),
    "defensibility": Decimal("0.10"),
    "execution_complexity": Decimal("0.10"),
}

COMPOSITE_THRESHOLD = 7.0
SOCIETAL_BENEFIT_FLOOR = 5
PERSONA_X_FIT_FLOOR = 6
EXTREME_LOW_SCORE = 2


class EvaluationScore(BaseModel):
    model_config = {"frozen": True}

    score: StrictInt = Field(ge=1, le=10)
    note: str = Field(min_length=10, description="Interpretive note explaining the score")


class Opportunity(BaseModel):
    model_config = {"frozen": True}

    title: str
    problem_statement: str
    proposed_solution: str
    target_buyer: str


class OpportunityScores(BaseModel):
    model_config = {"frozen": True}

    problem_severity: EvaluationScore
    societal_benefit: EvaluationScore
    market_viability: EvaluationScore
    persona_x_fit: EvaluationScore
    defensibility: EvaluationScore
    execution_complexity: EvaluationScore
    composite: float

    def score_of(self, dimension: str) -> int:
        return getattr(self, dimension).score


class PanelTension(BaseModel):
    model_config = {"frozen": True}

    concern: str
    resolution: str


class OpportunityBrief(BaseModel):
    model_config = {"frozen": True}

    opportunity: Opportunity
    scores: OpportunityScores
    panel_tensions: tuple[PanelTension, ...]
    decision: StageDecision
    rationale: str


# ════════════════════════════════════════════════════════════════
# Stage 2: Challenge Report
# ════════════════════════════════════════════════════════════════


class IdentifiedRisk(BaseModel):
    model_config = {"frozen": True}

    risk: str
    severity: RiskSeverity
    raised_by: str
    mitigation: str
    status: RiskStatus


class HistoricalParallel(BaseModel):
    model_config = {"frozen": True}

    precedent: str
    relevance: str
    differentiator: str


class EthicalAssessment(BaseModel):
    model_config = {"frozen": True}

    harm_vectors: tuple[str, ...]
    affected_populations: tuple[str, ...]
    safeguards_required: tuple[str, ...]
    verdict: StageVerdict


class CustomerRealityCheck(BaseModel):
    model_config = {"frozen": True}

    value_clarity: str
    friction_points: tuple[str, ...]
    willingness_to_pay: str


class FinalPositions(BaseModel):
    model_config = {"frozen": True}

    sceptical_investor: StageVerdict
    failure_archaeologist: StageVerdict
    ethical_boundary_guardian: StageVerdict
    customer_devils_advocate: StageVerdict


class ChallengeReport(BaseModel):
    model_config = {"frozen": True}

    opportunity_ref: str
    risks_identified: tuple[IdentifiedRisk, ...]
    historical_parallels: tuple[HistoricalParallel, ...]
    ethical_assessment: EthicalAssessment
    customer_reality_check: CustomerRealityCheck
    final_positions: FinalPositions
    conditions_for_stage_3: tuple[str, ...]
    decision: StageDecision


# ════════════════════════════════════════════════════════════════
# Stage 3: Prototype Specification
# ════════════════════════════════════════════════════════════════


class PrototypeScope(BaseModel):
    model_config = {"frozen": True}

    included: tuple[str, ...]
    explicitly_excluded: tuple[str, ...]
    rationale: str


class PersonaRequirement(BaseModel):
    model_config = {"frozen": True}

    name: str
    role: str
    rubric_summary: str
    designable: StrictBool
    design_effort: DesignEffort


class UserJourneyStep(BaseModel):
    model_config = {"frozen": True}

    step: StrictInt = Field(ge=1)
    action: str
    system_response: str
    time_to_value: str


class UserJourney(BaseModel):
    model_config = {"frozen": True}

    steps: tuple[UserJourneyStep, ...]


class UnitEconomics(BaseModel):
    model_config = {"frozen": True}

    cost_per_delivery: str
    margin: str


class RevenueModel(BaseModel):
    model_config = {"frozen": True}

    pricing_structure: str
    entry_price: str
    target_ltv: str
    unit_economics: UnitEconomics


class BuildPlan(BaseModel):
    model_config = {"frozen": True}

    build: tuple[str, ...]
    buy_or_compose: tuple[str, ...]
    estimated_effort: str
    estimated_cost: str


class SuccessCriterion(BaseModel):
    model_config = {"frozen": True}

    metric: str
    target: str
    timeframe: str


class PrototypeSpec(BaseModel):
    model_config = {"frozen": True}

    opportunity_ref: str
    version: str
    scope: PrototypeScope
    personas_required: tuple[PersonaRequirement, ...]
    user_journey: UserJourney
    revenue_model: RevenueModel
    build_plan: BuildPlan
    success_criteria: tuple[SuccessCriterion, ...]


# ════════════════════════════════════════════════════════════════
# Stage 4: Delivery Plan
# ════════════════════════════════════════════════════════════════


class DeliveryTask(BaseModel):
    model_config = {"frozen": True}

    task: str
    effort: str
    dependency: str
    definition_of_done: str


class Workstream(BaseModel):
    model_config = {"frozen": True}

    name: str
    owner: str
    tasks: tuple[DeliveryTask, ...]


class LaunchPlan(BaseModel):
    model_config = {"frozen": True}

    target_segment: str
    acquisition_channels: tuple[str, ...]
    first_30_day_target: str
    messaging: str


class OperationalReadiness(BaseModel):
    model_config = {"frozen": True}

    capacity: str
    scaling_trigger: str
    manual_processes: tuple[str, ...]
    automation_plan: str


class GoNoGo(BaseModel):
    model_config = {"frozen": True}

    delivery_realist: ReadinessVerdict
    risk_sentinel: ReadinessVerdict
    market_entry_strategist: ReadinessVerdict
    operations_scaler: ReadinessVerdict
    conditions: tuple[str, ...]
    recommendation: LaunchRecommendation

    def readiness(self) -> dict[str, ReadinessVerdict]:
        return {
            "delivery_realist": self.delivery_realist,
            "risk_sentinel": self.risk_sentinel,
            "market_entry_strategist": self.market_entry_strategist,
            "operations_scaler": self.operations_scaler,
        }


class DeliveryPlan(BaseModel):
    model_config = {"frozen": True}

    opportunity_ref: str
    target_launch_date: str
    workstreams: tuple[Workstream, ...]
    risk_register: tuple[IdentifiedRisk, ...]
    launch_plan: LaunchPlan
    operational_readiness: OperationalReadiness
    go_no_go: GoNoGo


StageArtefact = Union[OpportunityBrief, ChallengeReport, PrototypeSpec, DeliveryPlan]

STAGE_ARTEFACT_MODELS: dict[DecisionStage, type[BaseModel]] = {
    DecisionStage.PROPOSE: OpportunityBrief,
    DecisionStage.CHALLENGE: ChallengeReport,
    DecisionStage.PROTOTYPE: PrototypeSpec,
    DecisionStage.EXECUTE: DeliveryPlan,
}


# ════════════════════════════════════════════════════════════════
# Scoring & Validation
# ════════════════════════════════════════════════════════════════


def calculate_composite_score(scores: OpportunityScores) -> float:
    """
    Weighted composite of the six evaluation dimensions.

    Computed in Decimal and rounded half-up to one decimal place so
    that e.g. {8, 7, 7, 8, 6, 5} yields exactly 7.1.
    """
    total = sum(
        (Decimal(scores.score_of(dim)) * EVALUATION_WEIGHTS[dim] for dim in EVALUATION_DIMENSIONS),
        Decimal("0"),
    )
    return float(total.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def validate_artefact(stage: DecisionStage, data: Any) -> ValidationResult:
    """
    Validate raw data as the artefact for ``stage``.

    For the propose stage the composite score is recomputed from the
    dimension scores after a successful parse; the generated value is
    never trusted.
    """
    result = validate_model(STAGE_ARTEFACT_MODELS[DecisionStage(stage)], data)
    if result.success and isinstance(result.data, OpportunityBrief):
        brief = result.data
        scores = brief.scores.model_copy(
            update={"composite": calculate_composite_score(brief.scores)}
        )
        result.data = brief.model_copy(update={"scores": scores})
    return result


def parse_artefact(stage: DecisionStage, data: Any) -> StageArtefact:
    """Validate raw data as the artefact for ``stage`` or raise SchemaValidationError."""
    stage = DecisionStage(stage)
    result = validate_artefact(stage, data)
    if not result.success or result.data is None:
        raise SchemaValidationError(STAGE_ARTEFACT_MODELS[stage].__name__, result.errors)
    return result.data


# ════════════════════════════════════════════════════════════════
# Gates
# ════════════════════════════════════════════════════════════════


class GateResult(BaseModel):
    """Deterministic outcome of gating one stage artefact."""

    model_config = {"frozen": True}

    passed: bool
    failures: tuple[str, ...] = ()
    decision: StageDecision


def _gate(failures: list[str], failed_decision: StageDecision = StageDecision.DEFER) -> GateResult:
    if failures:
        return GateResult(passed=False, failures=tuple(failures), decision=failed_decision)
    return GateResult(passed=True, failures=(), decision=StageDecision.PROCEED)


def check_stage1_gate(brief: OpportunityBrief) -> GateResult:
    """
    Propose gate: composite threshold, societal and fit floors, extreme lows.

    The composite is recomputed from the dimension scores rather than
    read from the brief.
    """
    failures: list[str] = []
    scores = brief.scores
    composite = calculate_composite_score(scores)

    if composite < COMPOSITE_THRESHOLD:
        failures.append(f"Composite score {composite} < 7.0 threshold")
    if scores.societal_benefit.score < SOCIETAL_BENEFIT_FLOOR:
        failures.append(
            f"Societal benefit {scores.societal_benefit.score}/10 < 5 "
            "— extractive solutions are not permitted"
        )
    if scores.persona_x_fit.score < PERSONA_X_FIT_FLOOR:
        failures.append(
            f"Persona-x fit {scores.persona_x_fit.score}/10 < 6 "
            "— problem does not need multi-perspective challenge"
        )

    for dim in EVALUATION_DIMENSIONS:
        score = scores.score_of(dim)
        if score <= EXTREME_LOW_SCORE:
            failures.append(f"{dim} scored {score}/10 — requires explicit justification")

    return _gate(failures)


def check_stage2_gate(report: ChallengeReport) -> GateResult:
    """Challenge gate. An ethical fail is the only automatic kill."""
    failures: list[str] = []
    positions = report.final_positions

    unresolved_critical = [
        r
        for r in report.risks_identified
        if r.severity == RiskSeverity.CRITICAL and r.status == RiskStatus.UNRESOLVED
    ]
    if unresolved_critical:
        failures.append(f"{len(unresolved_critical)} unmitigated critical risk(s)")

    ethical_fail = positions.ethical_boundary_guardian == StageVerdict.FAIL
    if ethical_fail:
        failures.append("Ethical Boundary Guardian declared fail — non-negotiable kill")

    if positions.sceptical_investor == StageVerdict.FAIL:
        failures.append("Sceptical Investor declared fail — financial model not viable")

    return _gate(failures, StageDecision.KILL if ethical_fail else StageDecision.DEFER)


def check_stage3_gate(spec: PrototypeSpec) -> GateResult:
    """Prototype gate. No quantified criteria exist for this stage; it always passes."""
    return _gate([])


def check_stage4_gate(plan: DeliveryPlan) -> GateResult:
    """Execute gate: every readiness role must be at least conditional. Never kills."""
    not_ready = [
        role
        for role, verdict in plan.go_no_go.readiness().items()
        if verdict == ReadinessVerdict.NOT_READY
    ]
    failures: list[str] = []
    if not_ready:
        failures.append(f"One or more personas declared not_ready: {', '.join(not_ready)}")
    return _gate(failures)

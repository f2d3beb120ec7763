"""Shared builders for persona, artefact and LLM test data."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Callable

from persona_x.decision.schema import EVALUATION_DIMENSIONS
from persona_x.engine.discovery import Confidence
from persona_x.engine.population import (
    POPULATION_ORDER,
    REQUIRED_SECTIONS,
    PipelineState,
    PopulationMethod,
    PopulationSection,
    advance_section,
    parse_section_payload,
    record_population,
)
from persona_x.schema.rubric import RUBRIC_DIMENSIONS


# ════════════════════════════════════════════════════════════════
# Personas
# ════════════════════════════════════════════════════════════════


def make_rubric(**scores: int) -> dict[str, Any]:
    """Rubric dict with every dimension at 5 unless overridden."""
    return {
        dim: {"score": scores.get(dim, 5), "note": f"Behavioural note for {dim}"}
        for dim in RUBRIC_DIMENSIONS
    }


def make_persona_dict(name: str = "Risk-Aware Analyst", **rubric_scores: int) -> dict[str, Any]:
    return {
        "metadata": {
            "name": name,
            "type": "designed",
            "owner": "Test Suite",
            "version": "1.0.0",
            "last_updated": "2025-01-15",
            "audience": "Strategy teams evaluating high-stakes decisions",
        },
        "purpose": {
            "description": "Surfaces risks and challenges optimistic assumptions.",
            "invoke_when": ["A decision carries material downside"],
            "do_not_invoke_when": ["The decision is trivial and reversible"],
        },
        "bio": {
            "background": "Twenty years in enterprise risk management.",
            "perspective_origin": "Has seen confident plans fail on unexamined assumptions.",
        },
        "panel_role": {
            "contribution_type": "challenger",
            "expected_value": "Makes hidden risks explicit before commitment.",
            "failure_modes_surfaced": ["Optimism bias", "Unpriced downside"],
        },
        "rubric": make_rubric(**rubric_scores),
        "reasoning": {
            "default_assumptions": ["Plans are optimistic"],
            "notices_first": ["Unmitigated downside"],
            "systematically_questions": ["Upside projections"],
            "under_pressure": "Narrows to the single largest risk.",
        },
        "interaction": {
            "primary_mode": "questions",
            "challenge_strength": "strong",
            "silent_when": ["Risks are already owned"],
            "handles_poor_input": "Asks for the missing numbers.",
        },
        "boundaries": {
            "will_not_engage": ["Legal advice"],
            "will_not_claim": ["Certainty about outcomes"],
            "defers_by_design": ["Technical design to engineers"],
        },
        "invocation": {
            "include_when": ["Risk review"],
            "exclude_when": ["Brainstorming"],
        },
    }


def make_knowledge_base() -> dict[str, Any]:
    return {
        "contract": {
            "purpose": "Ground risk challenges in the firm's incident history.",
            "permitted_uses": ["reference_only", "challenge"],
            "prohibited_uses": ["Quoting confidential figures verbatim"],
            "currency_rule": "Items older than two years are flagged as possibly stale.",
            "citation_behaviour": "Cites items by ID, e.g. (KB-1).",
            "coverage_limits": "Does not cover regulatory guidance.",
        },
        "items": [
            {
                "id": "KB-1",
                "title": "2023 Incident Review",
                "type": "excerpt",
                "source": "firm_reference",
                "scope": "Root causes of last year's delivery failures",
                "content_representation": "excerpt",
                "content": "Most failures traced to unowned dependencies.",
                "used_for": ["Challenging optimistic delivery dates"],
            }
        ],
    }


def make_section_data() -> dict[PopulationSection, Any]:
    """Raw data for every population section, taken from the default persona."""
    persona = make_persona_dict()
    data: dict[PopulationSection, Any] = {
        section: persona[section.value] for section in REQUIRED_SECTIONS
    }
    data[PopulationSection.OPTIONAL] = {"bio": persona["bio"], "invocation": persona["invocation"]}
    return data


def fill_sections(state: PipelineState, upto: int = len(POPULATION_ORDER)) -> PipelineState:
    """Record and advance the first ``upto`` sections by direct input."""
    section_data = make_section_data()
    for section in POPULATION_ORDER[:upto]:
        payload = parse_section_payload(section, section_data[section])
        state = advance_section(
            record_population(state, payload, PopulationMethod.DIRECT_INPUT, Confidence.HIGH)
        )
    return state


# ════════════════════════════════════════════════════════════════
# Decision artefacts
# ════════════════════════════════════════════════════════════════


def make_brief(
    scores: tuple[int, ...] = (8, 7, 7, 8, 6, 5),
    composite: float = 0.0,
    decision: str = "proceed",
) -> dict[str, Any]:
    """Opportunity brief dict; ``scores`` follow the evaluation dimension order."""
    score_block: dict[str, Any] = {
        dim: {"score": score, "note": f"Panel assessment of {dim}"}
        for dim, score in zip(EVALUATION_DIMENSIONS, scores)
    }
    score_block["composite"] = composite
    return {
        "opportunity": {
            "title": "Refurbished Lab Equipment Marketplace",
            "problem_statement": "Small labs cannot afford new equipment.",
            "proposed_solution": "A certified marketplace for refurbished instruments.",
            "target_buyer": "University and start-up lab managers",
        },
        "scores": score_block,
        "panel_tensions": [
            {"concern": "Certification cost", "resolution": "Partner with existing servicers"}
        ],
        "decision": decision,
        "rationale": "Clear problem with a reachable buyer.",
    }


def make_challenge_report(
    ethical: str = "pass",
    investor: str = "conditional_pass",
    risks: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    return {
        "opportunity_ref": "Refurbished Lab Equipment Marketplace",
        "risks_identified": risks
        if risks is not None
        else [
            {
                "risk": "Warranty liability",
                "severity": "high",
                "raised_by": "Sceptical Investor",
                "mitigation": "Servicer-backed warranties",
                "status": "mitigated",
            }
        ],
        "historical_parallels": [
            {
                "precedent": "Generic B2B equipment exchanges",
                "relevance": "Same liquidity problem",
                "differentiator": "Certification builds trust",
            }
        ],
        "ethical_assessment": {
            "harm_vectors": ["Unsafe equipment resale"],
            "affected_populations": ["Lab technicians"],
            "safeguards_required": ["Safety certification"],
            "verdict": ethical,
        },
        "customer_reality_check": {
            "value_clarity": "High for budget-constrained labs",
            "friction_points": ["Trust in refurbished gear"],
            "willingness_to_pay": "Moderate",
        },
        "final_positions": {
            "sceptical_investor": investor,
            "failure_archaeologist": "conditional_pass",
            "ethical_boundary_guardian": ethical,
            "customer_devils_advocate": "pass",
        },
        "conditions_for_stage_3": ["Prove certification cost under 10% of resale value"],
        "decision": "proceed",
    }


def make_prototype_spec() -> dict[str, Any]:
    return {
        "opportunity_ref": "Refurbished Lab Equipment Marketplace",
        "version": "0.1",
        "scope": {
            "included": ["Listings", "Certification badge"],
            "explicitly_excluded": ["Auctions"],
            "rationale": "Test trust before liquidity features",
        },
        "personas_required": [
            {
                "name": "Procurement Sceptic",
                "role": "challenger",
                "rubric_summary": "Low risk appetite, high evidence threshold",
                "designable": True,
                "design_effort": "low",
            }
        ],
        "user_journey": {
            "steps": [
                {
                    "step": 1,
                    "action": "Search for an instrument",
                    "system_response": "Certified listings shown first",
                    "time_to_value": "2 minutes",
                }
            ]
        },
        "revenue_model": {
            "pricing_structure": "Transaction fee",
            "entry_price": "8% of sale",
            "target_ltv": "$4,000",
            "unit_economics": {"cost_per_delivery": "$120", "margin": "60%"},
        },
        "build_plan": {
            "build": ["Listing flow"],
            "buy_or_compose": ["Payments provider"],
            "estimated_effort": "6 weeks",
            "estimated_cost": "$60k",
        },
        "success_criteria": [
            {"metric": "Certified listings", "target": "50", "timeframe": "8 weeks"}
        ],
    }


def make_delivery_plan(
    risk_sentinel: str = "ready", recommendation: str = "go"
) -> dict[str, Any]:
    return {
        "opportunity_ref": "Refurbished Lab Equipment Marketplace",
        "target_launch_date": "2026-03-01",
        "workstreams": [
            {
                "name": "Platform",
                "owner": "Engineering lead",
                "tasks": [
                    {
                        "task": "Listing flow",
                        "effort": "3 weeks",
                        "dependency": "none",
                        "definition_of_done": "Seller can publish a certified listing",
                    }
                ],
            }
        ],
        "risk_register": [],
        "launch_plan": {
            "target_segment": "University labs in one city",
            "acquisition_channels": ["Direct outreach"],
            "first_30_day_target": "20 transactions",
            "messaging": "Certified equipment at half the price",
        },
        "operational_readiness": {
            "capacity": "50 listings per week",
            "scaling_trigger": "Backlog over 2 weeks",
            "manual_processes": ["Certification scheduling"],
            "automation_plan": "Automate scheduling after 100 listings",
        },
        "go_no_go": {
            "delivery_realist": "ready",
            "risk_sentinel": risk_sentinel,
            "market_entry_strategist": "conditional",
            "operations_scaler": "ready",
            "conditions": [],
            "recommendation": recommendation,
        },
    }


# ════════════════════════════════════════════════════════════════
# LLM doubles
# ════════════════════════════════════════════════════════════════


def completion_response(content: str | None) -> SimpleNamespace:
    """Shape of a litellm completion response as read by LLMClient."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=None,
    )


class ScriptedCompletion:
    """
    Stand-in for ``litellm.acompletion``.

    ``responder`` receives the call's keyword arguments and returns the
    completion text, or raises to simulate a transport failure.
    """

    def __init__(self, responder: Callable[[dict[str, Any]], str | None]) -> None:
        self.responder = responder
        self.calls: list[dict[str, Any]] = []

    async def __call__(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        return completion_response(self.responder(kwargs))


def queued(*outcomes: Any) -> Callable[[dict[str, Any]], str | None]:
    """Responder that replays ``outcomes`` in order; exceptions are raised."""
    remaining = list(outcomes)

    def _next(_: dict[str, Any]) -> str | None:
        outcome = remaining.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    return _next


def as_json(data: Any) -> str:
    return json.dumps(data)


async def no_sleep(_: float) -> None:
    return None

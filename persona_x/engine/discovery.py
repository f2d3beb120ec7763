"""
Discovery State Machine — gathering behavioural signals before a persona is built.

Discovery asks a short sequence of decision-oriented questions and
extracts signals from the answers. Five priority signals matter:

- discomfort_triggers
- evidence_change_thresholds
- ambiguity_handling
- pressure_behaviour
- deferral_preferences

Phases: not_started → gathering → sufficient → complete.

Discovery is sufficient once a purpose is established and at least
three of the five signals have been seen at medium or high confidence.
If the question bank runs dry first, discovery still becomes sufficient
once the purpose is set and three questions have been asked.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field

SUFFICIENT_SIGNAL_COUNT = 3
MIN_QUESTIONS_BEFORE_FALLBACK = 3


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class PrioritySignal(str, enum.Enum):
    DISCOMFORT_TRIGGERS = "discomfort_triggers"
    EVIDENCE_CHANGE_THRESHOLDS = "evidence_change_thresholds"
    AMBIGUITY_HANDLING = "ambiguity_handling"
    PRESSURE_BEHAVIOUR = "pressure_behaviour"
    DEFERRAL_PREFERENCES = "deferral_preferences"


PRIORITY_SIGNALS: tuple[PrioritySignal, ...] = tuple(PrioritySignal)


class Confidence(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class QuestionType(str, enum.Enum):
    CHOICE = "choice"
    CONTRAST = "contrast"
    SPECTRUM = "spectrum"
    SCENARIO = "scenario"


class DiscoveryPhase(str, enum.Enum):
    NOT_STARTED = "not_started"
    GATHERING = "gathering"
    SUFFICIENT = "sufficient"
    COMPLETE = "complete"


# ════════════════════════════════════════════════════════════════
# Models
# ════════════════════════════════════════════════════════════════


class SpectrumAnchors(BaseModel):
    model_config = {"frozen": True}

    low: str
    high: str


class DiscoveryQuestion(BaseModel):
    model_config = {"frozen": True}

    id: str
    type: QuestionType
    text: str
    targets: tuple[PrioritySignal, ...] = ()
    options: tuple[str, ...] | None = None
    spectrum_anchors: SpectrumAnchors | None = None
    scenario_context: str | None = None


class ExtractedSignal(BaseModel):
    model_config = {"frozen": True}

    signal: PrioritySignal
    value: str
    confidence: Confidence
    source_question_id: str


class DiscoveryState(BaseModel):
    model_config = {"frozen": True}

    phase: DiscoveryPhase = DiscoveryPhase.NOT_STARTED
    signals: tuple[ExtractedSignal, ...] = ()
    questions_asked: tuple[str, ...] = Field(default=())
    persona_purpose: str | None = None
    persona_context: str | None = None


# ════════════════════════════════════════════════════════════════
# Question Bank
# ════════════════════════════════════════════════════════════════

PURPOSE_QUESTION_ID = "purpose_core"

QUESTION_BANK: tuple[DiscoveryQuestion, ...] = (
    DiscoveryQuestion(
        id=PURPOSE_QUESTION_ID,
        type=QuestionType.CHOICE,
        text="What is this persona's primary job in a panel? Pick the closest fit.",
        options=(
            "Challenge assumptions and surface risks",
            "Validate evidence and check rigour",
            "Push for progress and pragmatic outcomes",
            "Integrate perspectives and find common ground",
            "Set boundaries and flag what's out of scope",
        ),
    ),
    DiscoveryQuestion(
        id="discomfort_scenario",
        type=QuestionType.SCENARIO,
        text=(
            "A team presents a proposal with strong commercial upside but limited "
            "supporting data. How does this persona respond?"
        ),
        targets=(PrioritySignal.DISCOMFORT_TRIGGERS, PrioritySignal.EVIDENCE_CHANGE_THRESHOLDS),
        scenario_context=(
            "The proposal is time-sensitive. Waiting for more data means missing the window."
        ),
    ),
    DiscoveryQuestion(
        id="evidence_spectrum",
        type=QuestionType.SPECTRUM,
        text="How much evidence does this persona need before accepting a conclusion?",
        targets=(PrioritySignal.EVIDENCE_CHANGE_THRESHOLDS,),
        spectrum_anchors=SpectrumAnchors(
            low="Comfortable with directional signals and experienced judgement",
            high="Requires documented evidence, tested assumptions, and verified sources",
        ),
    ),
    DiscoveryQuestion(
        id="ambiguity_contrast",
        type=QuestionType.CONTRAST,
        text="When inputs are incomplete or messy, does this persona:",
        targets=(PrioritySignal.AMBIGUITY_HANDLING,),
        options=(
            "Work with what's available and flag gaps as they go",
            "Stop and demand clarity before proceeding",
        ),
    ),
    DiscoveryQuestion(
        id="pressure_scenario",
        type=QuestionType.SCENARIO,
        text=(
            "The discussion is running long, the group is divided, and a decision is "
            "needed today. What does this persona do?"
        ),
        targets=(PrioritySignal.PRESSURE_BEHAVIOUR, PrioritySignal.DEFERRAL_PREFERENCES),
        scenario_context="Stakes are moderate. Both sides have reasonable arguments.",
    ),
    DiscoveryQuestion(
        id="deferral_contrast",
        type=QuestionType.CONTRAST,
        text="When this persona reaches the edge of its expertise, does it:",
        targets=(PrioritySignal.DEFERRAL_PREFERENCES,),
        options=(
            "State its limits clearly and recommend who should weigh in",
            "Offer its best judgement with caveats and keep the discussion moving",
        ),
    ),
    DiscoveryQuestion(
        id="risk_spectrum",
        type=QuestionType.SPECTRUM,
        text="Where does this persona sit on the risk spectrum?",
        targets=(PrioritySignal.DISCOMFORT_TRIGGERS,),
        spectrum_anchors=SpectrumAnchors(
            low="Cautious — prefers proven approaches with clear downside protection",
            high="Bold — comfortable with uncertainty if the potential upside justifies it",
        ),
    ),
    DiscoveryQuestion(
        id="intervention_contrast",
        type=QuestionType.CONTRAST,
        text="In a panel discussion, this persona tends to:",
        targets=(PrioritySignal.PRESSURE_BEHAVIOUR,),
        options=(
            "Speak up frequently — challenges, clarifies, redirects as issues arise",
            "Stay quiet and intervene only when something material is at stake",
        ),
    ),
)


# ════════════════════════════════════════════════════════════════
# State Functions
# ════════════════════════════════════════════════════════════════


def create_discovery_state() -> DiscoveryState:
    return DiscoveryState()


def has_signal_sufficiency(state: DiscoveryState) -> bool:
    """Purpose set and ≥3 distinct signals at medium-or-high confidence."""
    if not state.persona_purpose:
        return False
    strong = {
        s.signal
        for s in state.signals
        if s.confidence in (Confidence.HIGH, Confidence.MEDIUM)
    }
    return len(strong) >= SUFFICIENT_SIGNAL_COUNT


def best_confidence(state: DiscoveryState) -> dict[PrioritySignal, Confidence]:
    """Best confidence seen per signal. A later weak observation never downgrades it."""
    best: dict[PrioritySignal, Confidence] = {}
    for s in state.signals:
        existing = best.get(s.signal)
        if existing is None or s.confidence.rank > existing.rank:
            best[s.signal] = s.confidence
    return best


def get_missing_signals(state: DiscoveryState) -> list[PrioritySignal]:
    """Priority signals still absent or only seen at low confidence, in fixed order."""
    best = best_confidence(state)
    return [
        signal
        for signal in PRIORITY_SIGNALS
        if best.get(signal) in (None, Confidence.LOW)
    ]


def _open_ended_question(state: DiscoveryState, missing: list[PrioritySignal]) -> DiscoveryQuestion:
    return DiscoveryQuestion(
        id=f"open_ended_{len(state.questions_asked) + 1}",
        type=QuestionType.SCENARIO,
        text=(
            "Describe a situation where this persona would be most valuable "
            "in a panel discussion."
        ),
        targets=tuple(missing),
    )


def next_targeted_question(state: DiscoveryState) -> DiscoveryQuestion | None:
    """First unasked bank question that targets a missing signal, if any."""
    missing = set(get_missing_signals(state))
    for question in QUESTION_BANK:
        if question.id in state.questions_asked:
            continue
        if missing.intersection(question.targets):
            return question
    return None


def select_next_question(state: DiscoveryState) -> DiscoveryQuestion:
    """
    Choose what to ask next.

    The purpose question comes first while no purpose is set. After
    that, the first unasked bank question targeting a missing signal,
    falling back to an open-ended scenario question.
    """
    if not state.persona_purpose and PURPOSE_QUESTION_ID not in state.questions_asked:
        return QUESTION_BANK[0]

    question = next_targeted_question(state)
    if question is not None:
        return question
    return _open_ended_question(state, get_missing_signals(state))


def _recompute_phase(state: DiscoveryState) -> DiscoveryState:
    if state.phase == DiscoveryPhase.COMPLETE:
        return state

    exhausted = (
        state.persona_purpose is not None
        and len(state.questions_asked) >= MIN_QUESTIONS_BEFORE_FALLBACK
        and next_targeted_question(state) is None
    )
    if has_signal_sufficiency(state) or exhausted:
        phase = DiscoveryPhase.SUFFICIENT
    else:
        phase = DiscoveryPhase.GATHERING
    return state.model_copy(update={"phase": phase})


def set_purpose(state: DiscoveryState, purpose: str, context: str | None = None) -> DiscoveryState:
    """Establish the persona's purpose (and optional domain context)."""
    updated = state.model_copy(
        update={"persona_purpose": purpose.strip() or None, "persona_context": context}
    )
    return _recompute_phase(updated)


def record_answer(
    state: DiscoveryState,
    question_id: str,
    signals: list[ExtractedSignal] | tuple[ExtractedSignal, ...] = (),
) -> DiscoveryState:
    """Record that a question was asked and the signals its answer yielded."""
    asked = state.questions_asked
    if question_id not in asked:
        asked = asked + (question_id,)
    updated = state.model_copy(
        update={"questions_asked": asked, "signals": state.signals + tuple(signals)}
    )
    return _recompute_phase(updated)


def complete_discovery(state: DiscoveryState) -> DiscoveryState:
    """Close discovery. Only a sufficient discovery can be completed."""
    if state.phase != DiscoveryPhase.SUFFICIENT:
        return state
    return state.model_copy(update={"phase": DiscoveryPhase.COMPLETE})

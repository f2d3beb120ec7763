"""
Panel Session Records — human-readable YAML persistence of panel discussions.

A session record captures:
- each participant's rubric snapshot at the time of the session
- every round's messages with the rubric dimensions that shaped them
- round summaries
- for decision-engine runs, the stage and its outcome

Functions:
    create_session_record  — build a record from a live PanelSession
    session_to_yaml        — serialise with a comment header
    yaml_to_session        — parse and validate
    save/load_session_*    — file round-trip
    replay_session         — Markdown rendering for review
    compare_sessions       — persona-set and rubric-score differences
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import yaml
from pydantic import BaseModel, Field

from persona_x.runtime.panel import PanelSession
from persona_x.schema.rubric import RUBRIC_DIMENSIONS, RubricProfile
from persona_x.schema.validation import ValidationIssue, ValidationResult, validate_model

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════
# Record Models
# ════════════════════════════════════════════════════════════════


class SessionPersona(BaseModel):
    id: str
    name: str
    rubric_snapshot: RubricProfile


class SessionMessage(BaseModel):
    persona_id: str
    persona_name: str
    content: str
    timestamp: str
    dominant_dimensions: list[str] = Field(default_factory=list)
    behaviour_notes: list[str] = Field(default_factory=list)


class SessionRound(BaseModel):
    round_number: int = Field(gt=0)
    messages: list[SessionMessage]
    summary: str


class SessionRecord(BaseModel):
    id: str
    created_at: datetime
    panel_name: str
    topic: str
    context: str
    stage: str | None = None
    personas: list[SessionPersona] = Field(min_length=1)
    rounds: list[SessionRound]
    outcome: str | None = None


class PersonaDifferences(BaseModel):
    only_in_a: list[str]
    only_in_b: list[str]
    shared: list[str]


class RubricShift(BaseModel):
    persona_name: str
    dimension: str
    score_a: int
    score_b: int
    shift: int  # positive = higher in session B


class SessionComparison(BaseModel):
    session_a_id: str
    session_b_id: str
    panel_name: str
    topic_a: str
    topic_b: str
    persona_differences: PersonaDifferences
    rubric_shifts: list[RubricShift]
    round_count_a: int
    round_count_b: int
    outcome_a: str | None = None
    outcome_b: str | None = None


# ════════════════════════════════════════════════════════════════
# Construction & Serialisation
# ════════════════════════════════════════════════════════════════


def _session_id() -> str:
    return f"session-{int(time.time() * 1000):x}-{uuid4().hex[:6]}"


def create_session_record(
    session: PanelSession,
    stage: str | None = None,
    outcome: str | None = None,
    panel_name: str | None = None,
) -> SessionRecord:
    """Snapshot a live PanelSession into a persistable record."""
    personas = [
        SessionPersona(id=p.id, name=p.name, rubric_snapshot=p.file.rubric)
        for p in session.config.personas
    ]
    rounds = [
        SessionRound(
            round_number=r.round_number,
            messages=[
                SessionMessage(
                    persona_id=m.persona_id,
                    persona_name=m.persona_name,
                    content=m.content,
                    timestamp=m.timestamp,
                    dominant_dimensions=list(m.rubric_influence.dominant_dimensions),
                    behaviour_notes=list(m.rubric_influence.behaviour_notes),
                )
                for m in r.messages
            ],
            summary=r.summary,
        )
        for r in session.rounds
    ]
    return SessionRecord(
        id=_session_id(),
        created_at=datetime.now(timezone.utc),
        panel_name=panel_name or session.config.topic,
        topic=session.config.topic,
        context=session.config.context,
        stage=stage,
        personas=personas,
        rounds=rounds,
        outcome=outcome,
    )


def session_to_yaml(record: SessionRecord) -> str:
    """Serialise a record to YAML with a descriptive comment header."""
    header = "\n".join(
        [
            "# Panel Session Record",
            f"# Session: {record.id}",
            f"# Panel: {record.panel_name}",
            f"# Created: {record.created_at.isoformat()}",
            f"# Topic: {record.topic}",
            "",
        ]
    )
    body = yaml.safe_dump(
        record.model_dump(mode="json", exclude_none=True),
        sort_keys=False,
        allow_unicode=True,
        width=120,
    )
    return header + body


def yaml_to_session(content: str) -> ValidationResult[SessionRecord]:
    """Parse YAML text and validate it as a SessionRecord."""
    try:
        parsed = yaml.safe_load(content)
    except yaml.YAMLError as e:
        return ValidationResult(
            success=False, errors=[ValidationIssue(path="", message=f"YAML parse error: {e}")]
        )
    return validate_model(SessionRecord, parsed)


def save_session_to_file(record: SessionRecord, file_path: str | Path) -> Path:
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(session_to_yaml(record), encoding="utf-8")
    logger.info("Session %s saved to %s", record.id, path)
    return path


def load_session_from_file(file_path: str | Path) -> ValidationResult[SessionRecord]:
    path = Path(file_path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        return ValidationResult(
            success=False, errors=[ValidationIssue(path="", message=f"Failed to read {path}: {e}")]
        )
    return yaml_to_session(content)


# ════════════════════════════════════════════════════════════════
# Replay & Comparison
# ════════════════════════════════════════════════════════════════


def replay_session(record: SessionRecord) -> str:
    """Render a record as Markdown."""
    lines = [
        f"# Panel Session: {record.panel_name}",
        "",
        f"**Session ID:** {record.id}",
        f"**Created:** {record.created_at.isoformat()}",
        f"**Topic:** {record.topic}",
    ]
    if record.stage:
        lines.append(f"**Stage:** {record.stage}")

    lines += ["", "## Participants"]
    lines += [f"- **{p.name}** ({p.id})" for p in record.personas]

    lines += ["", "## Discussion"]
    for session_round in record.rounds:
        lines += [f"### Round {session_round.round_number}", ""]
        for message in session_round.messages:
            lines += [f"**{message.persona_name}:** {message.content}", ""]
        lines += [f"*Round summary:* {session_round.summary}", ""]

    if record.outcome:
        lines += ["## Outcome", record.outcome]

    return "\n".join(lines)


def compare_sessions(a: SessionRecord, b: SessionRecord) -> SessionComparison:
    """Report persona-set differences and rubric score shifts between two records."""
    by_name_a = {p.name: p for p in a.personas}
    by_name_b = {p.name: p for p in b.personas}

    shared = [name for name in by_name_a if name in by_name_b]
    shifts: list[RubricShift] = []
    for name in shared:
        snapshot_a = by_name_a[name].rubric_snapshot
        snapshot_b = by_name_b[name].rubric_snapshot
        for dim in RUBRIC_DIMENSIONS:
            score_a = snapshot_a.score_of(dim)
            score_b = snapshot_b.score_of(dim)
            if score_a != score_b:
                shifts.append(
                    RubricShift(
                        persona_name=name,
                        dimension=dim,
                        score_a=score_a,
                        score_b=score_b,
                        shift=score_b - score_a,
                    )
                )

    return SessionComparison(
        session_a_id=a.id,
        session_b_id=b.id,
        panel_name=a.panel_name,
        topic_a=a.topic,
        topic_b=b.topic,
        persona_differences=PersonaDifferences(
            only_in_a=[n for n in by_name_a if n not in by_name_b],
            only_in_b=[n for n in by_name_b if n not in by_name_a],
            shared=shared,
        ),
        rubric_shifts=shifts,
        round_count_a=len(a.rounds),
        round_count_b=len(b.rounds),
        outcome_a=a.outcome,
        outcome_b=b.outcome,
    )

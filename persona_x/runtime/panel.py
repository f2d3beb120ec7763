"""
Panel Session — turn-taking structure for a multi-persona discussion.

Provides:
- per-persona system prompts, computed once when the session is created
- speaking order driven by the rubric's intervention_frequency
- per-round participation, so low-intervention personas fall quiet
- an append-only record of completed rounds
"""

from __future__ import annotations

import logging

from persona_x.runtime.interface import (
    LoadedPersona,
    PanelConfig,
    PanelRound,
    generate_persona_system_prompt,
)

logger = logging.getLogger(__name__)

HIGH_INTERVENTION = 8
MEDIUM_INTERVENTION = 4


class PanelSession:
    """A live panel discussion. Rounds can be appended but never rewritten."""

    def __init__(self, config: PanelConfig) -> None:
        self.config = config
        self.system_prompts: dict[str, str] = {
            persona.id: generate_persona_system_prompt(persona.file)
            for persona in config.personas
        }
        self._rounds: list[PanelRound] = []

    @property
    def rounds(self) -> tuple[PanelRound, ...]:
        return tuple(self._rounds)

    @property
    def current_round(self) -> int:
        return len(self._rounds)

    def append_round(self, panel_round: PanelRound) -> None:
        """
        Record a completed round.

        Raises:
            ValueError: If the round is out of sequence or exceeds max_rounds.
        """
        expected = self.current_round + 1
        if panel_round.round_number != expected:
            raise ValueError(
                f"Expected round {expected}, got round {panel_round.round_number}"
            )
        if panel_round.round_number > self.config.max_rounds:
            raise ValueError(
                f"Panel is limited to {self.config.max_rounds} rounds"
            )
        self._rounds.append(panel_round)
        logger.info(
            "Round %d recorded for '%s' (%d messages)",
            panel_round.round_number,
            self.config.topic[:80],
            len(panel_round.messages),
        )


def create_panel_session(config: PanelConfig) -> PanelSession:
    return PanelSession(config)


def determine_speaking_order(personas: list[LoadedPersona]) -> list[LoadedPersona]:
    """Highest intervention_frequency speaks first; ties keep their input order."""
    return sorted(personas, key=lambda p: p.intervention_frequency, reverse=True)


def should_persona_contribute(persona: LoadedPersona, round_number: int, total_rounds: int) -> bool:
    """
    Whether a persona speaks in a given round.

    8–10 always contribute; 4–7 contribute on round 1 and even rounds;
    1–3 contribute on round 1 only.
    """
    freq = persona.intervention_frequency
    if freq >= HIGH_INTERVENTION:
        return True
    if freq >= MEDIUM_INTERVENTION:
        return round_number == 1 or round_number % 2 == 0
    return round_number == 1


def get_persona_prompt(session: PanelSession, persona_id: str) -> str | None:
    return session.system_prompts.get(persona_id)


def format_panel_discussion(session: PanelSession) -> str:
    """Render a session as Markdown for human review."""
    config = session.config
    lines = [
        f"# Panel Discussion: {config.topic}",
        "",
        f"Context: {config.context}",
        f"Personas: {', '.join(p.name for p in config.personas)}",
        "",
    ]

    for panel_round in session.rounds:
        lines += [f"## Round {panel_round.round_number}", ""]
        for message in panel_round.messages:
            lines += [f"### {message.persona_name}", message.content, ""]
        if panel_round.summary:
            lines += [f"**Round summary**: {panel_round.summary}", ""]

    return "\n".join(lines)

"""
Panel Discussion — generating persona contributions and round summaries.

Each contribution is produced by one free-text completion using the
persona's precomputed system prompt. Within a round, every persona sees
the contributions made before it in that same round.
"""

from __future__ import annotations

from datetime import datetime, timezone

from persona_x.llm.client import LLMClient
from persona_x.runtime.interface import LoadedPersona, PanelMessage, RubricInfluence
from persona_x.runtime.panel import PanelSession
from persona_x.schema.rubric import RUBRIC_DIMENSIONS

SUMMARY_SYSTEM = (
    "You are a neutral panel moderator summarising a discussion round. "
    "Be concise and factual. Use Australian English spelling."
)


def _format_contributions(messages: list[PanelMessage]) -> str:
    return "\n\n".join(f"{m.persona_name}: {m.content}" for m in messages)


def identify_rubric_influence(persona: LoadedPersona, top_n: int = 3) -> RubricInfluence:
    """The most extreme rubric dimensions (furthest from 5) dominate a response."""
    rubric = persona.file.rubric
    scored = sorted(
        ((dim, getattr(rubric, dim)) for dim in RUBRIC_DIMENSIONS),
        key=lambda item: abs(item[1].score - 5),
        reverse=True,
    )[:top_n]
    return RubricInfluence(
        dominant_dimensions=[dim for dim, _ in scored],
        behaviour_notes=[f"{dim} ({score.score}/10): {score.note}" for dim, score in scored],
    )


async def generate_persona_response(
    llm: LLMClient,
    session: PanelSession,
    persona: LoadedPersona,
    round_number: int,
    previous_messages: list[PanelMessage],
    model: str | None = None,
) -> PanelMessage:
    """
    Generate one persona's contribution to a round.

    Raises:
        KeyError: If the persona is not part of the session.
        LLMServiceError: If the completion fails after retries.
    """
    system_prompt = session.system_prompts.get(persona.id)
    if system_prompt is None:
        raise KeyError(f"No system prompt found for persona: {persona.id}")

    topic = session.config.topic
    context = session.config.context
    earlier = (
        _format_contributions(previous_messages)
        if previous_messages
        else "No previous contributions in this round."
    )

    if round_number == 1:
        prompt = (
            f'The panel discussion topic is: "{topic}"\nContext: {context}\n\n'
            f"Previous contributions this round:\n{earlier}\n\n"
            f"This is Round {round_number}. Provide your initial perspective on this topic, "
            "shaped by your rubric profile and role. Be concise (2-4 paragraphs)."
        )
    else:
        prompt = (
            f'Round {round_number} of the panel discussion on: "{topic}"\n\n'
            f"Previous contributions this round:\n{earlier}\n\n"
            "Respond to the points raised by other panellists. Build on, challenge, or "
            "qualify their positions based on your rubric profile. Be concise (1-3 paragraphs)."
        )

    response = await llm.complete(
        system_prompt,
        [{"role": "user", "content": prompt}],
        max_tokens=1024,
        temperature=0.7,
        model=model,
    )

    return PanelMessage(
        persona_id=persona.id,
        persona_name=persona.name,
        content=response.content,
        timestamp=datetime.now(timezone.utc).isoformat(),
        rubric_influence=identify_rubric_influence(persona),
    )


async def generate_round_summary(
    llm: LLMClient,
    topic: str,
    messages: list[PanelMessage],
    model: str | None = None,
) -> str:
    """Summarise a completed round from its full message list."""
    prompt = (
        f'Summarise this panel discussion round on "{topic}" in 2-3 sentences. '
        "Highlight key agreements, disagreements, and unresolved tensions.\n\n"
        f"{_format_contributions(messages) or 'No panellists contributed this round.'}"
    )
    response = await llm.complete(
        SUMMARY_SYSTEM,
        [{"role": "user", "content": prompt}],
        max_tokens=512,
        temperature=0.3,
        model=model,
    )
    return response.content

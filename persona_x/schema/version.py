"""
Persona Versioning — semantic versions and provenance entries for persona files.

Persona files use MAJOR.MINOR.PATCH:
    MAJOR — the core judgement profile, boundaries or purpose changed
    MINOR — role, reasoning, interaction, knowledge base or invocation refined
    PATCH — wording fixes, note clarifications, metadata updates
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from persona_x.schema.persona import PersonaFile, ProvenanceEntry

logger = logging.getLogger(__name__)

INITIAL_VERSION = "1.0.0"

_SEMVER_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")

MAJOR_SECTIONS = frozenset({"rubric", "boundaries", "purpose"})
MINOR_SECTIONS = frozenset(
    {"panel_role", "reasoning", "interaction", "knowledge_base", "invocation"}
)


class BumpType(str, enum.Enum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


@dataclass(frozen=True)
class SemVer:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def parse_semver(version: str) -> SemVer | None:
    """Parse a strict ``MAJOR.MINOR.PATCH`` string, or return None."""
    match = _SEMVER_RE.match(version)
    if match is None:
        return None
    return SemVer(*(int(part) for part in match.groups()))


def bump_version(current: str, bump_type: BumpType | str) -> str:
    """
    Bump ``current`` by one step of ``bump_type``.

    Lower components reset to zero. An unparseable version restarts
    at 1.0.0.
    """
    parsed = parse_semver(current)
    if parsed is None:
        logger.warning("Unparseable persona version %r, restarting at %s", current, INITIAL_VERSION)
        return INITIAL_VERSION

    bump_type = BumpType(bump_type)
    if bump_type == BumpType.MAJOR:
        return str(SemVer(parsed.major + 1, 0, 0))
    if bump_type == BumpType.MINOR:
        return str(SemVer(parsed.major, parsed.minor + 1, 0))
    return str(SemVer(parsed.major, parsed.minor, parsed.patch + 1))


def infer_bump_type(changed_sections: Iterable[str]) -> BumpType:
    """The largest bump any of ``changed_sections`` calls for."""
    changed = set(changed_sections)
    if changed & MAJOR_SECTIONS:
        return BumpType.MAJOR
    if changed & MINOR_SECTIONS:
        return BumpType.MINOR
    return BumpType.PATCH


def record_revision(
    persona: PersonaFile,
    changed_sections: Iterable[str],
    changes: list[str],
    author: str,
    today: date | None = None,
) -> PersonaFile:
    """
    Return a copy of ``persona`` with its version bumped for a revision.

    The bump type is inferred from ``changed_sections``. ``last_updated``
    is set to ``today``, and when the persona carries provenance a
    changelog entry is appended to its history. Personas without
    provenance are versioned but gain no history.

    Raises:
        ValueError: If ``changes`` is empty.
    """
    if not changes:
        raise ValueError("A revision needs at least one change description")

    stamp = (today or date.today()).isoformat()
    bump_type = infer_bump_type(changed_sections)
    new_version = bump_version(persona.metadata.version, bump_type)

    update: dict[str, object] = {
        "metadata": persona.metadata.model_copy(
            update={"version": new_version, "last_updated": stamp}
        )
    }
    if persona.provenance is not None:
        entry = ProvenanceEntry(version=new_version, date=stamp, author=author, changes=changes)
        history = list(persona.provenance.history or []) + [entry]
        update["provenance"] = persona.provenance.model_copy(update={"history": history})

    logger.info(
        "Persona %s revised: %s -> %s (%s)",
        persona.metadata.name,
        persona.metadata.version,
        new_version,
        bump_type.value,
    )
    return persona.model_copy(update=update)

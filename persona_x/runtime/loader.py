"""
Persona Loader — reads persona YAML files into validated LoadedPersona values.

Loading is: read file → YAML safe_load → PersonaFile validation →
rubric coherence warnings. Every failure is reported against the path
that caused it.

:class:`PersonaCache` memoises successfully loaded personas. It is an
explicit object passed to whoever needs it, so independent runs (and
tests) never share cached state unless they share the cache.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from persona_x.runtime.interface import LoadedPersona
from persona_x.schema.persona import validate_persona_file
from persona_x.schema.rubric import validate_rubric_coherence

logger = logging.getLogger(__name__)


class PersonaLoadError(Exception):
    """Raised when one or more required persona files cannot be loaded."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        self.errors = errors
        detail = "; ".join(
            f"{path}: {', '.join(messages)}" for path, messages in errors.items()
        )
        super().__init__(f"Failed to load {len(errors)} persona file(s): {detail}")


@dataclass
class LoadResult:
    success: bool
    persona: LoadedPersona | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class PanelLoadResult:
    personas: list[LoadedPersona] = field(default_factory=list)
    errors: dict[str, list[str]] = field(default_factory=dict)
    warnings: dict[str, list[str]] = field(default_factory=dict)


def persona_id_from_name(name: str) -> str:
    """Stable slug identifier derived from a persona's display name."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def load_persona_from_file(file_path: str | Path) -> LoadResult:
    """Load and validate a single persona YAML file."""
    path = Path(file_path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        return LoadResult(success=False, errors=[f"Failed to read file: {path} — {e}"])

    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        return LoadResult(success=False, errors=[f"Invalid YAML in {path} — {e}"])

    validation = validate_persona_file(parsed)
    if not validation.success or validation.data is None:
        return LoadResult(
            success=False,
            errors=[str(issue) for issue in validation.errors] or ["Unknown validation error"],
        )

    persona_file = validation.data
    return LoadResult(
        success=True,
        persona=LoadedPersona(
            file=persona_file,
            id=persona_id_from_name(persona_file.metadata.name),
            active=True,
        ),
        warnings=validate_rubric_coherence(persona_file.rubric),
    )


class PersonaCache:
    """
    Memoises loaded personas by resolved file path.

    Only successful loads are cached; a failing file is re-read on the
    next request so a fix on disk takes effect without invalidation.
    """

    def __init__(self) -> None:
        self._entries: dict[Path, LoadResult] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, file_path: object) -> bool:
        if not isinstance(file_path, (str, Path)):
            return False
        return Path(file_path).resolve() in self._entries

    def get(self, file_path: str | Path) -> LoadResult:
        key = Path(file_path).resolve()
        cached = self._entries.get(key)
        if cached is not None:
            return cached

        result = load_persona_from_file(key)
        if result.success:
            self._entries[key] = result
        return result

    def invalidate(self, file_path: str | Path) -> None:
        self._entries.pop(Path(file_path).resolve(), None)

    def clear(self) -> None:
        self._entries.clear()


def load_personas_for_panel(
    file_paths: list[str | Path],
    cache: PersonaCache | None = None,
) -> PanelLoadResult:
    """Load several persona files, collecting errors and warnings per path."""
    result = PanelLoadResult()

    for file_path in file_paths:
        loaded = cache.get(file_path) if cache is not None else load_persona_from_file(file_path)
        key = str(file_path)
        if loaded.success and loaded.persona is not None:
            result.personas.append(loaded.persona)
        if loaded.errors:
            result.errors[key] = loaded.errors
        if loaded.warnings:
            result.warnings[key] = loaded.warnings

    return result


def load_required_personas(
    slugs: list[str] | tuple[str, ...],
    persona_dir: str | Path,
    cache: PersonaCache | None = None,
) -> list[LoadedPersona]:
    """
    Resolve persona identifiers to ``<persona_dir>/<slug>.yaml`` and load all of them.

    Raises:
        PersonaLoadError: If any persona cannot be read or fails validation.
    """
    base = Path(persona_dir)
    loaded = load_personas_for_panel([base / f"{slug}.yaml" for slug in slugs], cache)

    if loaded.errors:
        logger.error("Persona load failed for %d file(s)", len(loaded.errors))
        raise PersonaLoadError(loaded.errors)

    for path, warnings in loaded.warnings.items():
        for warning in warnings:
            logger.warning("Rubric coherence (%s): %s", path, warning)

    return loaded.personas

"""
Tests for persona versioning.

Validates:
- Strict MAJOR.MINOR.PATCH parsing
- Bumps reset lower components
- Bump type inferred from the changed sections
- Revisions update metadata and provenance history
"""

from __future__ import annotations

from datetime import date

import pytest

from persona_x.schema.persona import PersonaFile
from persona_x.schema.version import (
    BumpType,
    SemVer,
    bump_version,
    infer_bump_type,
    parse_semver,
    record_revision,
)
from tests.helpers import make_persona_dict

TODAY = date(2026, 3, 2)


class TestParse:
    def test_valid(self):
        assert parse_semver("2.10.3") == SemVer(2, 10, 3)
        assert str(SemVer(2, 10, 3)) == "2.10.3"

    @pytest.mark.parametrize("version", ["1.0", "v1.0.0", "1.0.0-beta", "1.a.0", ""])
    def test_invalid(self, version):
        assert parse_semver(version) is None


class TestBump:
    def test_major_resets_minor_and_patch(self):
        assert bump_version("1.4.2", BumpType.MAJOR) == "2.0.0"

    def test_minor_resets_patch(self):
        assert bump_version("1.4.2", "minor") == "1.5.0"

    def test_patch(self):
        assert bump_version("1.4.2", BumpType.PATCH) == "1.4.3"

    def test_unparseable_restarts(self):
        assert bump_version("draft", BumpType.MINOR) == "1.0.0"

    def test_unknown_bump_type(self):
        with pytest.raises(ValueError):
            bump_version("1.0.0", "huge")


class TestInferBumpType:
    @pytest.mark.parametrize("section", ["rubric", "boundaries", "purpose"])
    def test_major_sections(self, section):
        assert infer_bump_type([section]) == BumpType.MAJOR

    @pytest.mark.parametrize(
        "section", ["panel_role", "reasoning", "interaction", "knowledge_base", "invocation"]
    )
    def test_minor_sections(self, section):
        assert infer_bump_type([section]) == BumpType.MINOR

    def test_other_sections_patch(self):
        assert infer_bump_type(["metadata", "bio", "communication"]) == BumpType.PATCH
        assert infer_bump_type([]) == BumpType.PATCH

    def test_largest_bump_wins(self):
        assert infer_bump_type(["bio", "reasoning", "rubric"]) == BumpType.MAJOR


class TestRecordRevision:
    def setup_method(self):
        data = make_persona_dict()
        data["provenance"] = {
            "created_by": "Persona Builder",
            "history": [
                {"version": "1.0.0", "date": "2025-01-15", "author": "Test", "changes": ["Created"]}
            ],
        }
        self.persona = PersonaFile.model_validate(data)

    def test_bumps_and_appends_history(self):
        revised = record_revision(
            self.persona, ["reasoning"], ["Refined reasoning"], "persona-x refine", today=TODAY
        )
        assert revised.metadata.version == "1.1.0"
        assert revised.metadata.last_updated == "2026-03-02"
        entry = revised.provenance.history[-1]
        assert entry.version == "1.1.0"
        assert entry.date == "2026-03-02"
        assert entry.author == "persona-x refine"
        assert entry.changes == ["Refined reasoning"]
        assert len(revised.provenance.history) == 2

    def test_original_untouched(self):
        record_revision(self.persona, ["rubric"], ["Lowered risk appetite"], "Test", today=TODAY)
        assert self.persona.metadata.version == "1.0.0"
        assert len(self.persona.provenance.history) == 1

    def test_without_provenance(self):
        persona = PersonaFile.model_validate(make_persona_dict())
        revised = record_revision(persona, ["bio"], ["Fixed typo"], "Test", today=TODAY)
        assert revised.metadata.version == "1.0.1"
        assert revised.provenance is None

    def test_empty_history_started(self):
        persona = self.persona.model_copy(
            update={"provenance": self.persona.provenance.model_copy(update={"history": None})}
        )
        revised = record_revision(persona, ["purpose"], ["Narrowed purpose"], "Test", today=TODAY)
        assert revised.metadata.version == "2.0.0"
        assert [e.version for e in revised.provenance.history] == ["2.0.0"]

    def test_changes_required(self):
        with pytest.raises(ValueError):
            record_revision(self.persona, ["bio"], [], "Test", today=TODAY)

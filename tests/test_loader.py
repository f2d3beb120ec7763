"""
Tests for the Persona Loader and PersonaCache.
"""

from __future__ import annotations

import pytest
import yaml

from persona_x.config import DEFAULT_PERSONA_DIR
from persona_x.decision.pipeline import STAGE_PANELS
from persona_x.runtime.loader import (
    PersonaCache,
    PersonaLoadError,
    load_persona_from_file,
    load_personas_for_panel,
    load_required_personas,
    persona_id_from_name,
)
from tests.helpers import make_persona_dict


def _write(path, data) -> None:
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")


class TestLoadPersonaFromFile:
    def test_valid_file(self, tmp_path):
        path = tmp_path / "analyst.yaml"
        _write(path, make_persona_dict())
        result = load_persona_from_file(path)
        assert result.success
        assert result.persona.id == "risk-aware-analyst"
        assert result.persona.name == "Risk-Aware Analyst"
        assert result.errors == []

    def test_missing_file(self, tmp_path):
        result = load_persona_from_file(tmp_path / "absent.yaml")
        assert not result.success
        assert result.errors[0].startswith("Failed to read file")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("metadata: [unclosed", encoding="utf-8")
        result = load_persona_from_file(path)
        assert not result.success
        assert result.errors[0].startswith("Invalid YAML")

    def test_schema_errors_reported_by_path(self, tmp_path):
        data = make_persona_dict()
        del data["boundaries"]
        path = tmp_path / "incomplete.yaml"
        _write(path, data)
        result = load_persona_from_file(path)
        assert not result.success
        assert any(error.startswith("boundaries") for error in result.errors)

    def test_coherence_warnings(self, tmp_path):
        path = tmp_path / "odd.yaml"
        _write(path, make_persona_dict(risk_appetite=9, evidence_threshold=9))
        result = load_persona_from_file(path)
        assert result.success
        assert len(result.warnings) == 1

    def test_persona_id_from_name(self):
        assert persona_id_from_name("Build-vs-Buy Pragmatist") == "build-vs-buy-pragmatist"


class TestPersonaCache:
    def setup_method(self):
        self.cache = PersonaCache()

    def test_caches_success(self, tmp_path):
        path = tmp_path / "analyst.yaml"
        _write(path, make_persona_dict())
        first = self.cache.get(path)
        path.unlink()
        assert self.cache.get(path) is first
        assert path in self.cache
        assert len(self.cache) == 1

    def test_failures_not_cached(self, tmp_path):
        path = tmp_path / "later.yaml"
        assert not self.cache.get(path).success
        _write(path, make_persona_dict())
        assert self.cache.get(path).success

    def test_invalidate_rereads(self, tmp_path):
        path = tmp_path / "analyst.yaml"
        _write(path, make_persona_dict())
        self.cache.get(path)
        _write(path, make_persona_dict(name="Renamed Analyst"))
        self.cache.invalidate(path)
        assert self.cache.get(path).persona.name == "Renamed Analyst"

    def test_clear(self, tmp_path):
        path = tmp_path / "analyst.yaml"
        _write(path, make_persona_dict())
        self.cache.get(path)
        self.cache.clear()
        assert len(self.cache) == 0

    def test_separate_caches_are_isolated(self, tmp_path):
        path = tmp_path / "analyst.yaml"
        _write(path, make_persona_dict())
        self.cache.get(path)
        assert path not in PersonaCache()


class TestPanelLoading:
    def test_collects_errors_per_path(self, tmp_path):
        good = tmp_path / "good.yaml"
        _write(good, make_persona_dict())
        result = load_personas_for_panel([good, tmp_path / "missing.yaml"])
        assert len(result.personas) == 1
        assert list(result.errors) == [str(tmp_path / "missing.yaml")]

    def test_required_personas_strict(self, tmp_path):
        _write(tmp_path / "risk-aware-analyst.yaml", make_persona_dict())
        with pytest.raises(PersonaLoadError) as exc_info:
            load_required_personas(["risk-aware-analyst", "missing-one"], tmp_path)
        assert len(exc_info.value.errors) == 1

    def test_bundled_stage_personas_all_load(self):
        cache = PersonaCache()
        for panel in STAGE_PANELS.values():
            personas = load_required_personas(panel.personas, DEFAULT_PERSONA_DIR, cache)
            assert [p.id for p in personas] == list(panel.personas)
        assert len(cache) == 16

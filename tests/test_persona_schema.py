"""
Tests for the Persona and Rubric schemas — verifies the Pydantic models.

Validates:
- Rubric score bounds and integer-only scores
- Coherence warnings for unusual combinations
- Persona file required sections and enum fields
- YAML date handling in metadata
- Optional knowledge base section and its use contract
"""

from __future__ import annotations

from datetime import date

import pytest

from persona_x.schema.knowledge_base import KBPermittedUse
from persona_x.schema.persona import (
    ChallengeStrength,
    PersonaType,
    PrimaryMode,
    validate_persona_file,
)
from persona_x.schema.rubric import (
    RUBRIC_DIMENSION_LABELS,
    RUBRIC_DIMENSIONS,
    RubricProfile,
    validate_rubric_coherence,
    validate_rubric_profile,
)
from tests.helpers import make_knowledge_base, make_persona_dict, make_rubric


class TestRubricProfile:
    """Verify the six-dimension rubric."""

    def test_six_dimensions(self):
        assert len(RUBRIC_DIMENSIONS) == 6
        assert set(RUBRIC_DIMENSION_LABELS) == set(RUBRIC_DIMENSIONS)

    def test_valid_profile(self):
        result = validate_rubric_profile(make_rubric(risk_appetite=1, escalation_bias=10))
        assert result.success
        assert result.data.score_of("risk_appetite") == 1
        assert result.data.score_of("escalation_bias") == 10

    def test_score_out_of_range(self):
        result = validate_rubric_profile(make_rubric(risk_appetite=11))
        assert not result.success
        assert result.errors[0].path == "risk_appetite.score"

    def test_fractional_score_rejected(self):
        data = make_rubric()
        data["evidence_threshold"]["score"] = 6.5
        assert not validate_rubric_profile(data).success

    def test_short_note_rejected(self):
        data = make_rubric()
        data["escalation_bias"]["note"] = "short"
        assert not validate_rubric_profile(data).success

    @pytest.mark.parametrize("dimension", RUBRIC_DIMENSIONS)
    def test_missing_dimension(self, dimension):
        data = make_rubric()
        del data[dimension]
        result = validate_rubric_profile(data)
        assert not result.success
        assert result.data is None
        assert [e.path for e in result.errors] == [dimension]


class TestRubricCoherence:
    def _profile(self, **scores: int) -> RubricProfile:
        return RubricProfile.model_validate(make_rubric(**scores))

    def test_balanced_profile_has_no_warnings(self):
        assert validate_rubric_coherence(self._profile()) == []

    def test_high_risk_high_evidence(self):
        warnings = validate_rubric_coherence(self._profile(risk_appetite=8, evidence_threshold=8))
        assert len(warnings) == 1
        assert "High risk appetite (8)" in warnings[0]

    def test_low_ambiguity_low_evidence(self):
        warnings = validate_rubric_coherence(
            self._profile(tolerance_for_ambiguity=3, evidence_threshold=3)
        )
        assert len(warnings) == 1

    def test_hands_on_interventionist(self):
        warnings = validate_rubric_coherence(
            self._profile(intervention_frequency=8, escalation_bias=3)
        )
        assert len(warnings) == 1
        assert "fix issues locally" in warnings[0]

    def test_boundary_below_threshold(self):
        assert validate_rubric_coherence(self._profile(risk_appetite=7, evidence_threshold=9)) == []


class TestPersonaFile:
    def test_valid_file(self):
        result = validate_persona_file(make_persona_dict())
        assert result.success
        persona = result.data
        assert persona.metadata.type == PersonaType.DESIGNED
        assert persona.interaction.primary_mode == PrimaryMode.QUESTIONS
        assert persona.interaction.challenge_strength == ChallengeStrength.STRONG
        assert persona.communication is None
        assert persona.provenance is None

    def test_yaml_date_normalised(self):
        data = make_persona_dict()
        data["metadata"]["last_updated"] = date(2025, 1, 15)
        result = validate_persona_file(data)
        assert result.data.metadata.last_updated == "2025-01-15"

    def test_bad_version(self):
        data = make_persona_dict()
        data["metadata"]["version"] = "v1"
        result = validate_persona_file(data)
        assert not result.success
        assert result.errors[0].path == "metadata.version"

    def test_missing_bio(self):
        data = make_persona_dict()
        del data["bio"]
        result = validate_persona_file(data)
        assert not result.success
        assert [e.path for e in result.errors] == ["bio"]

    def test_empty_required_list(self):
        data = make_persona_dict()
        data["boundaries"]["will_not_claim"] = []
        assert not validate_persona_file(data).success

    def test_unknown_challenge_strength(self):
        data = make_persona_dict()
        data["interaction"]["challenge_strength"] = "brutal"
        assert not validate_persona_file(data).success

    def test_optional_sections(self):
        data = make_persona_dict()
        data["communication"] = {"clarity_vs_brevity": "brevity", "tone_markers": ["dry"]}
        data["provenance"] = {
            "created_by": "Persona Builder",
            "history": [
                {"version": "1.0.0", "date": date(2025, 1, 15), "author": "Test", "changes": ["Created"]}
            ],
        }
        result = validate_persona_file(data)
        assert result.success
        assert result.data.provenance.history[0].date == "2025-01-15"

    def test_all_errors_reported(self):
        data = make_persona_dict()
        del data["purpose"]
        del data["invocation"]
        result = validate_persona_file(data)
        assert {e.path for e in result.errors} == {"purpose", "invocation"}


class TestKnowledgeBase:
    def setup_method(self):
        self.data = make_persona_dict()
        self.data["knowledge_base"] = make_knowledge_base()

    def test_absent_by_default(self):
        assert validate_persona_file(make_persona_dict()).data.knowledge_base is None

    def test_valid_knowledge_base(self):
        result = validate_persona_file(self.data)
        assert result.success
        kb = result.data.knowledge_base
        assert kb.contract.permitted_uses == [KBPermittedUse.REFERENCE_ONLY, KBPermittedUse.CHALLENGE]
        assert kb.items[0].id == "KB-1"
        assert kb.items[0].date_version == "Not provided"
        assert kb.items[0].link is None

    def test_item_id_pattern(self):
        self.data["knowledge_base"]["items"][0]["id"] = "item-1"
        result = validate_persona_file(self.data)
        assert not result.success
        assert [e.path for e in result.errors] == ["knowledge_base.items.0.id"]

    def test_used_for_limited_to_three(self):
        self.data["knowledge_base"]["items"][0]["used_for"] = ["a", "b", "c", "d"]
        assert not validate_persona_file(self.data).success

    def test_contract_requires_permitted_use(self):
        self.data["knowledge_base"]["contract"]["permitted_uses"] = []
        assert not validate_persona_file(self.data).success

    def test_unknown_permitted_use(self):
        self.data["knowledge_base"]["contract"]["permitted_uses"] = ["speculation"]
        assert not validate_persona_file(self.data).success

    def test_items_required(self):
        self.data["knowledge_base"]["items"] = []
        assert not validate_persona_file(self.data).success

    def test_link_must_be_url(self):
        self.data["knowledge_base"]["items"][0]["link"] = "not a url"
        assert not validate_persona_file(self.data).success

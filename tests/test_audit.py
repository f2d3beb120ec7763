"""
Tests for the decision audit viewer.
"""

from __future__ import annotations

import pytest
from rich.console import Console

from persona_x.decision.audit import load_pipeline_state, main, render_audit
from persona_x.decision.pipeline import (
    PipelineStatus,
    TranscriptRound,
    advance_to_next_stage,
    create_decision_pipeline,
    record_stage_result,
)
from persona_x.decision.schema import DecisionStage
from tests.helpers import make_brief


def _deferred_state():
    state = create_decision_pipeline("Certified refurbished lab equipment")
    state = record_stage_result(
        state,
        DecisionStage.PROPOSE,
        make_brief((5, 5, 4, 6, 4, 3)),
        [TranscriptRound(round_number=1, messages=(), summary="Scores were middling.")],
    )
    return advance_to_next_stage(state)


def _passed_state():
    return _deferred_state().model_copy(update={"status": PipelineStatus.PASSED})


class TestRenderAudit:
    def setup_method(self):
        self.out = Console(record=True, width=200)

    def test_renders_gates_and_trail(self):
        passed = render_audit(_deferred_state(), out=self.out)
        text = self.out.export_text()
        assert not passed
        assert "DEFERRED" in text
        assert "Stage Gates" in text
        assert "Audit Trail" in text
        assert "gate_failed" in text
        assert "Scores were middling." not in text

    def test_verbose_shows_round_summaries(self):
        render_audit(_deferred_state(), verbose=True, out=self.out)
        assert "propose round 1: Scores were middling." in self.out.export_text()


class TestMain:
    def test_round_trip_from_file(self, tmp_path):
        path = tmp_path / "run.json"
        state = _deferred_state()
        path.write_text(state.model_dump_json(), encoding="utf-8")
        assert load_pipeline_state(path) == state

    def test_exit_status_deferred(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(_deferred_state().model_dump_json(), encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main([str(path)])
        assert exc_info.value.code == 1

    def test_exit_status_passed(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(_passed_state().model_dump_json(), encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main([str(path), "--verbose"])
        assert exc_info.value.code == 0

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main([str(tmp_path / "missing.json")])
        assert exc_info.value.code == 2

    def test_invalid_state_file(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text('{"status": "unknown"}', encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main([str(path)])
        assert exc_info.value.code == 2

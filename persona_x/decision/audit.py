"""
Decision Audit Tool — review a saved decision pipeline run.

Renders the audit trail and the per-stage gate results of a pipeline
state previously written as JSON (see ``persona-x --state-out``).

Usage:
    python -m persona_x.decision.audit run.json
    python -m persona_x.decision.audit run.json --verbose

Exit status is 0 when the pipeline passed, 1 when it was deferred,
killed or is still active, and 2 when the file cannot be read.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from persona_x.decision.pipeline import DecisionPipelineState, PipelineStatus
from persona_x.decision.schema import DECISION_STAGES

console = Console()

_STATUS_STYLES = {
    PipelineStatus.ACTIVE: "yellow",
    PipelineStatus.PASSED: "bold green",
    PipelineStatus.DEFERRED: "bold yellow",
    PipelineStatus.KILLED: "bold red",
}


def render_audit(
    state: DecisionPipelineState, verbose: bool = False, out: Console | None = None
) -> bool:
    """
    Print the gate results and audit trail of a pipeline run.

    Args:
        state: The pipeline state to render.
        verbose: Also print each audited round summary.
        out: Console to print to; the module console if omitted.

    Returns:
        True if the pipeline passed all four stages.
    """
    out = out or console
    style = _STATUS_STYLES[state.status]

    out.print("\n[bold blue]═══ Decision Engine Audit ═══[/bold blue]")
    out.print(f"  Opportunity: [bold]{state.opportunity_input[:100]}[/bold]")
    out.print(f"  Status: [{style}]{state.status.value.upper()}[/{style}]")
    out.print(f"  Final stage: {state.current_stage.value} ({state.stage_index + 1}/4)\n")

    gates = Table(title="Stage Gates", show_lines=True)
    gates.add_column("Stage", style="cyan", width=10)
    gates.add_column("Result", width=10)
    gates.add_column("Decision", style="green", width=18)
    gates.add_column("Failures")

    for number, stage in enumerate(DECISION_STAGES, start=1):
        gate = getattr(state.gate_results, f"stage_{number}")
        if gate is None:
            gates.add_row(stage.value, "[dim]—[/dim]", "—", "")
            continue
        gates.add_row(
            stage.value,
            "[green]✓ PASS[/green]" if gate.passed else "[red]✗ FAIL[/red]",
            gate.decision.value,
            "\n".join(gate.failures),
        )
    out.print(gates)

    trail = Table(title="Audit Trail", show_lines=True)
    trail.add_column("#", style="cyan", width=4)
    trail.add_column("Stage", width=10)
    trail.add_column("Action", style="yellow", width=14)
    trail.add_column("Detail")
    trail.add_column("Timestamp", width=22)

    for i, entry in enumerate(state.audit_trail, start=1):
        trail.add_row(str(i), entry.stage.value, entry.action, entry.detail, entry.timestamp[:19])
    out.print(trail)

    if verbose:
        for entry in state.audit_trail:
            for transcript_round in entry.transcript or ():
                out.print(
                    f"[bold]{entry.stage.value} round {transcript_round.round_number}:[/bold] "
                    f"{transcript_round.summary}"
                )

    out.print("\n[bold blue]═══ Audit Complete ═══[/bold blue]\n")
    return state.status == PipelineStatus.PASSED


def load_pipeline_state(path: str | Path) -> DecisionPipelineState:
    """
    Raises:
        OSError: If the file cannot be read.
        pydantic.ValidationError: If it does not hold a pipeline state.
    """
    return DecisionPipelineState.model_validate_json(Path(path).read_text(encoding="utf-8"))


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Persona-x Decision Engine audit viewer")
    parser.add_argument("state_file", help="Pipeline state JSON written by a decision run")
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show per-round summaries from the audit trail",
    )
    args = parser.parse_args(argv)

    try:
        state = load_pipeline_state(args.state_file)
    except (OSError, ValidationError) as e:
        console.print(f"[bold red]✗ Cannot load {args.state_file}:[/bold red] {e}")
        sys.exit(2)

    passed = render_audit(state, verbose=args.verbose)
    sys.exit(0 if passed else 1)


if __name__ == "__main__":
    main()

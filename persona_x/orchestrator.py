"""
Persona-x — Decision Engine entrypoint.

Runs an opportunity through the four gated stages:
1. Configures structured logging
2. Builds the LLM client, persona cache and stage runner from settings
3. Runs propose → challenge → prototype → execute until the pipeline
   passes, is deferred, or is killed
4. Writes a session record per stage when ``SESSION_DIR`` is set
5. Prints the audit trail and optionally saves the final state as JSON

Usage:
    persona-x "A marketplace for refurbished lab equipment"
    persona-x --file opportunity.txt --state-out run.json
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

import structlog

from persona_x.config import settings
from persona_x.decision.pipeline import STAGE_PANELS, format_audit_trail
from persona_x.decision.runner import StageRunner, StageRunResult
from persona_x.llm.client import LLMClient
from persona_x.runtime.loader import PersonaCache
from persona_x.runtime.session import create_session_record, save_session_to_file

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure structured logging."""
    logging.basicConfig(level=logging.getLevelName(settings.log_level), format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if settings.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _export_provider_keys() -> None:
    # litellm reads provider keys from the process environment
    if settings.anthropic_api_key:
        os.environ.setdefault("ANTHROPIC_API_KEY", settings.anthropic_api_key)
    if settings.openai_api_key:
        os.environ.setdefault("OPENAI_API_KEY", settings.openai_api_key)


def session_recorder(session_dir: Path):
    """Build an ``on_stage_complete`` callback that writes one YAML record per stage."""
    log = structlog.get_logger()

    def _record(result: StageRunResult) -> None:
        if result.session is None:
            return
        stage = result.state.current_stage
        record = create_session_record(
            result.session,
            stage=stage.value,
            outcome=result.state.audit_trail[-1].action if result.state.audit_trail else None,
            panel_name=STAGE_PANELS[stage].name,
        )
        path = save_session_to_file(record, session_dir / f"{record.id}.yaml")
        log.info("persona_x.orchestrator.session_saved", stage=stage.value, path=str(path))

    return _record


def _read_opportunity(args: argparse.Namespace) -> str:
    if args.file:
        return Path(args.file).read_text(encoding="utf-8").strip()
    return " ".join(args.opportunity).strip()


async def main(argv: list[str] | None = None) -> None:
    """Run one opportunity through the decision engine."""
    parser = argparse.ArgumentParser(description="Persona-x Decision Engine")
    parser.add_argument("opportunity", nargs="*", help="Opportunity description")
    parser.add_argument("--file", "-f", help="Read the opportunity description from a file")
    parser.add_argument("--persona-dir", default=None, help="Directory of stage persona YAML files")
    parser.add_argument("--state-out", default=None, help="Write the final pipeline state as JSON")
    args = parser.parse_args(argv)

    configure_logging()
    log = structlog.get_logger()

    opportunity = _read_opportunity(args)
    if not opportunity:
        parser.error("an opportunity description is required")

    _export_provider_keys()
    log.info(
        "persona_x.orchestrator.starting",
        panel_model=settings.panel_model,
        synthesis_model=settings.synthesis_model,
    )

    runner = StageRunner(
        llm=LLMClient(model=settings.panel_model),
        persona_dir=args.persona_dir or settings.persona_dir,
        persona_cache=PersonaCache(),
        synthesis_model=settings.synthesis_model,
        on_stage_complete=session_recorder(settings.session_dir) if settings.session_dir else None,
    )

    try:
        state = await runner.run_decision_engine(opportunity)
    except Exception as e:
        log.exception("persona_x.orchestrator.fatal_error", error=str(e))
        sys.exit(1)

    log.info(
        "persona_x.orchestrator.finished",
        status=state.status.value,
        stage=state.current_stage.value,
        audit_entries=len(state.audit_trail),
    )

    print(format_audit_trail(state))

    if args.state_out:
        Path(args.state_out).write_text(state.model_dump_json(indent=2), encoding="utf-8")
        log.info("persona_x.orchestrator.state_saved", path=args.state_out)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

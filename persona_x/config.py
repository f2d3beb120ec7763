"""Persona-x — Application configuration via environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_PERSONA_DIR = Path(__file__).resolve().parent / "personas" / "engine"


class PersonaXSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── LLM Providers ──────────────────────────────────────────
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    panel_model: str = "anthropic/claude-sonnet-4-20250514"
    synthesis_model: str = "anthropic/claude-sonnet-4-20250514"
    population_model: str = "anthropic/claude-sonnet-4-20250514"

    # ── Retry policy ───────────────────────────────────────────
    llm_max_retries: int = 3
    llm_retry_base_delay: float = 1.0

    # ── Persona files & session records ────────────────────────
    persona_dir: Path = DEFAULT_PERSONA_DIR
    session_dir: Path | None = None

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = PersonaXSettings()

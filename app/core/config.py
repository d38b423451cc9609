"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration for goalsmith. Reads from .env automatically."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # LLM API keys (only required for the providers you actually use)
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Ollama base URL, set this when using local Ollama models
    ollama_base_url: str = "http://localhost:11434"

    # Model identifiers; the prefix determines the provider:
    #   "ollama:<model>"      → local Ollama  (e.g. "ollama:llama3.1:70b")
    #   "claude-*" / "claude" → Anthropic API
    #   anything else         → OpenAI API    (e.g. "gpt-4o", "gpt-4o-mini")
    planner_model: str = "gpt-4o-mini"
    clarifier_model: str = "gpt-4o-mini"

    # ── Planning bounds ───────────────────────────────────────────────
    max_plan_depth: int = 4
    max_plan_nodes: int = 40
    planner_max_tokens: int = 900
    planner_temperature: float = 0.3
    clarifier_max_tokens: int = 300
    clarifier_temperature: float = 0.2

    # Skip the optional LLM clarifying-question round trip.
    # Env var: DETERMINISTIC_PLANNING=true
    deterministic_planning: bool = False

    # ── Project context ───────────────────────────────────────────────
    snapshot_max_files: int = 200
    snapshot_section_chars: int = 1800

    # ── Test runs ─────────────────────────────────────────────────────
    # Only the last N "stream: message" lines are stored on a test-run task.
    test_log_excerpt_lines: int = 200

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/goalsmith.log"

    @field_validator("max_plan_depth", "max_plan_nodes", "snapshot_max_files")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value


_settings: Settings | None = None


def get_settings() -> Settings:
    """Singleton accessor."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

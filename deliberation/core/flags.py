"""
Central feature flags. One file controls every optional behaviour.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the scheduler skips that step. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Realtime ─────────────────────────────────────────────────────
    use_redis: bool = Field(default=True, alias="FF_USE_REDIS")
    # ON  → Redis pub/sub for session/turn progress events. Needs REDIS_URL.
    # OFF → Notifications silently skipped. Nothing breaks.

    # ── LLM Provider ─────────────────────────────────────────────────
    llm_provider: str = Field(default="gemini", alias="FF_LLM_PROVIDER")
    # "gemini" → Google Gemini (default). Needs GEMINI_API_KEY.
    # "aiml"   → AIML API proxy. Needs AIML_API_KEY.
    # "openai" → Direct OpenAI. Needs OPENAI_API_KEY.

    # ── Persona evolution ────────────────────────────────────────────
    enable_persona_updates: bool = Field(default=True, alias="FF_ENABLE_PERSONA_UPDATES")
    # ON  → Finalizer revises each participant's persona from its feedback backlog.
    # OFF → Feedback stays unapplied until the flag is turned back on.

    enable_session_strategies: bool = Field(default=True, alias="FF_ENABLE_SESSION_STRATEGIES")
    # ON  → Session Scheduler synthesizes a strategy for returning participants.
    # OFF → New sessions start without strategies.

    # ── Triggers ─────────────────────────────────────────────────────
    enable_cron_endpoints: bool = Field(default=True, alias="FF_ENABLE_CRON_ENDPOINTS")
    # ON  → POST /internal/cron/* run a scheduler pass. Needs CRON_SECRET.
    # OFF → Only the CLI entry (python main.py sessions|turns) triggers passes.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()

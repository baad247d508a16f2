from __future__ import annotations

from typing import Self

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from journal_buddy.constants import DB_SCHEMA, DEFAULT_USER_ID

# Load .env once at module import so every BaseSettings subclass sees the env vars
load_dotenv()


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection settings. Env vars prefixed with DATABASE_."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    name: str = "journal_buddy"
    schema_: str = Field(DB_SCHEMA, validation_alias="DATABASE_SCHEMA")

    @field_validator("schema_")
    @classmethod
    def _validate_schema(cls, v: str) -> str:
        if v != DB_SCHEMA:
            msg = f"DATABASE_SCHEMA must be '{DB_SCHEMA}' (got '{v}')"
            raise ValueError(msg)
        return v


class OpenAISettings(BaseSettings):
    """Completion endpoint settings (any OpenAI-compatible API). Env vars prefixed with OPENAI_."""

    model_config = SettingsConfigDict(env_prefix="OPENAI_")

    api_key: str  # required, fail fast if missing
    model: str = "gpt-4o-mini"
    base_url: str | None = None


class CompletionSettings(BaseSettings):
    """Bounds applied to every completion call. Env vars prefixed with COMPLETION_."""

    model_config = SettingsConfigDict(env_prefix="COMPLETION_")

    timeout_s: float = 60.0
    max_retries: int = 3
    chat_max_tokens: int = 1024
    reflection_max_tokens: int = 300
    summary_max_tokens: int = 800
    patterns_max_tokens: int = 1000
    theme_max_tokens: int = 100
    temperature: float = 0.7

    @field_validator("timeout_s")
    @classmethod
    def _validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"COMPLETION_TIMEOUT_S must be > 0, got {v}")
        return v

    @field_validator("temperature")
    @classmethod
    def _validate_temperature(cls, v: float) -> float:
        if not (0.0 <= v <= 1.0):
            raise ValueError(f"temperature must be in [0.0, 1.0], got {v}")
        return v


class ContextSettings(BaseSettings):
    """Context assembly and prompt budget. Env vars prefixed with CONTEXT_."""

    model_config = SettingsConfigDict(env_prefix="CONTEXT_")

    recent_window_days: int = 7
    recent_entry_limit: int = 10
    recurring_min_count: int = 2
    recurring_top_k: int = 5

    # Token budget
    context_limit: int = 128_000
    reserved_output_tokens: int = 1024
    safety_margin_tokens: int = 1024

    # Schedule last month's summary when the long-term tier is empty
    backfill_monthly_summary: bool = True

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if self.recent_window_days <= 0:
            raise ValueError(
                f"recent_window_days must be > 0, got {self.recent_window_days}"
            )
        if self.recent_entry_limit <= 0:
            raise ValueError(
                f"recent_entry_limit must be > 0, got {self.recent_entry_limit}"
            )
        usable = self.context_limit - self.reserved_output_tokens - self.safety_margin_tokens
        if usable <= 0:
            raise ValueError(
                f"usable_input_budget must be > 0, got {usable} "
                f"(context_limit={self.context_limit}, "
                f"reserved_output_tokens={self.reserved_output_tokens}, "
                f"safety_margin_tokens={self.safety_margin_tokens})"
            )
        return self


class InsightsSettings(BaseSettings):
    """Insight and pattern settings. Env vars prefixed with INSIGHTS_."""

    model_config = SettingsConfigDict(env_prefix="INSIGHTS_")

    top_k: int = 5
    trend_threshold: float = 0.1
    pattern_window_days: int = 30
    pattern_min_entries: int = 3
    reflection_context_entries: int = 5


class GatewaySettings(BaseSettings):
    """HTTP gateway settings. Env vars prefixed with GATEWAY_."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    host: str = "0.0.0.0"
    port: int = 8000
    default_user_id: str = DEFAULT_USER_ID
    cors_origins: str = "*"  # comma-separated, or "*"

    @property
    def cors_origins_list(self) -> list[str]:
        if self.cors_origins.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    completion: CompletionSettings = Field(default_factory=CompletionSettings)
    context: ContextSettings = Field(default_factory=ContextSettings)
    insights: InsightsSettings = Field(default_factory=InsightsSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    log_json: bool = False
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on missing required fields."""
    return Settings()

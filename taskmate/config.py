"""Application configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Gateway/relay credential; preferred over the default provider when set.
    aihubmix_api_key: str | None = Field(default=None, alias="AIHUBMIX_API_KEY")
    aihubmix_base_url: str = Field(default="https://aihubmix.com/v1", alias="AIHUBMIX_BASE_URL")
    aihubmix_model_name: str = Field(default="deepseek-v3.2", alias="AIHUBMIX_MODEL_NAME")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    openai_model: str = Field(default="gpt-4o", alias="OPENAI_MODEL")
    llm_temperature: float = Field(default=0.0, alias="LLM_TEMPERATURE")
    database_path: Path = Field(default=Path("taskmate.db"), alias="DATABASE_PATH")
    # JavaScript getTimezoneOffset convention: UTC+8 is -480.
    timezone_offset_minutes: int = Field(default=0, alias="TIMEZONE_OFFSET_MINUTES")
    cli_user_id: int = Field(default=1, alias="CLI_USER_ID")
    request_timeout_seconds: float = Field(default=30.0, alias="REQUEST_TIMEOUT_SECONDS")
    supervisor_max_turns: int = Field(default=6, alias="SUPERVISOR_MAX_TURNS")
    agent_max_iterations: int = Field(default=8, alias="AGENT_MAX_ITERATIONS")
    memory_window_turns: int = Field(default=10, alias="MEMORY_WINDOW_TURNS")
    reminder_poll_interval_seconds: float = Field(default=30.0, alias="REMINDER_POLL_INTERVAL_SECONDS")


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()

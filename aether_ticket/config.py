import logging
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MAX_TRANSCRIPT_MESSAGES = 100


class EnvConfig(BaseSettings):
    """Environment configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )


class Settings(EnvConfig):
    """Manages application settings using Pydantic."""

    log_level: int = logging.INFO
    token: str = Field(default="", validation_alias=AliasChoices("token", "discord_token"))
    debug_guild_id: int | None = None

    # Storage locations
    database_path: Path = Path("data") / "tickets.db"
    branding_path: Path = Path("config.json")

    # Ticket lifecycle tuning
    ticket_close_delay_seconds: float = 5.0
    transcript_message_limit: int = MAX_TRANSCRIPT_MESSAGES

    @field_validator("ticket_close_delay_seconds")
    @classmethod
    def _check_close_delay(cls, value: float) -> float:
        if value < 0:
            msg = "ticket_close_delay_seconds must be at least 0"
            raise ValueError(msg)
        return value

    @field_validator("transcript_message_limit")
    @classmethod
    def _check_transcript_limit(cls, value: int) -> int:
        if not 1 <= value <= MAX_TRANSCRIPT_MESSAGES:
            msg = f"transcript_message_limit must be between 1 and {MAX_TRANSCRIPT_MESSAGES}"
            raise ValueError(msg)
        return value


settings = Settings()

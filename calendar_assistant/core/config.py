"""
Configuration management for the calendar assistant.

This module handles loading and validating configuration from YAML files
and environment variables using Pydantic for type safety.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
DATA_DIR = PROJECT_ROOT / "data"


class GeneralConfig(BaseModel):
    """General configuration."""
    name: str = "Calendar Assistant"
    debug: bool = False
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    timezone: str = "UTC"
    language: str = "English"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA zone names early."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v


class LLMConfig(BaseModel):
    """LLM configuration."""
    provider: str = Field(default="gemini", pattern="^(gemini|groq)$")
    model: str = "gemini-2.5-flash"
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, ge=1)
    timeout: int = Field(default=30, ge=1)
    max_context_turns: int = Field(default=30, ge=2)


class CalendarConfig(BaseModel):
    """Scheduling service configuration."""
    default_calendar_id: str = "primary"
    default_task_list: str = "@default"
    default_event_duration_minutes: int = Field(default=60, ge=1)
    conference_trigger_words: List[str] = Field(
        default_factory=lambda: ["call", "sync", "meet", "online"]
    )
    list_max_results: int = Field(default=10, ge=1, le=250)
    upcoming_max_results: int = Field(default=10, ge=1, le=250)
    contacts_page_size: int = Field(default=10, ge=1, le=30)


class ConversationConfig(BaseModel):
    """Conversation flow configuration."""
    confirm_words: List[str] = Field(
        default_factory=lambda: ["yes", "y", "confirm", "ok", "sure", "do it"]
    )
    cancel_words: List[str] = Field(
        default_factory=lambda: ["no", "n", "cancel", "stop", "never mind"]
    )


class AssistantConfig(BaseModel):
    """Main assistant configuration."""
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)

    @property
    def tz(self) -> ZoneInfo:
        """Configured local timezone."""
        return ZoneInfo(self.general.timezone)


class EnvSettings(BaseSettings):
    """Environment variables settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # LLM API keys
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    groq_api_key: Optional[str] = Field(default=None, alias="GROQ_API_KEY")

    # Google OAuth client
    google_client_id: Optional[str] = Field(default=None, alias="GOOGLE_CLIENT_ID")
    google_client_secret: Optional[str] = Field(default=None, alias="GOOGLE_CLIENT_SECRET")
    google_token_path: str = Field(default="data/google_token.json", alias="GOOGLE_TOKEN_PATH")

    @field_validator("gemini_api_key", "groq_api_key", "google_client_id", mode="before")
    @classmethod
    def drop_placeholders(cls, v):
        """Treat template placeholders like 'your_key_here' as unset."""
        if isinstance(v, str) and (not v.strip() or v.startswith("your_")):
            return None
        return v


def load_yaml_config(config_path: Path | str | None = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        config_path = CONFIG_DIR / "settings.yaml"

    config_path = Path(config_path)

    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_config(config_path: Path | str | None = None) -> AssistantConfig:
    """
    Load and return the assistant configuration.

    Missing sections fall back to their defaults.
    """
    yaml_config = load_yaml_config(config_path)
    return AssistantConfig(**yaml_config)


def get_env_settings() -> EnvSettings:
    """Get environment settings."""
    return EnvSettings()


# Global configuration instances (lazy loaded)
_config: Optional[AssistantConfig] = None
_env_settings: Optional[EnvSettings] = None


def config() -> AssistantConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = get_config()
    return _config


def set_config(value: AssistantConfig) -> None:
    """Replace the global configuration (used by the CLI --config flag)."""
    global _config
    _config = value


def env() -> EnvSettings:
    """Get the global environment settings instance."""
    global _env_settings
    if _env_settings is None:
        _env_settings = get_env_settings()
    return _env_settings


def ensure_directories() -> None:
    """Ensure required directories exist."""
    for directory in (DATA_DIR, DATA_DIR / "logs"):
        directory.mkdir(parents=True, exist_ok=True)

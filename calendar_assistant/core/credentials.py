"""
Local credential storage.

The only persisted client state: the LLM API key, the Google OAuth client
identifier and whether onboarding has been completed. Stored as YAML in
the data directory; environment variables take precedence when set.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from loguru import logger
from pydantic import BaseModel

from .config import DATA_DIR, EnvSettings


class LocalSettings(BaseModel):
    """Values persisted between runs."""
    llm_api_key: Optional[str] = None
    oauth_client_id: Optional[str] = None
    onboarding_complete: bool = False


class CredentialStore:
    """Reads and writes LocalSettings to a YAML file."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path else DATA_DIR / "local_settings.yaml"

    def load(self) -> LocalSettings:
        """Load stored settings, returning defaults if the file is absent."""
        if not self.path.exists():
            return LocalSettings()
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return LocalSettings(**data)

    def save(self, settings: LocalSettings) -> None:
        """Persist settings."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(settings.model_dump(), f, sort_keys=False)
        logger.debug(f"Saved local settings to {self.path}")

    def update(self, **values) -> LocalSettings:
        """Update selected fields and mark onboarding complete once both keys exist."""
        settings = self.load().model_copy(update=values)
        if settings.llm_api_key and settings.oauth_client_id:
            settings.onboarding_complete = True
        self.save(settings)
        return settings

    def clear(self) -> None:
        """Forget all stored values."""
        if self.path.exists():
            self.path.unlink()

    def resolve_llm_key(self, env_settings: EnvSettings, provider: str) -> Optional[str]:
        """API key for the configured provider: environment first, then the store."""
        env_key = env_settings.groq_api_key if provider == "groq" else env_settings.gemini_api_key
        return env_key or self.load().llm_api_key

    def resolve_client_id(self, env_settings: EnvSettings) -> Optional[str]:
        """OAuth client identifier: environment first, then the store."""
        return env_settings.google_client_id or self.load().oauth_client_id

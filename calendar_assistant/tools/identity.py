"""
Google identity.

Installed-app OAuth flow built from the stored client identifier, with the
token cached as JSON. Sign-out revokes the token and removes the cache.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import httpx
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from loguru import logger

from ..core.errors import ConfigurationError

# OAuth scopes for Calendar, Tasks, Contacts and Docs
SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/tasks",
    "https://www.googleapis.com/auth/contacts.readonly",
    "https://www.googleapis.com/auth/documents",
]

REVOKE_URL = "https://oauth2.googleapis.com/revoke"


class GoogleIdentity:
    """Obtains, caches and revokes Google OAuth credentials."""

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str] = None,
        token_file: str | Path = "data/google_token.json",
        scopes: Optional[list] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_file = Path(token_file)
        self.scopes = scopes or SCOPES
        self._credentials: Optional[Credentials] = None

    @property
    def credentials(self) -> Optional[Credentials]:
        return self._credentials

    def _client_config(self) -> dict:
        if not self.client_id:
            raise ConfigurationError("No Google OAuth client id. Set it with --set-client-id.")
        installed = {
            "client_id": self.client_id,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": ["http://localhost"],
        }
        if self.client_secret:
            installed["client_secret"] = self.client_secret
        return {"installed": installed}

    def _load_cached(self) -> Optional[Credentials]:
        if not self.token_file.exists():
            return None
        try:
            return Credentials.from_authorized_user_file(str(self.token_file), self.scopes)
        except ValueError as e:
            logger.warning(f"Ignoring unreadable token cache: {e}")
            return None

    def _save(self, creds: Credentials) -> None:
        self.token_file.parent.mkdir(parents=True, exist_ok=True)
        self.token_file.write_text(creds.to_json(), encoding="utf-8")

    def get_credentials(self, interactive: bool = True) -> Optional[Credentials]:
        """
        Get or refresh OAuth credentials (blocking).

        Args:
            interactive: Open the browser consent flow when no usable token exists

        Returns:
            Valid credentials, or None when not interactive and no token is cached
        """
        creds = self._load_cached()

        if creds and not creds.valid and creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
                self._save(creds)
            except RefreshError as e:
                logger.warning(f"Failed to refresh token: {e}")
                creds = None

        if not creds or not creds.valid:
            if not interactive:
                return None
            flow = InstalledAppFlow.from_client_config(self._client_config(), self.scopes)
            creds = flow.run_local_server(port=0)
            self._save(creds)
            logger.info("Signed in to Google")

        self._credentials = creds
        return creds

    async def sign_in(self, interactive: bool = True) -> Optional[Credentials]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self.get_credentials(interactive))

    async def sign_out(self) -> None:
        """Revoke the token and forget it. Revocation failures are logged only."""
        creds = self._credentials or self._load_cached()
        token = creds.token if creds else None
        if token:
            try:
                async with httpx.AsyncClient(timeout=10) as client:
                    response = await client.post(
                        REVOKE_URL,
                        params={"token": token},
                        headers={"content-type": "application/x-www-form-urlencoded"},
                    )
                if response.status_code != 200:
                    logger.warning(f"Token revocation returned HTTP {response.status_code}")
            except httpx.HTTPError as e:
                logger.warning(f"Token revocation failed: {e}")

        if self.token_file.exists():
            self.token_file.unlink()
        self._credentials = None
        logger.info("Signed out of Google")

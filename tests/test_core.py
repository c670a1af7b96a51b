"""
Tests for configuration, credentials, errors, the event bus and identity.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


class TestConfig:
    """Tests for configuration loading."""

    def test_defaults(self):
        from calendar_assistant.core.config import AssistantConfig

        cfg = AssistantConfig()

        assert cfg.general.timezone == "UTC"
        assert cfg.llm.provider == "gemini"
        assert cfg.llm.max_context_turns == 30
        assert cfg.calendar.default_event_duration_minutes == 60
        assert cfg.calendar.conference_trigger_words == ["call", "sync", "meet", "online"]
        assert cfg.tz.key == "UTC"
        assert "data_dir" not in cfg.general.model_dump()

    def test_yaml_overrides(self, tmp_path):
        from calendar_assistant.core.config import get_config

        path = tmp_path / "settings.yaml"
        path.write_text(
            "general:\n  timezone: Europe/Berlin\nllm:\n  provider: groq\n  model: llama-3.3-70b-versatile\n",
            encoding="utf-8",
        )
        cfg = get_config(path)

        assert cfg.general.timezone == "Europe/Berlin"
        assert cfg.llm.provider == "groq"
        assert cfg.calendar.default_calendar_id == "primary"

    def test_missing_file_gives_defaults(self, tmp_path):
        from calendar_assistant.core.config import get_config

        cfg = get_config(tmp_path / "absent.yaml")
        assert cfg.general.name == "Calendar Assistant"

    def test_unknown_timezone_is_rejected(self):
        from pydantic import ValidationError

        from calendar_assistant.core.config import GeneralConfig

        with pytest.raises(ValidationError):
            GeneralConfig(timezone="Mars/Olympus_Mons")

    def test_unknown_provider_is_rejected(self):
        from pydantic import ValidationError

        from calendar_assistant.core.config import LLMConfig

        with pytest.raises(ValidationError):
            LLMConfig(provider="openai")

    def test_env_placeholders_are_unset(self, monkeypatch):
        from calendar_assistant.core.config import EnvSettings

        monkeypatch.setenv("GEMINI_API_KEY", "your_gemini_api_key_here")
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "1234.apps.googleusercontent.com")

        settings = EnvSettings(_env_file=None)

        assert settings.gemini_api_key is None
        assert settings.google_client_id == "1234.apps.googleusercontent.com"


class TestCredentialStore:
    """Tests for the local credential store."""

    def test_round_trip_and_onboarding(self, tmp_path):
        from calendar_assistant.core.credentials import CredentialStore

        store = CredentialStore(tmp_path / "local_settings.yaml")
        assert not store.load().onboarding_complete

        store.update(llm_api_key="key")
        assert not store.load().onboarding_complete

        store.update(oauth_client_id="client")
        settings = store.load()
        assert settings.llm_api_key == "key"
        assert settings.onboarding_complete

        store.clear()
        assert store.load().llm_api_key is None

    def test_environment_takes_precedence(self, tmp_path, monkeypatch):
        from calendar_assistant.core.config import EnvSettings
        from calendar_assistant.core.credentials import CredentialStore

        for name in ("GEMINI_API_KEY", "GROQ_API_KEY", "GOOGLE_CLIENT_ID"):
            monkeypatch.delenv(name, raising=False)

        store = CredentialStore(tmp_path / "local_settings.yaml")
        store.update(llm_api_key="stored", oauth_client_id="stored-client")

        assert store.resolve_llm_key(EnvSettings(_env_file=None, GROQ_API_KEY="from-env"), "groq") == "from-env"
        assert store.resolve_llm_key(EnvSettings(_env_file=None), "gemini") == "stored"
        assert store.resolve_client_id(EnvSettings(_env_file=None)) == "stored-client"


class TestErrors:
    """Tests for error messages."""

    def test_categories_prefix_messages(self):
        from calendar_assistant.core.errors import ProviderError, SchedulingServiceError, UnresolvedAttendee

        assert ProviderError("quota").user_message() == "[Assistant unavailable] quota"
        assert SchedulingServiceError("boom").user_message() == "[Calendar error] boom"
        assert UnresolvedAttendee(["Anna", "Bob"]).user_message() == (
            "[Unknown attendee] I need an email address for: Anna, Bob"
        )

    def test_event_not_found_is_a_service_error(self):
        from calendar_assistant.core.errors import EventNotFound, SchedulingServiceError

        error = EventNotFound("gone", status=410)
        assert isinstance(error, SchedulingServiceError)
        assert error.status == 410

    def test_describe_http_error(self):
        from calendar_assistant.core.errors import describe_http_error

        assert describe_http_error(429) == "rate limit exceeded, please wait a moment and try again"
        assert describe_http_error(502) == "the service is having problems"
        assert describe_http_error(418, "teapot") == "the request failed (teapot)"

    def test_handle_api_error(self):
        from calendar_assistant.core.errors import handle_api_error

        assert "quota exceeded" in handle_api_error("Gemini", Exception("429 RESOURCE_EXHAUSTED"))
        assert "API key" in handle_api_error("Groq", Exception("401 Unauthorized"))
        assert handle_api_error("Groq", Exception("odd"), "fallback") == "fallback"

    def test_user_message_hides_stack_traces(self):
        from calendar_assistant.core.errors import user_message

        assert user_message(KeyError("x")) == "[Error] Something went wrong, please try again."


class TestEventBus:
    """Tests for the EventBus."""

    @pytest.mark.asyncio
    async def test_publish_subscribe(self):
        from calendar_assistant.core.events import EventBus, EventType

        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event)

        bus.subscribe(EventType.STATE_CHANGED, handler)
        await bus.publish(EventType.STATE_CHANGED, state="collecting")
        await bus.publish(EventType.BUSY_CHANGED, busy=True)

        assert len(received) == 1
        assert received[0].data == {"state": "collecting"}

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_reach_publisher(self):
        from calendar_assistant.core.events import EventBus, EventType

        bus = EventBus()
        received = []

        async def broken(event):
            raise RuntimeError("view crashed")

        async def healthy(event):
            received.append(event)

        bus.subscribe(EventType.TURN_APPENDED, broken)
        bus.subscribe(EventType.TURN_APPENDED, healthy)

        await bus.publish(EventType.TURN_APPENDED, turn=None)
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_history_is_bounded(self):
        from calendar_assistant.core.events import EventBus, EventType

        bus = EventBus(max_history=2)

        await bus.publish(EventType.BUSY_CHANGED, busy=True)
        for _ in range(2):
            await bus.publish(EventType.SESSION_RESET)

        assert len(bus.get_history()) == 2
        assert bus.get_history(EventType.BUSY_CHANGED) == []


class TestLogging:
    """Tests for log setup and credential masking."""

    def test_redact_masks_credentials(self):
        from calendar_assistant.core.logger import redact

        text = "token ya29.a0AfH6SMBx-secret key AIzaSyA1234567890abcdefghijklmnopqrstu"

        masked = redact(text)

        assert "secret" not in masked
        assert "1234567890" not in masked
        assert "ya29***" in masked
        assert redact("nothing to hide") == "nothing to hide"

    def test_log_files_are_redacted(self, tmp_path):
        from loguru import logger

        from calendar_assistant.core.logger import setup_logging

        try:
            setup_logging(console=False, log_dir=tmp_path)
            logger.warning("refresh failed for gsk_abcdefghijklmnopqrstuvwxyz")
        finally:
            logger.remove()
            logger.configure(patcher=None)

        errors = next(tmp_path.glob("assistant_errors_*.log")).read_text(encoding="utf-8")
        assert "refresh failed for gsk_***" in errors
        assert "abcdefghij" not in errors


class TestGoogleIdentity:
    """Tests for GoogleIdentity that do not touch the network."""

    def test_client_id_required(self, tmp_path):
        from calendar_assistant.core.errors import ConfigurationError
        from calendar_assistant.tools.identity import GoogleIdentity

        identity = GoogleIdentity(client_id=None, token_file=tmp_path / "token.json")

        with pytest.raises(ConfigurationError):
            identity.get_credentials(interactive=True)

    def test_non_interactive_without_token(self, tmp_path):
        from calendar_assistant.tools.identity import GoogleIdentity

        identity = GoogleIdentity(client_id="client", token_file=tmp_path / "token.json")
        assert identity.get_credentials(interactive=False) is None

    def test_unreadable_cache_is_ignored(self, tmp_path):
        from calendar_assistant.tools.identity import GoogleIdentity

        token_file = tmp_path / "token.json"
        token_file.write_text("not json", encoding="utf-8")
        identity = GoogleIdentity(client_id="client", token_file=token_file)

        assert identity.get_credentials(interactive=False) is None

    @pytest.mark.asyncio
    async def test_sign_out_without_token_removes_cache(self, tmp_path):
        from calendar_assistant.tools.identity import GoogleIdentity

        token_file = tmp_path / "token.json"
        token_file.write_text("not json", encoding="utf-8")
        identity = GoogleIdentity(client_id="client", token_file=token_file)

        await identity.sign_out()

        assert not token_file.exists()
        assert identity.credentials is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

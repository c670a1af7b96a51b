"""
Shared fixtures for the calendar assistant tests.
"""

import sys
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

# Add project root and this directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from calendar_assistant.assistant import CalendarAssistant
from calendar_assistant.core.config import AssistantConfig, GeneralConfig
from calendar_assistant.core.events import EventBus
from calendar_assistant.tools.scheduling import SchedulingClient
from fakes import ScriptedLLM, google_services

BERLIN = ZoneInfo("Europe/Berlin")


@pytest.fixture
def tz():
    return BERLIN


@pytest.fixture
def assistant_config():
    return AssistantConfig(general=GeneralConfig(timezone="Europe/Berlin"))


@pytest.fixture
def services():
    return google_services()


@pytest.fixture
def client(services):
    return SchedulingClient(**services)


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def assistant(llm, client, assistant_config, event_bus):
    return CalendarAssistant(llm, client, assistant_config, event_bus=event_bus)

"""Core modules for the calendar assistant."""

from .config import AssistantConfig, DATA_DIR, PROJECT_ROOT, config, ensure_directories, env
from .errors import (
    AssistantError,
    ConfigurationError,
    EventNotFound,
    MalformedResponse,
    NotSignedInError,
    ProviderError,
    SchedulingServiceError,
    UnresolvedAttendee,
)
from .events import Event, EventBus, EventType
from .logger import setup_logging

__all__ = [
    "AssistantConfig",
    "AssistantError",
    "ConfigurationError",
    "DATA_DIR",
    "Event",
    "EventBus",
    "EventNotFound",
    "EventType",
    "MalformedResponse",
    "NotSignedInError",
    "PROJECT_ROOT",
    "ProviderError",
    "SchedulingServiceError",
    "UnresolvedAttendee",
    "config",
    "ensure_directories",
    "env",
    "setup_logging",
]

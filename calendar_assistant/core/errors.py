"""
Centralized Error Handling for the calendar assistant.

Provides:
- The exception taxonomy shared by the conversation core
- User-friendly messages with a stable category prefix
- HTTP error descriptions for Google API failures
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from loguru import logger


class AssistantError(Exception):
    """Base class for every failure surfaced to the user."""

    category = "Error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.category

    def user_message(self) -> str:
        """Message shown in the transcript, prefixed with the category."""
        return f"[{self.category}] {self.message}"


class ConfigurationError(AssistantError):
    """Raised when a required configuration is missing."""

    category = "Configuration"


class ProviderError(AssistantError):
    """The LLM call failed (auth, quota, network)."""

    category = "Assistant unavailable"


class MalformedResponse(AssistantError):
    """The model output could not be parsed as a valid intent."""

    category = "Unexpected reply"

    def __init__(self, message: str = "", raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw

    def user_message(self) -> str:
        return f"[{self.category}] Sorry, I could not make sense of that reply. Please try rephrasing your request."


class SchedulingServiceError(AssistantError):
    """A calendar, tasks, contacts or docs call failed."""

    category = "Calendar error"

    def __init__(self, message: str = "", status: Optional[int] = None, operation: str = ""):
        super().__init__(message)
        self.status = status
        self.operation = operation


class EventNotFound(SchedulingServiceError):
    """The referenced event does not exist (404) or was deleted (410)."""


class NotSignedInError(SchedulingServiceError):
    """No Google session is available."""

    category = "Not signed in"


class UnresolvedAttendee(AssistantError):
    """An attendee was given as a bare name instead of an email address."""

    category = "Unknown attendee"

    def __init__(self, names: Sequence[str]):
        self.names: List[str] = list(names)
        super().__init__(
            "I need an email address for: " + ", ".join(self.names)
        )


# Friendly texts for HTTP status codes returned by Google APIs
HTTP_STATUS_MESSAGES: Dict[int, str] = {
    400: "the request was rejected as invalid",
    401: "authentication failed, please sign in again",
    403: "access denied, the account may lack the required permission",
    404: "the requested item was not found",
    409: "the item was changed by someone else, please try again",
    410: "the item no longer exists",
    429: "rate limit exceeded, please wait a moment and try again",
    500: "the service had an internal error",
    503: "the service is temporarily unavailable",
}


def describe_http_error(status: Optional[int], reason: Optional[str] = None) -> str:
    """
    Describe an HTTP failure in plain words.

    Args:
        status: HTTP status code, if known
        reason: Reason string reported by the service

    Returns:
        User-friendly description
    """
    if status in HTTP_STATUS_MESSAGES:
        text = HTTP_STATUS_MESSAGES[status]
    elif status is not None and status >= 500:
        text = "the service is having problems"
    else:
        text = "the request failed"

    if reason:
        return f"{text} ({reason})"
    return text


def handle_api_error(
    service_name: str,
    error: Exception,
    fallback_message: Optional[str] = None,
) -> str:
    """
    Turn an arbitrary exception from a provider SDK into a short message.

    Args:
        service_name: Name of the service
        error: The exception that occurred
        fallback_message: Optional fallback message

    Returns:
        User-friendly error message
    """
    error_str = str(error).lower()

    if "401" in error_str or "unauthorized" in error_str or "api key" in error_str:
        return f"{service_name} authentication failed. Please check your API key."

    if "403" in error_str or "forbidden" in error_str or "permission" in error_str:
        return f"{service_name} access denied. Your key may not have the required permissions."

    if "429" in error_str or "rate limit" in error_str or "quota" in error_str:
        return f"{service_name} quota exceeded. Please wait a moment and try again."

    if "timeout" in error_str or "timed out" in error_str:
        return f"{service_name} request timed out. Please check your connection and try again."

    if "connection" in error_str or "network" in error_str:
        return f"Unable to reach {service_name}. Please check your internet connection."

    logger.error(f"{service_name} error: {error}")

    return fallback_message or f"{service_name} encountered an error: {error}"


def user_message(error: Exception) -> str:
    """Render any exception as a transcript entry, never a stack trace."""
    if isinstance(error, AssistantError):
        return error.user_message()
    logger.exception(f"Unexpected error: {error}")
    return f"[{AssistantError.category}] Something went wrong, please try again."

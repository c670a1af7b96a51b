"""
Scheduling Service client.

Thin async wrapper around the Google Calendar, Tasks, People and Docs APIs.
The discovery clients are blocking, so each request runs in the default
executor. Every failure is raised as SchedulingServiceError (EventNotFound
for 404/410) carrying a user-friendly message.

API Documentation: https://developers.google.com/calendar/api/v3/reference
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httplib2
from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from loguru import logger

from ..core.errors import EventNotFound, NotSignedInError, SchedulingServiceError, describe_http_error


class SchedulingClient:
    """
    Google scheduling services for the assistant.

    Each service argument is a discovery resource (as returned by
    googleapiclient.discovery.build); a missing one means the user is not
    signed in.
    """

    def __init__(
        self,
        calendar: Any = None,
        tasks: Any = None,
        people: Any = None,
        docs: Any = None,
        default_calendar: str = "primary",
        default_task_list: str = "@default",
    ):
        self.calendar = calendar
        self.tasks = tasks
        self.people = people
        self.docs = docs
        self.default_calendar = default_calendar
        self.default_task_list = default_task_list

    @classmethod
    def from_credentials(cls, credentials: Any, **kwargs) -> "SchedulingClient":
        client = cls(**kwargs)
        client.attach(credentials)
        return client

    def attach(self, credentials: Any) -> None:
        """Build every discovery client from OAuth credentials."""
        self.calendar = build("calendar", "v3", credentials=credentials, cache_discovery=False)
        self.tasks = build("tasks", "v1", credentials=credentials, cache_discovery=False)
        self.people = build("people", "v1", credentials=credentials, cache_discovery=False)
        self.docs = build("docs", "v1", credentials=credentials, cache_discovery=False)
        logger.info("Google services connected")

    def detach(self) -> None:
        """Drop the services; later calls raise NotSignedInError."""
        self.calendar = self.tasks = self.people = self.docs = None

    @property
    def is_available(self) -> bool:
        return self.calendar is not None

    async def _execute(self, operation: str, service: Any, request: Callable[[Any], Any]) -> Any:
        """
        Run one API request off the event loop.

        Args:
            operation: Name used in logs and errors
            service: Discovery resource the request is built from
            request: Builds the request object from the resource

        Returns:
            Decoded response body
        """
        if service is None:
            raise NotSignedInError("Please sign in to Google first.", operation=operation)

        loop = asyncio.get_running_loop()
        try:
            logger.debug(f"Scheduling call: {operation}")
            return await loop.run_in_executor(None, lambda: request(service).execute())
        except HttpError as e:
            status = e.resp.status if e.resp is not None else None
            reason = e.reason if hasattr(e, "reason") else None
            logger.error(f"{operation} failed with HTTP {status}: {reason}")
            error_class = EventNotFound if status in (404, 410) else SchedulingServiceError
            raise error_class(
                f"Could not {operation}: {describe_http_error(status, reason)}",
                status=status,
                operation=operation,
            ) from e
        except (OSError, httplib2.HttpLib2Error, GoogleAuthError) as e:
            logger.error(f"{operation} failed: {e}")
            raise SchedulingServiceError(f"Could not {operation}: {e}", operation=operation) from e

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def list_events(
        self,
        calendar_id: Optional[str] = None,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        query: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        List events ordered by start time, recurring events expanded.

        Returns:
            Event resources
        """
        params: Dict[str, Any] = {
            "calendarId": calendar_id or self.default_calendar,
            "singleEvents": True,
            "orderBy": "startTime",
            "showDeleted": False,
        }
        if time_min is not None:
            params["timeMin"] = time_min.isoformat()
        if time_max is not None:
            params["timeMax"] = time_max.isoformat()
        if query:
            params["q"] = query
        if max_results:
            params["maxResults"] = max_results

        result = await self._execute("list events", self.calendar, lambda s: s.events().list(**params))
        return result.get("items", [])

    async def insert_event(
        self,
        body: Dict[str, Any],
        calendar_id: Optional[str] = None,
        with_conference: bool = False,
    ) -> Dict[str, Any]:
        """Create an event; conferenceDataVersion=1 lets Google create a Meet link."""
        params: Dict[str, Any] = {"calendarId": calendar_id or self.default_calendar, "body": body}
        if with_conference:
            params["conferenceDataVersion"] = 1
        return await self._execute("create the event", self.calendar, lambda s: s.events().insert(**params))

    async def get_event(self, event_id: str, calendar_id: Optional[str] = None) -> Dict[str, Any]:
        calendar_id = calendar_id or self.default_calendar
        return await self._execute(
            "load the event",
            self.calendar,
            lambda s: s.events().get(calendarId=calendar_id, eventId=event_id),
        )

    async def patch_event(
        self,
        event_id: str,
        body: Dict[str, Any],
        calendar_id: Optional[str] = None,
        with_conference: bool = False,
        supports_attachments: bool = False,
    ) -> Dict[str, Any]:
        """Partial update: fields absent from `body` are left untouched server-side."""
        params: Dict[str, Any] = {
            "calendarId": calendar_id or self.default_calendar,
            "eventId": event_id,
            "body": body,
        }
        if with_conference:
            params["conferenceDataVersion"] = 1
        if supports_attachments:
            params["supportsAttachments"] = True
        return await self._execute("update the event", self.calendar, lambda s: s.events().patch(**params))

    async def delete_event(self, event_id: str, calendar_id: Optional[str] = None) -> None:
        calendar_id = calendar_id or self.default_calendar
        await self._execute(
            "delete the event",
            self.calendar,
            lambda s: s.events().delete(calendarId=calendar_id, eventId=event_id),
        )

    async def list_calendars(self) -> List[Dict[str, Any]]:
        """Calendars visible to the signed-in user."""
        result = await self._execute("list calendars", self.calendar, lambda s: s.calendarList().list())
        return result.get("items", [])

    # ------------------------------------------------------------------
    # Tasks, contacts, documents
    # ------------------------------------------------------------------

    async def insert_task(self, body: Dict[str, Any], task_list: Optional[str] = None) -> Dict[str, Any]:
        task_list = task_list or self.default_task_list
        return await self._execute(
            "create the task",
            self.tasks,
            lambda s: s.tasks().insert(tasklist=task_list, body=body),
        )

    async def search_contacts(self, query: str, page_size: int = 10) -> List[Dict[str, Any]]:
        """
        Search the user's contacts by name.

        Returns:
            List of {"name": str, "emails": [str]} for people with a name
        """
        result = await self._execute(
            "search contacts",
            self.people,
            lambda s: s.people().searchContacts(
                query=query,
                readMask="names,emailAddresses",
                pageSize=page_size,
            ),
        )

        contacts = []
        for match in result.get("results", []):
            person = match.get("person", {})
            names = person.get("names", [])
            if not names:
                continue
            contacts.append({
                "name": names[0].get("displayName", ""),
                "emails": [e["value"] for e in person.get("emailAddresses", []) if e.get("value")],
            })
        return contacts

    async def create_document(self, title: str) -> Dict[str, Any]:
        """Create an empty Google Doc."""
        return await self._execute(
            "create the document",
            self.docs,
            lambda s: s.documents().create(body={"title": title}),
        )

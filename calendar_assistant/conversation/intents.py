"""
Intent types.

An Intent is the structured decision the interpreter extracts from one
user turn. It is a tagged union keyed by `action`; unknown actions are
rejected rather than falling through.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from ..core.errors import MalformedResponse


class Action(str, Enum):
    """Permitted actions."""
    CREATE_EVENT = "CREATE_EVENT"
    EDIT_EVENT = "EDIT_EVENT"
    LIST_EVENTS = "LIST_EVENTS"
    CREATE_TASK = "CREATE_TASK"
    DELETE_EVENT = "DELETE_EVENT"
    FIND_CONTACTS = "FIND_CONTACTS"
    ATTACH_DOCUMENT = "ATTACH_DOCUMENT"
    GENERAL_QUERY = "GENERAL_QUERY"


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


def _date_only_to_midnight(v: Any) -> Any:
    if isinstance(v, str) and len(v.strip()) == 10:
        return v.strip() + "T00:00:00"
    return v


Text = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
LooseDateTime = Annotated[Optional[dt.datetime], BeforeValidator(_date_only_to_midnight)]


class EventTime(BaseModel):
    """Start or end of an event: a timed instant or an all-day date."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    date_time: Optional[dt.datetime] = Field(default=None, alias="dateTime")
    all_day: Optional[dt.date] = Field(default=None, alias="date")
    time_zone: Optional[str] = Field(default=None, alias="timeZone")

    @model_validator(mode="after")
    def check_one_of(self) -> "EventTime":
        if self.date_time is None and self.all_day is None:
            raise ValueError("either dateTime or date is required")
        return self

    @property
    def is_all_day(self) -> bool:
        return self.date_time is None

    def localized(self, tz: ZoneInfo) -> "EventTime":
        """Attach the local timezone to a naive date-time."""
        if self.date_time is not None and self.date_time.tzinfo is None:
            zone = ZoneInfo(self.time_zone) if self.time_zone else tz
            return self.model_copy(update={"date_time": self.date_time.replace(tzinfo=zone)})
        return self

    def shifted(self, delta: dt.timedelta) -> "EventTime":
        if self.date_time is not None:
            return self.model_copy(update={"date_time": self.date_time + delta})
        return self.model_copy(update={"all_day": self.all_day + dt.timedelta(days=max(delta.days, 1))})

    def as_datetime(self, tz: ZoneInfo) -> dt.datetime:
        """Aware datetime; all-day dates map to local midnight."""
        if self.date_time is not None:
            return self.date_time if self.date_time.tzinfo else self.date_time.replace(tzinfo=tz)
        return dt.datetime.combine(self.all_day, dt.time.min, tzinfo=tz)

    def to_resource(self) -> Dict[str, str]:
        """Google Calendar `start`/`end` object."""
        if self.date_time is not None:
            resource = {"dateTime": self.date_time.isoformat()}
            if self.time_zone:
                resource["timeZone"] = self.time_zone
            elif isinstance(self.date_time.tzinfo, ZoneInfo):
                resource["timeZone"] = self.date_time.tzinfo.key
            return resource
        return {"date": self.all_day.isoformat()}

    @classmethod
    def from_resource(cls, resource: Optional[Dict[str, Any]]) -> Optional["EventTime"]:
        if not resource or not (resource.get("dateTime") or resource.get("date")):
            return None
        date_time = resource.get("dateTime")
        return cls.model_validate(
            {
                "dateTime": date_time.replace("Z", "+00:00") if date_time else None,
                "date": None if date_time else resource.get("date"),
                "timeZone": resource.get("timeZone"),
            }
        )


class EventFields(BaseModel):
    """Partial event payload carried by CREATE_EVENT and EDIT_EVENT."""

    model_config = ConfigDict(extra="ignore")

    summary: Text = None
    description: Text = None
    location: Text = None
    start: Optional[EventTime] = None
    end: Optional[EventTime] = None
    attendees: List[str] = Field(default_factory=list)
    calendar_id: Text = None
    event_id: Text = None

    @field_validator("attendees", mode="before")
    @classmethod
    def normalize_attendees(cls, v: Any) -> List[str]:
        """Accept strings or {"email": ...} objects; drop blanks."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        result = []
        for item in v:
            if isinstance(item, dict):
                item = item.get("email") or item.get("displayName") or ""
            item = str(item).strip()
            if item:
                result.append(item)
        return result

    def supplied(self) -> Dict[str, Any]:
        """Fields actually present in this payload."""
        data = {
            name: getattr(self, name)
            for name in ("summary", "description", "location", "start", "end", "calendar_id")
            if getattr(self, name) is not None
        }
        if self.attendees:
            data["attendees"] = list(self.attendees)
        return data

    def localized(self, tz: ZoneInfo) -> "EventFields":
        return self.model_copy(
            update={
                "start": self.start.localized(tz) if self.start else None,
                "end": self.end.localized(tz) if self.end else None,
            }
        )


class BaseIntent(BaseModel):
    """Fields common to every intent."""

    model_config = ConfigDict(extra="ignore")

    follow_up_question: Text = None
    reply: Text = None

    @property
    def kind(self) -> Action:
        return Action(self.action)

    def localized(self, tz: ZoneInfo) -> "BaseIntent":
        return self


class CreateEventIntent(BaseIntent):
    action: Literal["CREATE_EVENT"] = "CREATE_EVENT"
    event: EventFields = Field(default_factory=EventFields)
    start_new: bool = False

    def localized(self, tz: ZoneInfo) -> "CreateEventIntent":
        return self.model_copy(update={"event": self.event.localized(tz)})


class EditEventIntent(BaseIntent):
    action: Literal["EDIT_EVENT"] = "EDIT_EVENT"
    event: EventFields = Field(default_factory=EventFields)
    start_new: bool = False

    def localized(self, tz: ZoneInfo) -> "EditEventIntent":
        return self.model_copy(update={"event": self.event.localized(tz)})


class ListEventsIntent(BaseIntent):
    action: Literal["LIST_EVENTS"] = "LIST_EVENTS"
    time_min: LooseDateTime = None
    time_max: LooseDateTime = None
    query: Text = None
    calendar_id: Text = None
    max_results: Optional[int] = Field(default=None, ge=1, le=250)

    def localized(self, tz: ZoneInfo) -> "ListEventsIntent":
        return self.model_copy(
            update={
                name: value.replace(tzinfo=tz)
                for name, value in (("time_min", self.time_min), ("time_max", self.time_max))
                if value is not None and value.tzinfo is None
            }
        )


class CreateTaskIntent(BaseIntent):
    action: Literal["CREATE_TASK"] = "CREATE_TASK"
    title: Text = None
    notes: Text = None
    due: LooseDateTime = None
    task_list: Text = None

    def localized(self, tz: ZoneInfo) -> "CreateTaskIntent":
        if self.due is not None and self.due.tzinfo is None:
            return self.model_copy(update={"due": self.due.replace(tzinfo=tz)})
        return self


class DeleteEventIntent(BaseIntent):
    action: Literal["DELETE_EVENT"] = "DELETE_EVENT"
    event_id: Text = None
    calendar_id: Text = None
    summary: Text = None


class FindContactsIntent(BaseIntent):
    action: Literal["FIND_CONTACTS"] = "FIND_CONTACTS"
    query: Text = None


class AttachDocumentIntent(BaseIntent):
    action: Literal["ATTACH_DOCUMENT"] = "ATTACH_DOCUMENT"
    event_id: Text = None
    document_title: Text = None
    calendar_id: Text = None


class GeneralQueryIntent(BaseIntent):
    action: Literal["GENERAL_QUERY"] = "GENERAL_QUERY"


Intent = Annotated[
    Union[
        CreateEventIntent,
        EditEventIntent,
        ListEventsIntent,
        CreateTaskIntent,
        DeleteEventIntent,
        FindContactsIntent,
        AttachDocumentIntent,
        GeneralQueryIntent,
    ],
    Field(discriminator="action"),
]

_INTENT_ADAPTER: TypeAdapter = TypeAdapter(Intent)


def parse_intent(data: Dict[str, Any]) -> BaseIntent:
    """
    Validate a normalized intent payload.

    Raises:
        MalformedResponse: unknown action or invalid fields
    """
    action = str(data.get("action") or "").strip().upper()
    if action not in Action.__members__:
        raise MalformedResponse(f"unknown action {data.get('action')!r}")
    try:
        return _INTENT_ADAPTER.validate_python({**data, "action": action})
    except ValidationError as e:
        raise MalformedResponse(f"invalid {action} payload: {e.error_count()} error(s)") from e

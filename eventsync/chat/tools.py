"""
Calendar tools exposed to the chat assistant.

The assistant's model decides which tool to call; this module only
executes the call and returns a JSON-serializable payload. Events created
here go through the same creation service as every other producer, with
source kind ``chat``.
"""

import json
import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from eventsync.configs.settings import Settings, get_settings
from eventsync.ingestion.creation import EventCreationService
from eventsync.schemas.event import EventType, SourceKind
from eventsync.storage.models import Event
from eventsync.storage.repository import EventStore, day_bounds

logger = logging.getLogger(__name__)

RESULT_LIMIT = 20
DEFAULT_LIST_DAYS = 7

# ============================================================================
# TOOL DEFINITIONS
# ============================================================================

CALENDAR_TOOLS: list[dict] = [
    {
        "name": "create_event",
        "description": "Create a new calendar event for the user",
        "input_schema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Event title"},
                "starts_at": {"type": "string", "description": "Event start date/time in ISO 8601 format"},
                "ends_at": {"type": "string", "description": "Event end date/time in ISO 8601 format (optional)"},
                "location": {"type": "string", "description": "Event location (optional)"},
                "description": {"type": "string", "description": "Event description (optional)"},
                "all_day": {"type": "boolean", "description": "Whether this is an all-day event"},
                "event_type": {
                    "type": "string",
                    "enum": [t.value for t in EventType],
                    "description": "Type of event",
                },
                "calendar_id": {"type": "integer", "description": "Calendar ID to add the event to (optional)"},
            },
            "required": ["title", "starts_at"],
        },
    },
    {
        "name": "list_events",
        "description": "List upcoming events in a date range",
        "input_schema": {
            "type": "object",
            "properties": {
                "start_date": {"type": "string", "description": "Start date in YYYY-MM-DD format"},
                "end_date": {"type": "string", "description": "End date in YYYY-MM-DD format"},
            },
        },
    },
    {
        "name": "search_events",
        "description": "Search for events by keyword",
        "input_schema": {
            "type": "object",
            "properties": {"query": {"type": "string", "description": "Search query"}},
            "required": ["query"],
        },
    },
]


def _error(message: str) -> dict:
    return {"type": "error", "message": message}


class ChatToolbox:
    """Execute assistant tool calls on behalf of one user."""

    def __init__(
        self,
        session: Session,
        owner_id: str,
        settings: Settings | None = None,
        today: Callable[[], date] | None = None,
    ):
        self.session = session
        self.owner_id = owner_id
        self.settings = settings or get_settings()
        self.store = EventStore(session, self.settings.tzinfo)
        self._today = today or (lambda: datetime.now(self.settings.tzinfo).date())
        self._handlers: dict[str, Callable[[dict], dict]] = {
            "create_event": self.create_event,
            "list_events": self.list_events,
            "search_events": self.search_events,
        }

    def execute(self, tool_name: str, tool_input: dict | str | None) -> dict:
        """
        Run a tool call.

        Args:
            tool_name: Name from CALENDAR_TOOLS
            tool_input: Arguments, as a dict or the raw JSON string streamed by the model

        Returns:
            Payload with a ``type`` key; ``{"type": "error", ...}`` on failure
        """
        if isinstance(tool_input, str):
            try:
                tool_input = json.loads(tool_input) if tool_input.strip() else {}
            except json.JSONDecodeError:
                tool_input = {}
        tool_input = tool_input if isinstance(tool_input, dict) else {}

        handler = self._handlers.get(tool_name)
        if handler is None:
            return _error(f"Unknown tool: {tool_name}")
        return handler(tool_input)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def create_event(self, tool_input: dict) -> dict:
        params = {
            "title": tool_input.get("title"),
            "starts_at": tool_input.get("starts_at") or tool_input.get("date"),
            "ends_at": tool_input.get("ends_at"),
            "location": tool_input.get("location"),
            "description": tool_input.get("description"),
            "all_day": bool(tool_input.get("all_day") or False),
            "event_type": tool_input.get("event_type") or EventType.SOCIAL.value,
            "calendar_id": tool_input.get("calendar_id"),
        }
        service = EventCreationService(self.session, settings=self.settings)
        result = service.create(params, SourceKind.CHAT, owner_id=self.owner_id)
        if not result.success:
            return _error(", ".join(result.errors))

        event = result.event
        return {
            "type": "event_created",
            "event": {
                "id": event.id,
                "title": event.title,
                "starts_at": event.starts_at.isoformat() if event.starts_at else None,
                "location": event.location,
            },
        }

    def list_events(self, tool_input: dict) -> dict:
        try:
            start_day = self._parse_day(tool_input.get("start_date")) or self._today()
            end_day = self._parse_day(tool_input.get("end_date")) or start_day + timedelta(days=DEFAULT_LIST_DAYS)
        except ValueError as e:
            return _error(f"Invalid date: {e}")

        start, _ = day_bounds(start_day, self.settings.tzinfo)
        _, end = day_bounds(end_day, self.settings.tzinfo)
        events = self.store.in_range(start, end, limit=RESULT_LIMIT)

        return {
            "type": "events_list",
            "date_range": f"{start_day:%B %d} to {end_day:%B %d, %Y}",
            "count": len(events),
            "message": f"Found {len(events)} event(s)." if events else "No events found in this date range.",
            "events": [self._summary(e) for e in events],
        }

    def search_events(self, tool_input: dict) -> dict:
        query = (tool_input.get("query") or "").strip()
        if not query:
            return _error("Search query can't be blank")

        events = self.store.search(query, limit=RESULT_LIMIT)
        return {
            "type": "search_results",
            "query": query,
            "count": len(events),
            "message": (
                f"Found {len(events)} event(s) matching '{query}'." if events else f"No events found matching '{query}'."
            ),
            "events": [self._summary(e) for e in events],
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_day(value: Any) -> date | None:
        if not value:
            return None
        return date.fromisoformat(str(value)[:10])

    def _summary(self, event: Event) -> dict:
        local = event.starts_at.astimezone(self.settings.tzinfo)
        when = f"{local:%A, %B %d}"
        if not event.all_day:
            when = f"{when} at {local:%I:%M %p}".replace(" at 0", " at ")
        return {
            "id": event.id,
            "title": event.title,
            "starts_at": when,
            "location": event.location,
        }

"""
iCal feed export.

Each calendar exposes a read-only feed at ``/calendars/<ical_token>.ics``
that any calendar client can subscribe to. The token is the only
credential; rotating it invalidates existing subscriptions.
"""

import logging
from datetime import time, timedelta, timezone, tzinfo

from icalendar import Calendar as ICalendar
from icalendar import Event as IEvent
from sqlalchemy.orm import Session

from eventsync.ingestion.errors import CalendarNotFound
from eventsync.storage.models import Calendar, Event
from eventsync.storage.repository import EventStore

logger = logging.getLogger(__name__)

PRODID = "-//eventsync//Calendar//EN"
UID_DOMAIN = "eventsync"


def event_uid(event: Event) -> str:
    return f"event-{event.id}@{UID_DOMAIN}"


def _location_line(event: Event) -> str | None:
    parts = [part for part in (event.venue, event.location) if part]
    return ", ".join(parts) if parts else None


def build_vevent(event: Event, tz: tzinfo) -> IEvent:
    """
    Map a stored event to a VEVENT.

    All-day events are written as DATE values with an exclusive DTEND;
    timed events as UTC DATE-TIME values.
    """
    vevent = IEvent()
    vevent.add("uid", event_uid(event))
    vevent.add("summary", event.title)

    if event.all_day:
        start_day = event.starts_at.astimezone(tz).date()
        end_local = event.effective_end().astimezone(tz)
        end_day = end_local.date()
        if end_local.time() == time.min and end_day > start_day:
            # a midnight end already excludes that day
            end_day -= timedelta(days=1)
        vevent.add("dtstart", start_day)
        vevent.add("dtend", max(end_day, start_day) + timedelta(days=1))
    else:
        vevent.add("dtstart", event.starts_at.astimezone(timezone.utc))
        vevent.add("dtend", event.effective_end().astimezone(timezone.utc))

    if event.description:
        vevent.add("description", event.description)
    location = _location_line(event)
    if location:
        vevent.add("location", location)
    if event.source_url:
        vevent.add("url", event.source_url)
    if event.created_at:
        vevent.add("created", event.created_at)
    if event.updated_at:
        vevent.add("last-modified", event.updated_at)
    if event.event_type:
        vevent.add("categories", [event.event_type.upper()])
    return vevent


def build_icalendar(calendar: Calendar, events: list[Event], tz: tzinfo) -> ICalendar:
    cal = ICalendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("method", "PUBLISH")
    cal.add("x-wr-calname", calendar.name)
    for event in events:
        cal.add_component(build_vevent(event, tz))
    return cal


def build_calendar_feed(session: Session, token: str, tz: tzinfo = timezone.utc) -> bytes:
    """
    Render the feed for the calendar owning ``token``.

    Args:
        session: Database session
        token: The calendar's ical_token
        tz: Timezone used to pick the date of all-day events

    Returns:
        The serialized VCALENDAR

    Raises:
        CalendarNotFound: If no calendar has this token
    """
    store = EventStore(session, tz)
    calendar = store.get_calendar_by_token(token)
    if calendar is None:
        raise CalendarNotFound("No calendar for this feed token")

    events = (
        session.query(Event)
        .filter(Event.calendar_id == calendar.id)
        .order_by(Event.starts_at, Event.id)
        .all()
    )
    logger.debug(f"Exporting {len(events)} events for calendar {calendar.id}")
    return build_icalendar(calendar, events, tz).to_ical()


def rotate_ical_token(session: Session, calendar: Calendar) -> str:
    """Issue a new feed token for ``calendar`` and commit."""
    token = calendar.rotate_ical_token()
    session.commit()
    logger.info(f"Rotated iCal token for calendar {calendar.id}")
    return token

"""
Event store queries.

Thin query layer over the ORM used by the dedup engine, the creation
service, the chat tools and the iCal export.
"""

from datetime import date, datetime, time, timedelta, tzinfo

from sqlalchemy import or_
from sqlalchemy.orm import Session

from eventsync.storage.models import Calendar, Event


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) of a calendar day in ``tz``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


class EventStore:
    """Read/write access to persisted events for one session."""

    def __init__(self, session: Session, tz: tzinfo):
        self.session = session
        self.tz = tz

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_source_pair(self, source_name: str, source_id: str) -> Event | None:
        return (
            self.session.query(Event)
            .filter(Event.source_name == source_name, Event.source_id == source_id)
            .first()
        )

    def events_on_day(self, day: date) -> list[Event]:
        """Events starting on ``day`` in the store's timezone."""
        start, end = day_bounds(day, self.tz)
        return (
            self.session.query(Event)
            .filter(Event.starts_at >= start, Event.starts_at < end)
            .order_by(Event.starts_at, Event.id)
            .all()
        )

    def sourced_events(self, since: datetime | None = None) -> list[Event]:
        """Events imported from an external source, oldest start first."""
        query = self.session.query(Event).filter(Event.source_name.isnot(None))
        if since is not None:
            query = query.filter(Event.starts_at >= since)
        return query.order_by(Event.starts_at, Event.id).all()

    def overlapping(self, start: datetime, end: datetime, calendar_ids: list[int] | None = None) -> list[Event]:
        """Events whose time range intersects [start, end)."""
        query = self.session.query(Event).filter(Event.occurs_from < end, Event.occurs_until > start)
        if calendar_ids is not None:
            query = query.filter(Event.calendar_id.in_(calendar_ids))
        return query.order_by(Event.starts_at, Event.id).all()

    def in_range(self, start: datetime, end: datetime, limit: int | None = None) -> list[Event]:
        """Events starting within [start, end)."""
        query = (
            self.session.query(Event)
            .filter(Event.starts_at >= start, Event.starts_at < end)
            .order_by(Event.starts_at, Event.id)
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def search(self, text: str, limit: int = 20) -> list[Event]:
        """Case-insensitive match on title, description or venue."""
        pattern = f"%{text}%"
        return (
            self.session.query(Event)
            .filter(
                or_(
                    Event.title.ilike(pattern),
                    Event.description.ilike(pattern),
                    Event.venue.ilike(pattern),
                )
            )
            .order_by(Event.starts_at, Event.id)
            .limit(limit)
            .all()
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, event: Event) -> Event:
        self.session.add(event)
        self.session.flush()
        return event

    def delete(self, event: Event) -> None:
        self.session.delete(event)
        self.session.flush()

    # ------------------------------------------------------------------
    # Calendars
    # ------------------------------------------------------------------

    def get_calendar(self, calendar_id: int) -> Calendar | None:
        return self.session.get(Calendar, calendar_id)

    def get_calendar_by_token(self, token: str) -> Calendar | None:
        if not token:
            return None
        return self.session.query(Calendar).filter(Calendar.ical_token == token).first()

    def find_or_create_calendar(self, owner_id: str, name: str, color: str | None = None) -> Calendar:
        """Calendar named ``name`` owned by ``owner_id``, created on first use."""
        calendar = (
            self.session.query(Calendar)
            .filter(Calendar.owner_id == owner_id, Calendar.name == name)
            .first()
        )
        if calendar is None:
            calendar = Calendar(
                owner_id=owner_id,
                name=name,
                description=f"Events scraped from {name}",
                color=color or "#3788d8",
            )
            self.session.add(calendar)
            self.session.flush()
        return calendar

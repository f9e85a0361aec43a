"""
Persisted models for eventsync.

Events, calendars, scraper sources, posts and connected OAuth accounts,
mapped with the SQLAlchemy ORM. Write-time invariants (event ownership,
synced time range, calendar import configuration) are enforced by
``before_insert``/``before_update`` listeners at the bottom of this module.
"""

import secrets
from datetime import datetime, timedelta, timezone
from urllib.parse import urljoin, urlparse

from croniter import croniter
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    event,
    select,
)
from sqlalchemy.orm import declarative_base, relationship

from eventsync.ingestion.errors import RecordValidationError
from eventsync.schemas.event import DEFAULT_EVENT_DURATION, EventType
from eventsync.schemas.source import (
    COLOR_PATTERN,
    DEFAULT_SCRAPE_INTERVAL_HOURS,
    DEFAULT_SOURCE_COLOR,
    ConfigurableAdapter,
    CustomAdapter,
    ScraperSelectors,
)

Base = declarative_base()

IMPORT_SOURCES = ("ical", "google", "apple", "firecrawl")
EXTRACTION_STATUSES = ("pending", "processing", "completed", "failed")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Store datetimes as naive UTC and hand them back timezone-aware."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTC column")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


# ============================================================================
# CALENDAR
# ============================================================================


class Calendar(Base):
    __tablename__ = "calendars"

    id = Column(Integer, primary_key=True)
    owner_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    color = Column(String(7), default=DEFAULT_SOURCE_COLOR)

    import_source = Column(String(20))
    import_url = Column(String(2048))
    import_source_id = Column(String(255))
    import_enabled = Column(Boolean, nullable=False, default=False)
    import_interval_hours = Column(Integer, nullable=False, default=6)
    last_imported_at = Column(UTCDateTime)
    last_run_at = Column(UTCDateTime)
    last_run_count = Column(Integer, nullable=False, default=0)
    import_error = Column(Text)

    extraction_prompt = Column(Text)
    extraction_status = Column(String(20))

    ical_token = Column(String(64), unique=True, default=lambda: secrets.token_urlsafe(24))

    created_at = Column(UTCDateTime, default=_utc_now)
    updated_at = Column(UTCDateTime, default=_utc_now, onupdate=_utc_now)

    events = relationship("Event", back_populates="calendar", cascade="all, delete-orphan")
    scraper_sources = relationship("ScraperSource", back_populates="calendar")

    @property
    def is_google(self) -> bool:
        return self.import_source == "google"

    @property
    def is_ai_extraction(self) -> bool:
        return self.import_source == "firecrawl"

    def needs_import_sync(self, now: datetime | None = None) -> bool:
        """True if the calendar was never imported or its interval has elapsed."""
        if not self.import_enabled:
            return False
        if self.last_imported_at is None:
            return True
        now = now or _utc_now()
        return self.last_imported_at < now - timedelta(hours=self.import_interval_hours or 6)

    def rotate_ical_token(self) -> str:
        self.ical_token = secrets.token_urlsafe(24)
        return self.ical_token

    def validation_errors(self) -> list[str]:
        errors = []
        if not self.name:
            errors.append("Name can't be blank")
        if not self.owner_id:
            errors.append("Owner can't be blank")
        if self.import_source and self.import_source not in IMPORT_SOURCES:
            errors.append(f"Import source must be one of: {', '.join(IMPORT_SOURCES)}")
        if self.extraction_status and self.extraction_status not in EXTRACTION_STATUSES:
            errors.append(f"Extraction status must be one of: {', '.join(EXTRACTION_STATUSES)}")
        if self.import_enabled:
            if self.is_google and not self.import_source_id:
                errors.append("Google calendars need an import_source_id to import")
            elif not self.is_google and not self.import_url:
                errors.append("Import URL can't be blank when import is enabled")
        return errors

    def __repr__(self) -> str:
        return f"<Calendar id={self.id} name={self.name!r} source={self.import_source}>"


# ============================================================================
# POST (originating context for user-created events)
# ============================================================================


class Post(Base):
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True)
    owner_id = Column(String(64), nullable=False, index=True)
    body = Column(Text)
    created_at = Column(UTCDateTime, default=_utc_now)

    events = relationship("Event", back_populates="post", cascade="all, delete-orphan")


# ============================================================================
# EVENT
# ============================================================================


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (UniqueConstraint("source_name", "source_id", name="uq_events_source_pair"),)

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    starts_at = Column(UTCDateTime, nullable=False, index=True)
    ends_at = Column(UTCDateTime)
    all_day = Column(Boolean, nullable=False, default=False)

    # Kept in sync with starts_at/ends_at for overlap queries
    occurs_from = Column(UTCDateTime, nullable=False, index=True)
    occurs_until = Column(UTCDateTime, nullable=False, index=True)

    location = Column(String(500))
    venue = Column(String(255))
    description = Column(Text)
    event_type = Column(String(20), nullable=False, default=EventType.SOCIAL.value)
    image_url = Column(String(2048))

    source_name = Column(String(100))
    source_id = Column(String(255))
    source_url = Column(String(2048))

    calendar_id = Column(Integer, ForeignKey("calendars.id", ondelete="CASCADE"), index=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), index=True)

    created_at = Column(UTCDateTime, default=_utc_now)
    updated_at = Column(UTCDateTime, default=_utc_now, onupdate=_utc_now)

    calendar = relationship("Calendar", back_populates="events")
    post = relationship("Post", back_populates="events")

    def effective_end(self) -> datetime:
        if self.ends_at is not None and self.starts_at is not None and self.ends_at >= self.starts_at:
            return self.ends_at
        return self.starts_at + DEFAULT_EVENT_DURATION

    def sync_time_range(self) -> None:
        if self.ends_at is not None and self.ends_at < self.starts_at:
            self.ends_at = None
        self.occurs_from = self.starts_at
        self.occurs_until = self.effective_end()

    def validation_errors(self) -> list[str]:
        errors = []
        if not self.title or not self.title.strip():
            errors.append("Title can't be blank")
        if self.starts_at is None:
            errors.append("Starts at can't be blank")
        if self.event_type not in {t.value for t in EventType}:
            errors.append(f"Event type is not included in the list: {self.event_type}")
        has_calendar = self.calendar_id is not None or self.calendar is not None
        has_post = self.post_id is not None or self.post is not None
        if not has_calendar and not has_post:
            errors.append("Event must belong to either a calendar or a post")
        return errors

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "all_day": self.all_day,
            "location": self.location,
            "venue": self.venue,
            "description": self.description,
            "event_type": self.event_type,
            "image_url": self.image_url,
            "source_name": self.source_name,
            "source_id": self.source_id,
            "source_url": self.source_url,
            "calendar_id": self.calendar_id,
            "post_id": self.post_id,
        }

    def __repr__(self) -> str:
        return f"<Event id={self.id} title={self.title!r} starts_at={self.starts_at}>"


# ============================================================================
# SCRAPER SOURCE
# ============================================================================


class ScraperSource(Base):
    __tablename__ = "scraper_sources"
    __table_args__ = (UniqueConstraint("calendar_id", "slug", name="uq_scraper_sources_calendar_slug"),)

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False, index=True)
    calendar_id = Column(Integer, ForeignKey("calendars.id", ondelete="SET NULL"))
    base_url = Column(String(2048), nullable=False)
    list_path = Column(String(1024))
    scraper_class = Column(String(100))
    selectors = Column(JSON, default=dict)
    schedule = Column(JSON, default=dict)
    color = Column(String(7), default=DEFAULT_SOURCE_COLOR)
    enabled = Column(Boolean, nullable=False, default=True)

    last_run_at = Column(UTCDateTime)
    last_success_at = Column(UTCDateTime)
    last_run_count = Column(Integer, nullable=False, default=0)
    total_events_scraped = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)

    created_at = Column(UTCDateTime, default=_utc_now)
    updated_at = Column(UTCDateTime, default=_utc_now, onupdate=_utc_now)

    calendar = relationship("Calendar", back_populates="scraper_sources")

    @property
    def interval_hours(self) -> int:
        return int((self.schedule or {}).get("interval_hours") or DEFAULT_SCRAPE_INTERVAL_HOURS)

    @property
    def cron_schedule(self) -> str | None:
        return (self.schedule or {}).get("cron")

    @property
    def list_url(self) -> str:
        return self.full_url(self.list_path or "/")

    def full_url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return urljoin(self.base_url.rstrip("/") + "/", path.lstrip("/"))

    def adapter_ref(self) -> CustomAdapter | ConfigurableAdapter:
        """Resolve the stored configuration into its adapter variant."""
        if self.scraper_class:
            return CustomAdapter(name=self.scraper_class)
        return ConfigurableAdapter(selectors=ScraperSelectors(**(self.selectors or {})))

    def due_for_scrape(self, now: datetime | None = None) -> bool:
        if not self.enabled:
            return False
        if self.last_run_at is None:
            return True
        now = now or _utc_now()
        if self.cron_schedule:
            return croniter(self.cron_schedule, self.last_run_at).get_next(datetime) <= now
        return self.last_run_at < now - timedelta(hours=self.interval_hours)

    def validation_errors(self) -> list[str]:
        errors = []
        if not self.name:
            errors.append("Name can't be blank")
        if not self.slug:
            errors.append("Slug can't be blank")
        if urlparse(self.base_url or "").scheme not in ("http", "https"):
            errors.append("Base url must be a valid HTTP(S) URL")
        if self.cron_schedule and not croniter.is_valid(self.cron_schedule):
            errors.append("Schedule cron is not a valid cron expression")
        if self.color and not COLOR_PATTERN.match(self.color):
            errors.append("Color must be a valid hex color")
        return errors

    def __repr__(self) -> str:
        return f"<ScraperSource id={self.id} slug={self.slug!r}>"


# ============================================================================
# CONNECTED ACCOUNT
# ============================================================================


class ConnectedAccount(Base):
    __tablename__ = "connected_accounts"
    __table_args__ = (UniqueConstraint("owner_id", "provider", name="uq_connected_accounts_owner_provider"),)

    id = Column(Integer, primary_key=True)
    owner_id = Column(String(64), nullable=False)
    provider = Column(String(30), nullable=False, default="google")
    access_token = Column(Text)
    refresh_token = Column(Text)
    expires_at = Column(UTCDateTime)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or _utc_now())


# ============================================================================
# WRITE-TIME VALIDATION
# ============================================================================


@event.listens_for(Event, "before_insert")
@event.listens_for(Event, "before_update")
def _validate_event(mapper, connection, target: Event) -> None:
    errors = target.validation_errors()
    if errors:
        raise RecordValidationError(errors)
    target.sync_time_range()


@event.listens_for(Calendar, "before_insert")
@event.listens_for(Calendar, "before_update")
def _validate_calendar(mapper, connection, target: Calendar) -> None:
    errors = target.validation_errors()
    if errors:
        raise RecordValidationError(errors)


@event.listens_for(ScraperSource, "before_insert")
@event.listens_for(ScraperSource, "before_update")
def _validate_scraper_source(mapper, connection, target: ScraperSource) -> None:
    errors = target.validation_errors()
    if target.calendar_id is None and target.slug:
        # NULL calendar_id escapes the unique constraint
        table = ScraperSource.__table__
        query = select(table.c.id).where(table.c.slug == target.slug, table.c.calendar_id.is_(None))
        if target.id is not None:
            query = query.where(table.c.id != target.id)
        if connection.execute(query).first() is not None:
            errors.append("Slug has already been taken")
    if errors:
        raise RecordValidationError(errors)

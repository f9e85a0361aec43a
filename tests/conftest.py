"""
Shared pytest fixtures for the eventsync test suite.

Provides a throwaway sqlite database, test settings, and factory fixtures
for persisted calendars, events and scraper sources.
"""

from datetime import datetime, timezone
from typing import Optional

import pytest

from eventsync.configs.settings import Settings
from eventsync.storage.database import create_db_engine, init_db, make_session_factory
from eventsync.storage.models import Calendar, Event, ScraperSource


@pytest.fixture
def settings(tmp_path):
    """
    Return Settings isolated from the developer's environment.

    Scheduler stagger and retry delays are zeroed so queued work runs
    immediately.
    """
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite:///:memory:",
        TIMEZONE="America/Chicago",
        SYSTEM_OWNER_ID="system",
        FIRECRAWL_API_KEY="fc-test-key",
        SCHEDULER_MAX_STAGGER_S=0,
        RETRY_BASE_DELAY_S=0,
        SOURCES_CONFIG_PATH=tmp_path / "sources.yaml",
    )


@pytest.fixture
def engine(tmp_path):
    """Create a file-backed sqlite engine with all tables."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'eventsync-test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Return a session factory bound to the test engine."""
    return make_session_factory(engine)


@pytest.fixture
def session(session_factory):
    """Yield a session, closed after the test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def create_calendar(session):
    """
    Return a function that persists Calendar objects with sensible defaults.

    Example:
        calendar = create_calendar(name="Work", import_source="ical", import_url="https://x/feed.ics")
    """

    def _create_calendar(name: str = "Test Calendar", owner_id: str = "user-1", **kwargs) -> Calendar:
        calendar = Calendar(name=name, owner_id=owner_id, **kwargs)
        session.add(calendar)
        session.commit()
        return calendar

    return _create_calendar


@pytest.fixture
def create_event(session, create_calendar):
    """
    Return a function that persists Event objects with sensible defaults.

    A calendar is created on first use when no calendar_id is given.
    All defaults can be overridden via keyword arguments.

    Example:
        event = create_event(title="Open Mic", venue="Cheer Up Charlies")
    """
    default_calendar: dict = {}

    def _create_event(
        title: str = "Test Event",
        starts_at: Optional[datetime] = None,
        **kwargs,
    ) -> Event:
        if starts_at is None:
            # 8pm in Austin
            starts_at = datetime(2025, 3, 8, 2, 0, tzinfo=timezone.utc)
        if "calendar_id" not in kwargs and "calendar" not in kwargs:
            if "calendar" not in default_calendar:
                default_calendar["calendar"] = create_calendar()
            kwargs["calendar"] = default_calendar["calendar"]

        event = Event(title=title, starts_at=starts_at, **kwargs)
        session.add(event)
        session.commit()
        return event

    return _create_event


@pytest.fixture
def create_source(session):
    """
    Return a function that persists ScraperSource objects with sensible defaults.

    Example:
        source = create_source(slug="do512", scraper_class="do512")
    """

    def _create_source(
        slug: str = "test-source",
        name: str = "Test Source",
        base_url: str = "https://events.example.com",
        **kwargs,
    ) -> ScraperSource:
        kwargs.setdefault("list_path", "/events")
        source = ScraperSource(slug=slug, name=name, base_url=base_url, **kwargs)
        session.add(source)
        session.commit()
        return source

    return _create_source

"""Unit tests for the ical_export module."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import icalendar
import pytest

from eventsync.export.ical_export import PRODID, build_calendar_feed, event_uid, rotate_ical_token
from eventsync.ingestion.errors import CalendarNotFound

CHICAGO = ZoneInfo("America/Chicago")

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def calendar(create_calendar):
    """Calendar whose feed is exported."""
    return create_calendar(name="Austin Shows")


def parse_feed(data: bytes) -> icalendar.Calendar:
    return icalendar.Calendar.from_ical(data)


def vevents(feed: icalendar.Calendar) -> dict[str, icalendar.Event]:
    return {str(e["SUMMARY"]): e for e in feed.walk("VEVENT")}


# =============================================================================
# TEST CLASSES
# =============================================================================


class TestBuildCalendarFeed:
    """Tests for build_calendar_feed."""

    def test_calendar_properties(self, session, calendar):
        """Should carry PRODID, version, method and calendar name."""
        feed = parse_feed(build_calendar_feed(session, calendar.ical_token, CHICAGO))

        assert str(feed["PRODID"]) == PRODID
        assert str(feed["VERSION"]) == "2.0"
        assert str(feed["METHOD"]) == "PUBLISH"
        assert str(feed["X-WR-CALNAME"]) == "Austin Shows"

    def test_timed_event(self, session, calendar, create_event):
        """Timed events should be exported as UTC date-times."""
        event = create_event(
            title="Loud Guitars",
            calendar=calendar,
            starts_at=datetime(2025, 3, 8, 20, 0, tzinfo=CHICAGO),
            ends_at=datetime(2025, 3, 8, 23, 0, tzinfo=CHICAGO),
            venue="Mohawk",
            location="912 Red River St",
            description="Doors at 7.",
            source_url="https://do512.com/events/2025/3/8/loud-guitars",
            event_type="celebration",
        )

        vevent = vevents(parse_feed(build_calendar_feed(session, calendar.ical_token, CHICAGO)))["Loud Guitars"]

        assert str(vevent["UID"]) == event_uid(event)
        assert vevent.decoded("DTSTART") == datetime(2025, 3, 9, 2, 0, tzinfo=timezone.utc)
        assert vevent.decoded("DTEND") == datetime(2025, 3, 9, 5, 0, tzinfo=timezone.utc)
        assert str(vevent["LOCATION"]) == "Mohawk, 912 Red River St"
        assert str(vevent["DESCRIPTION"]) == "Doors at 7."
        assert str(vevent["URL"]) == "https://do512.com/events/2025/3/8/loud-guitars"
        assert "CELEBRATION" in vevent.to_ical().decode()

    def test_timed_event_without_end_lasts_an_hour(self, session, calendar, create_event):
        """A missing end should default to one hour after the start."""
        create_event(title="Standup", calendar=calendar, starts_at=datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc))

        vevent = vevents(parse_feed(build_calendar_feed(session, calendar.ical_token, CHICAGO)))["Standup"]

        assert vevent.decoded("DTEND") == datetime(2025, 3, 10, 16, 0, tzinfo=timezone.utc)

    def test_single_all_day_event(self, session, calendar, create_event):
        """All-day events should use DATE values with an exclusive end."""
        create_event(
            title="Farmers Market",
            calendar=calendar,
            starts_at=datetime(2025, 3, 8, 0, 0, tzinfo=CHICAGO),
            all_day=True,
        )

        vevent = vevents(parse_feed(build_calendar_feed(session, calendar.ical_token, CHICAGO)))["Farmers Market"]

        assert vevent.decoded("DTSTART") == date(2025, 3, 8)
        assert vevent.decoded("DTEND") == date(2025, 3, 9)

    def test_multi_day_all_day_event_ending_at_midnight(self, session, calendar, create_event):
        """A midnight end should not add an extra day."""
        create_event(
            title="SXSW",
            calendar=calendar,
            starts_at=datetime(2025, 3, 7, 0, 0, tzinfo=CHICAGO),
            ends_at=datetime(2025, 3, 16, 0, 0, tzinfo=CHICAGO),
            all_day=True,
        )

        vevent = vevents(parse_feed(build_calendar_feed(session, calendar.ical_token, CHICAGO)))["SXSW"]

        assert vevent.decoded("DTSTART") == date(2025, 3, 7)
        assert vevent.decoded("DTEND") == date(2025, 3, 16)

    def test_only_this_calendars_events(self, session, calendar, create_calendar, create_event):
        """Events from other calendars should not leak into the feed."""
        other = create_calendar(name="Other")
        create_event(title="Mine", calendar=calendar)
        create_event(title="Theirs", calendar=other)

        titles = set(vevents(parse_feed(build_calendar_feed(session, calendar.ical_token, CHICAGO))))

        assert titles == {"Mine"}

    def test_unknown_token(self, session, calendar):
        """Should raise CalendarNotFound for an unknown or empty token."""
        with pytest.raises(CalendarNotFound):
            build_calendar_feed(session, "not-a-token")
        with pytest.raises(CalendarNotFound):
            build_calendar_feed(session, "")


class TestRotateIcalToken:
    """Tests for rotate_ical_token."""

    def test_old_token_stops_working(self, session, calendar):
        """Rotating should invalidate the previous feed URL."""
        old_token = calendar.ical_token

        new_token = rotate_ical_token(session, calendar)

        assert new_token != old_token
        assert build_calendar_feed(session, new_token)
        with pytest.raises(CalendarNotFound):
            build_calendar_feed(session, old_token)

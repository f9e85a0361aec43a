"""Unit tests for the datetime_parser module."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from eventsync.ingestion.normalization import parse_event_time

CHICAGO = ZoneInfo("America/Chicago")


class TestParseEventTime:
    """Tests for parse_event_time."""

    def test_none_and_blank(self):
        """Missing values should parse to None."""
        assert parse_event_time(None, CHICAGO) is None
        assert parse_event_time("  ", CHICAGO) is None

    def test_bool_is_not_epoch(self):
        """Booleans should not be treated as epoch seconds."""
        assert parse_event_time(True, CHICAGO) is None

    def test_naive_datetime_is_localized(self):
        """Naive datetimes should get the context timezone."""
        parsed = parse_event_time(datetime(2025, 3, 8, 19, 30), CHICAGO)

        assert parsed.value == datetime(2025, 3, 8, 19, 30, tzinfo=CHICAGO)
        assert parsed.date_only is False

    def test_date_object_is_date_only(self):
        """Date objects should be midnight local and date-only."""
        parsed = parse_event_time(date(2025, 3, 8), CHICAGO)

        assert parsed.value == datetime(2025, 3, 8, tzinfo=CHICAGO)
        assert parsed.date_only is True

    def test_iso_date_string_is_date_only(self):
        """YYYY-MM-DD strings should be date-only."""
        parsed = parse_event_time("2025-03-08", CHICAGO)

        assert parsed.date_only is True
        assert parsed.value.date() == date(2025, 3, 8)

    def test_iso_with_z_suffix(self):
        """A trailing Z should mean UTC."""
        parsed = parse_event_time("2025-03-08T18:00:00Z", CHICAGO)

        assert parsed.value == datetime(2025, 3, 8, 18, 0, tzinfo=timezone.utc)

    def test_epoch_seconds(self):
        """Numbers should be read as UTC epoch seconds."""
        parsed = parse_event_time(0, CHICAGO)

        assert parsed.value == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_free_text_without_time_is_date_only(self):
        """Free text with no time of day should be date-only."""
        parsed = parse_event_time("March 8", CHICAGO, default_year=2025)

        assert parsed.date_only is True
        assert parsed.value == datetime(2025, 3, 8, tzinfo=CHICAGO)

    def test_free_text_with_time(self):
        """Free text with a time should keep it."""
        parsed = parse_event_time("Saturday, March 8, 2025 at 8:00 PM", CHICAGO)

        assert parsed.value == datetime(2025, 3, 8, 20, 0, tzinfo=CHICAGO)
        assert parsed.date_only is False

    def test_garbage_is_none(self):
        """Text containing no date should parse to None."""
        assert parse_event_time("to be announced", CHICAGO) is None

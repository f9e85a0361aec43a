"""
Unit tests for the normalizer module.

Covers EventNormalizer.normalize, the text helpers and deterministic
source-id generation.
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from eventsync.ingestion.normalization import (
    EventNormalizer,
    NormalizationError,
    SourceContext,
    clean_text,
    generate_source_id,
    normalize,
    parameterize,
)
from eventsync.schemas.event import EventDraft, EventType

CHICAGO = ZoneInfo("America/Chicago")

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def normalizer():
    """Create an EventNormalizer."""
    return EventNormalizer()


@pytest.fixture
def context():
    """Source context for an iCal feed in Austin."""
    return SourceContext(source_name="ical", tz=CHICAGO, default_year=2025)


# =============================================================================
# TEST CLASSES
# =============================================================================


class TestTextHelpers:
    """Tests for clean_text and parameterize."""

    def test_clean_text_collapses_whitespace(self):
        """Should trim and collapse internal whitespace."""
        assert clean_text("  Open \n  Mic  ") == "Open Mic"

    def test_clean_text_blank_is_none(self):
        """Blank or missing values should become None."""
        assert clean_text("   ") is None
        assert clean_text(None) is None

    def test_clean_text_caps_length(self):
        """Should truncate to max_length."""
        assert clean_text("x" * 300, max_length=255) == "x" * 255

    def test_clean_text_keeps_newlines_without_collapse(self):
        """Should keep paragraph breaks when collapse is off."""
        assert clean_text(" one\n\ntwo ", collapse=False) == "one\n\ntwo"

    def test_parameterize(self):
        """Should slugify titles."""
        assert parameterize("Stubb's BBQ: Live Jazz!") == "stubb-s-bbq-live-jazz"
        assert parameterize("Café Olé") == "cafe-ole"


class TestGenerateSourceId:
    """Tests for deterministic source ids."""

    def test_stable_across_calls(self):
        """The same title and day should always give the same id."""
        first = generate_source_id("Open Mic", "2025-03-08")
        second = generate_source_id("Open Mic", "2025-03-08")
        assert first == second
        assert len(first) == 13

    def test_differs_by_day(self):
        """Different days should give different ids."""
        assert generate_source_id("Open Mic", "2025-03-08") != generate_source_id("Open Mic", "2025-03-09")

    def test_ignores_case_and_punctuation(self):
        """Cosmetic title differences should not change the id."""
        assert generate_source_id("OPEN MIC!", "2025-03-08") == generate_source_id("open mic", "2025-03-08")


class TestEventNormalizer:
    """Tests for EventNormalizer.normalize."""

    def test_valid_record(self, normalizer, context):
        """Should produce a draft with localized start and trimmed fields."""
        draft = normalizer.normalize(
            {
                "title": "  Open   Mic ",
                "starts_at": "2025-03-08T19:30:00",
                "ends_at": "2025-03-08T22:00:00",
                "venue": " Cheer Up Charlies ",
                "location": "900 Red River St, Austin, TX",
                "source_id": "uid-123@example.com",
            },
            context,
        )

        assert isinstance(draft, EventDraft)
        assert draft.title == "Open Mic"
        assert draft.starts_at == datetime(2025, 3, 8, 19, 30, tzinfo=CHICAGO)
        assert draft.ends_at == datetime(2025, 3, 8, 22, 0, tzinfo=CHICAGO)
        assert draft.venue == "Cheer Up Charlies"
        assert draft.source_name == "ical"
        assert draft.source_id == "uid-123@example.com"
        assert draft.all_day is False
        assert draft.event_type == EventType.SOCIAL

    def test_missing_title_is_rejected(self, normalizer, context):
        """Should reject records without a title."""
        result = normalizer.normalize({"title": "   ", "starts_at": "2025-03-08T19:30:00"}, context)

        assert isinstance(result, NormalizationError)
        assert result.field == "title"

    def test_missing_start_is_rejected(self, normalizer, context):
        """Should reject records without a start time."""
        result = normalizer.normalize({"title": "Open Mic"}, context)

        assert isinstance(result, NormalizationError)
        assert result.field == "starts_at"
        assert result.raw_title == "Open Mic"

    def test_unparsable_start_is_rejected(self, normalizer, context):
        """Should reject start values that are not dates."""
        result = normalizer.normalize({"title": "Open Mic", "starts_at": "to be announced"}, context)

        assert isinstance(result, NormalizationError)
        assert result.field == "starts_at"

    def test_end_before_start_is_dropped(self, normalizer, context):
        """An end earlier than the start should be discarded, not rejected."""
        draft = normalizer.normalize(
            {"title": "Late Show", "starts_at": "2025-03-08T22:00:00", "ends_at": "2025-03-08T20:00:00"},
            context,
        )

        assert isinstance(draft, EventDraft)
        assert draft.ends_at is None

    def test_date_only_start_is_all_day(self, normalizer, context):
        """A bare date should produce an all-day event at local midnight."""
        draft = normalizer.normalize({"title": "Farmers Market", "starts_at": date(2025, 3, 8)}, context)

        assert draft.all_day is True
        assert draft.starts_at == datetime(2025, 3, 8, 0, 0, tzinfo=CHICAGO)

    def test_free_text_date_uses_default_year(self, normalizer, context):
        """Scraped text without a year should assume the context's year."""
        draft = normalizer.normalize({"title": "Jazz Night", "starts_at": "Sat, Mar 8 7:30 PM"}, context)

        assert draft.starts_at == datetime(2025, 3, 8, 19, 30, tzinfo=CHICAGO)
        assert draft.all_day is False

    def test_aware_start_is_kept(self, normalizer, context):
        """Explicit offsets should be preserved."""
        draft = normalizer.normalize({"title": "Webinar", "starts_at": "2025-03-08T18:00:00Z"}, context)

        assert draft.starts_at == datetime(2025, 3, 8, 18, 0, tzinfo=timezone.utc)

    def test_unknown_event_type_falls_back_to_social(self, normalizer, context):
        """Unknown categories should map to social."""
        draft = normalizer.normalize(
            {"title": "Rave", "starts_at": "2025-03-08T23:00:00", "event_type": "party"}, context
        )
        assert draft.event_type == EventType.SOCIAL

    def test_known_event_type_is_case_insensitive(self, normalizer, context):
        """Should accept known categories in any case."""
        draft = normalizer.normalize(
            {"title": "Python Meetup", "starts_at": "2025-03-08T18:00:00", "event_type": " Workshop "}, context
        )
        assert draft.event_type == EventType.WORKSHOP

    def test_source_id_generated_when_missing(self, normalizer, context):
        """Records with a source but no id should get a deterministic id."""
        raw = {"title": "Open Mic", "starts_at": "2025-03-08T19:30:00"}

        first = normalizer.normalize(raw, context)
        second = normalizer.normalize(dict(raw), context)

        assert first.source_id == generate_source_id("Open Mic", "2025-03-08")
        assert first.source_id == second.source_id

    def test_source_id_not_generated_when_disabled(self, normalizer):
        """Manual creations should not get synthetic ids."""
        context = SourceContext(source_name="manual-test", tz=CHICAGO, generate_source_ids=False)
        draft = normalizer.normalize({"title": "Dinner", "starts_at": "2025-03-08T19:00:00"}, context)

        assert draft.source_id is None

    def test_no_source_name_means_no_source_id(self, normalizer):
        """Without a source there is nothing to attribute the id to."""
        draft = normalizer.normalize(
            {"title": "Dinner", "starts_at": "2025-03-08T19:00:00"}, SourceContext(tz=CHICAGO)
        )
        assert draft.source_name is None
        assert draft.source_id is None

    def test_description_is_capped_and_keeps_paragraphs(self, normalizer, context):
        """Long descriptions should be truncated to 2000 characters."""
        draft = normalizer.normalize(
            {"title": "Talk", "starts_at": "2025-03-08T19:00:00", "description": "para one\n\n" + "y" * 3000},
            context,
        )

        assert len(draft.description) == 2000
        assert draft.description.startswith("para one\n\n")

    def test_source_url_falls_back_to_context(self, normalizer):
        """The context URL should be used when the record has none."""
        context = SourceContext(source_name="ical", source_url="https://feeds.example.com/cal.ics", tz=CHICAGO)
        draft = normalizer.normalize({"title": "Talk", "starts_at": "2025-03-08T19:00:00"}, context)

        assert draft.source_url == "https://feeds.example.com/cal.ics"

    def test_module_level_normalize(self, context):
        """The module-level helper should behave like the class."""
        draft = normalize({"title": "Talk", "starts_at": "2025-03-08T19:00:00"}, context)
        assert isinstance(draft, EventDraft)

"""
Event Normalizer.

Converts raw per-source fields into a canonical ``EventDraft``. The
transform is pure: bad records come back as a ``NormalizationError`` value
so a single malformed record never aborts a batch.
"""

import hashlib
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from typing import Any

from pydantic import ValidationError

from eventsync.ingestion.normalization.datetime_parser import parse_event_time
from eventsync.schemas.event import (
    DESCRIPTION_MAX_LENGTH,
    LOCATION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    VENUE_MAX_LENGTH,
    EventDraft,
    EventType,
)

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class SourceContext:
    """Where a raw record came from and how to interpret it."""

    source_name: str | None = None
    source_url: str | None = None
    tz: tzinfo = timezone.utc
    default_year: int | None = None
    generate_source_ids: bool = True
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NormalizationError:
    """A raw record that could not be turned into an event."""

    reason: str
    field: str | None = None
    raw_title: str | None = None

    def __str__(self) -> str:
        return self.reason


def parameterize(text: str) -> str:
    """URL-slug form of ``text``: ascii, lowercase, dash separated."""
    ascii_text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return _NON_ALNUM.sub("-", ascii_text.lower()).strip("-")


def generate_source_id(title: str, day_iso: str) -> str:
    """Deterministic id for records whose source exposes none."""
    components = "-".join(part for part in (parameterize(title), day_iso) if part)
    return hashlib.md5(components.encode("utf-8")).hexdigest()[:13]


def clean_text(value: Any, max_length: int | None = None, collapse: bool = True) -> str | None:
    """Trim (and optionally collapse) whitespace, cap length, map blank to None."""
    if value is None:
        return None
    text = str(value)
    text = _WHITESPACE.sub(" ", text).strip() if collapse else text.strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        text = text[:max_length].rstrip()
    return text


class EventNormalizer:
    """
    Normalize raw records from any adapter.

    Recognized raw keys: title, starts_at, ends_at, all_day, location,
    venue, description, event_type, image_url, source_name, source_id,
    source_url. Unknown keys are ignored.
    """

    def normalize(self, raw: dict[str, Any], context: SourceContext | None = None) -> EventDraft | NormalizationError:
        """
        Build an EventDraft from raw fields.

        Args:
            raw: Raw field mapping produced by an adapter
            context: Source attribution and parsing hints

        Returns:
            EventDraft on success, NormalizationError otherwise
        """
        context = context or SourceContext()

        title = clean_text(raw.get("title"), TITLE_MAX_LENGTH)
        if not title:
            return NormalizationError("Title is missing or blank", field="title")

        start = parse_event_time(raw.get("starts_at"), context.tz, context.default_year)
        if start is None:
            return NormalizationError(
                f"Unparsable or missing start time: {raw.get('starts_at')!r}",
                field="starts_at",
                raw_title=title,
            )

        ends_at = None
        end = parse_event_time(raw.get("ends_at"), context.tz, context.default_year)
        if end is not None:
            if end.value >= start.value:
                ends_at = end.value
            else:
                logger.debug(f"Dropping end time before start for '{title}'")

        source_name = clean_text(raw.get("source_name")) or context.source_name
        source_id = clean_text(raw.get("source_id"))
        if source_name and not source_id and context.generate_source_ids:
            source_id = generate_source_id(title, start.value.astimezone(context.tz).date().isoformat())

        try:
            return EventDraft(
                title=title,
                starts_at=start.value,
                ends_at=ends_at,
                all_day=bool(raw.get("all_day")) or start.date_only,
                location=clean_text(raw.get("location"), LOCATION_MAX_LENGTH),
                venue=clean_text(raw.get("venue"), VENUE_MAX_LENGTH),
                description=clean_text(raw.get("description"), DESCRIPTION_MAX_LENGTH, collapse=False),
                event_type=EventType.from_raw(raw.get("event_type")),
                image_url=clean_text(raw.get("image_url")),
                source_name=source_name,
                source_id=source_id,
                source_url=clean_text(raw.get("source_url")) or context.source_url,
            )
        except ValidationError as e:
            return NormalizationError(f"Invalid event: {e.errors()[0]['msg']}", raw_title=title)


_default_normalizer = EventNormalizer()


def normalize(raw: dict[str, Any], context: SourceContext | None = None) -> EventDraft | NormalizationError:
    """Normalize with the shared default normalizer."""
    return _default_normalizer.normalize(raw, context)

"""
Canonical event schemas for eventsync.

Every source adapter converges on ``EventDraft``: the validated, normalized
shape of an event before it is matched against the store and persisted.
``EventCreateRequest`` is the looser payload accepted by the event creation
entry point (manual UI, public API, chat tools).
"""

from datetime import date, datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_EVENT_DURATION = timedelta(hours=1)

TITLE_MAX_LENGTH = 255
VENUE_MAX_LENGTH = 255
LOCATION_MAX_LENGTH = 500
DESCRIPTION_MAX_LENGTH = 2000


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# ============================================================================
# ENUMS
# ============================================================================


class EventType(str, Enum):
    """Closed set of event categories."""

    SOCIAL = "social"
    MEETING = "meeting"
    WORKSHOP = "workshop"
    COMMUNITY = "community"
    CELEBRATION = "celebration"

    @classmethod
    def from_raw(cls, value: Any) -> "EventType":
        """
        Map any upstream value to the enum.

        Unknown, blank, or missing values fall back to SOCIAL.
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.SOCIAL
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.SOCIAL


class SourceKind(str, Enum):
    """Origin tag for an event-creation call."""

    MANUAL = "manual"
    API = "api"
    SCRAPER = "scraper"
    CHAT = "chat"

    @classmethod
    def parse(cls, value: "SourceKind | str") -> "SourceKind":
        """Parse a source kind, raising ValueError for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            valid = ", ".join(k.value for k in cls)
            raise ValueError(f"Invalid source: {value}. Must be one of: {valid}") from None


# ============================================================================
# EVENT DRAFT
# ============================================================================


class EventDraft(BaseModel):
    """
    A normalized event ready for deduplication and persistence.

    Produced by the Normalizer; never constructed from unvalidated upstream
    data directly.
    """

    model_config = ConfigDict(use_enum_values=False, validate_assignment=True)

    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    starts_at: datetime
    ends_at: datetime | None = None
    all_day: bool = False

    location: str | None = Field(None, max_length=LOCATION_MAX_LENGTH)
    venue: str | None = Field(None, max_length=VENUE_MAX_LENGTH)
    description: str | None = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    event_type: EventType = EventType.SOCIAL
    image_url: str | None = None

    source_name: str | None = None
    source_id: str | None = None
    source_url: str | None = None

    @field_validator("starts_at", "ends_at")
    @classmethod
    def require_timezone(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            raise ValueError("datetime must be timezone-aware")
        return v

    @model_validator(mode="after")
    def validate_end_after_start(self) -> "EventDraft":
        """Ensure end, when present, is not before start."""
        if self.ends_at is not None and self.ends_at < self.starts_at:
            raise ValueError("ends_at must not be earlier than starts_at")
        return self

    @property
    def has_source_pair(self) -> bool:
        return bool(self.source_name) and bool(self.source_id)

    def effective_end(self) -> datetime:
        """End time, defaulting to one hour after start."""
        return self.ends_at or self.starts_at + DEFAULT_EVENT_DURATION

    def local_date(self, tz: tzinfo) -> date:
        """Calendar day the event starts on in the given timezone."""
        return self.starts_at.astimezone(tz).date()


# ============================================================================
# CREATION REQUEST
# ============================================================================


class EventCreateRequest(BaseModel):
    """
    Payload accepted by the event creation entry point.

    Values are raw: dates may still be strings, and the event type may be
    anything. Normalization happens in the creation service.
    """

    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    starts_at: Any = None
    ends_at: Any = None
    all_day: bool | None = None
    location: str | None = None
    venue: str | None = None
    description: str | None = None
    event_type: str | None = None
    image_url: str | None = None
    calendar_id: int | None = None
    source_name: str | None = None
    source_id: str | None = None
    source_url: str | None = None

    def raw_fields(self) -> dict[str, Any]:
        """Fields handed to the Normalizer."""
        return self.model_dump(exclude={"calendar_id"}, exclude_none=True)

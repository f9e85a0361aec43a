"""
Event creation entry point.

Every producer of events (manual UI, public API, chat tools, scrapers and
feed imports) goes through ``EventCreationService`` so ownership rules and
deduplication are applied uniformly.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventsync.configs.settings import Settings, get_settings
from eventsync.ingestion.deduplication import DuplicateFinder
from eventsync.ingestion.errors import RecordValidationError
from eventsync.ingestion.normalization import EventNormalizer, NormalizationError, SourceContext
from eventsync.schemas.event import EventCreateRequest, EventDraft, SourceKind
from eventsync.storage.models import Event, Post
from eventsync.storage.repository import EventStore

logger = logging.getLogger(__name__)

DEFAULT_SCRAPED_CALENDAR_NAME = "Scraped Events"
REFRESHABLE_FIELDS = (
    "title",
    "starts_at",
    "ends_at",
    "all_day",
    "location",
    "venue",
    "description",
    "event_type",
    "image_url",
    "source_url",
)


@dataclass
class CreationResult:
    """Outcome of a single create call."""

    success: bool
    event: Event | None = None
    errors: list[str] = field(default_factory=list)
    duplicate: bool = False
    updated: bool = False


class EventCreationService:
    """
    Create events with deduplication and ownership handling.

    Deduplication runs for scraper creations and whenever a source_name is
    supplied. Scraped events without a calendar land in a calendar owned by
    the configured system owner; user creations without a calendar get an
    originating post.
    """

    def __init__(
        self,
        session: Session,
        settings: Settings | None = None,
        normalizer: EventNormalizer | None = None,
        system_owner_id: str | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.system_owner_id = system_owner_id or self.settings.SYSTEM_OWNER_ID
        self.normalizer = normalizer or EventNormalizer()
        self.store = EventStore(session, self.settings.tzinfo)
        self.finder = DuplicateFinder(self.store)

    def create(
        self,
        params: EventCreateRequest | dict[str, Any],
        source: SourceKind | str,
        owner_id: str | None = None,
        skip_deduplication: bool = False,
    ) -> CreationResult:
        """
        Normalize raw params and create the event.

        Args:
            params: Raw creation payload
            source: manual | api | scraper | chat
            owner_id: Owner of the originating post when no calendar is given
            skip_deduplication: Force creation even if a match exists

        Returns:
            CreationResult

        Raises:
            ValueError: If ``source`` is not a known source kind
        """
        kind = SourceKind.parse(source)
        request = params if isinstance(params, EventCreateRequest) else EventCreateRequest.model_validate(params)

        context = SourceContext(tz=self.settings.tzinfo, generate_source_ids=kind == SourceKind.SCRAPER)
        outcome = self.normalizer.normalize(request.raw_fields(), context)
        if isinstance(outcome, NormalizationError):
            return CreationResult(success=False, errors=[outcome.reason])

        return self.create_from_draft(
            outcome,
            kind,
            calendar_id=request.calendar_id,
            owner_id=owner_id,
            skip_deduplication=skip_deduplication,
        )

    def create_from_draft(
        self,
        draft: EventDraft,
        source: SourceKind | str,
        calendar_id: int | None = None,
        owner_id: str | None = None,
        skip_deduplication: bool = False,
        refresh_existing: bool = False,
        calendar_name: str | None = None,
        calendar_color: str | None = None,
    ) -> CreationResult:
        """
        Deduplicate and persist an already-normalized draft.

        When ``refresh_existing`` is set, an authoritative source-id match
        has its mutable fields overwritten from the draft instead of being
        skipped untouched.
        """
        kind = SourceKind.parse(source)

        if self._should_deduplicate(draft, kind, skip_deduplication):
            existing = self.finder.find_duplicate(draft)
            if existing is not None:
                if refresh_existing and self._same_source_record(existing, draft):
                    return self._refresh(existing, draft)
                logger.debug(f"Duplicate of event {existing.id}: {draft.title}")
                return CreationResult(success=True, event=existing, duplicate=True)

        event = Event(**draft.model_dump(exclude={"event_type"}), event_type=draft.event_type.value)
        try:
            owner_error = self._assign_owner(event, kind, calendar_id, owner_id, calendar_name or draft.source_name, calendar_color)
            if owner_error:
                self.session.rollback()
                return CreationResult(success=False, errors=[owner_error])
            self.store.add(event)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            existing = None
            if draft.has_source_pair:
                existing = self.store.find_by_source_pair(draft.source_name, draft.source_id)
            if existing is not None:
                logger.info(f"Lost insert race for ({draft.source_name}, {draft.source_id}); treating as duplicate")
                return CreationResult(success=True, event=existing, duplicate=True)
            return CreationResult(success=False, errors=["Event violates a uniqueness constraint"])
        except RecordValidationError as e:
            self.session.rollback()
            return CreationResult(success=False, errors=e.errors)

        logger.info(f"Created event {event.id}: {event.title} ({kind.value})")
        return CreationResult(success=True, event=event)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _should_deduplicate(draft: EventDraft, kind: SourceKind, skip: bool) -> bool:
        if skip:
            return False
        return kind == SourceKind.SCRAPER or bool(draft.source_name)

    @staticmethod
    def _same_source_record(existing: Event, draft: EventDraft) -> bool:
        return draft.has_source_pair and (existing.source_name, existing.source_id) == (draft.source_name, draft.source_id)

    def _assign_owner(
        self,
        event: Event,
        kind: SourceKind,
        calendar_id: int | None,
        owner_id: str | None,
        calendar_name: str | None,
        calendar_color: str | None,
    ) -> str | None:
        if calendar_id is not None:
            calendar = self.store.get_calendar(calendar_id)
            if calendar is None:
                return f"Calendar {calendar_id} not found"
            event.calendar = calendar
            return None

        if kind == SourceKind.SCRAPER:
            event.calendar = self.store.find_or_create_calendar(
                self.system_owner_id,
                calendar_name or DEFAULT_SCRAPED_CALENDAR_NAME,
                calendar_color,
            )
            return None

        if not owner_id:
            return "Event must belong to either a calendar or a post"
        event.post = Post(owner_id=owner_id, body=event.description or event.title)
        return None

    def _refresh(self, existing: Event, draft: EventDraft) -> CreationResult:
        changes = draft.model_dump(include=set(REFRESHABLE_FIELDS))
        changes["event_type"] = draft.event_type.value
        changed = False
        for name, value in changes.items():
            if getattr(existing, name) != value:
                setattr(existing, name, value)
                changed = True
        if not changed:
            return CreationResult(success=True, event=existing, duplicate=True)
        try:
            self.session.commit()
        except RecordValidationError as e:
            self.session.rollback()
            return CreationResult(success=False, event=existing, errors=e.errors)
        logger.debug(f"Refreshed event {existing.id} from ({draft.source_name}, {draft.source_id})")
        return CreationResult(success=True, event=existing, duplicate=True, updated=True)

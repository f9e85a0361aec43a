"""
Ingestion Coordinator.

Wraps every adapter invocation: fetch → normalize → dedup → persist, and
records run state on the source or calendar whatever the outcome. A failed
run is still a recorded run; operators see it through ``last_error`` /
``import_error`` and, for AI extraction, ``extraction_status``.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

from sqlalchemy.orm import Session, sessionmaker

from eventsync.configs.settings import Settings, get_settings
from eventsync.ingestion.adapters import (
    AIExtractAdapter,
    AIExtractAdapterConfig,
    BaseSourceAdapter,
    FetchResult,
    GoogleCalendarAdapter,
    GoogleCalendarAdapterConfig,
    ICalAdapter,
    ICalAdapterConfig,
    ScraperAdapterConfig,
    SourceType,
    resolve_adapter,
)
from eventsync.ingestion.creation import EventCreationService
from eventsync.ingestion.errors import (
    DescriptorNotFound,
    IngestionError,
    NeedsReconnectError,
    SourceConfigurationError,
)
from eventsync.ingestion.normalization import EventNormalizer, NormalizationError, SourceContext
from eventsync.monitoring.logging import RunLogger, with_context
from eventsync.schemas.event import SourceKind
from eventsync.storage.models import Calendar, ConnectedAccount, Event, ScraperSource

logger = logging.getLogger(__name__)

FEED_IMPORT_SOURCES = ("ical", "apple", "google")

AdapterBuilder = Callable[[Any, Session], BaseSourceAdapter]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunStats:
    """Per-record outcome counts for one run."""

    fetched: int = 0
    created: int = 0
    duplicates: int = 0
    updated: int = 0
    rejected: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.created + self.duplicates + self.updated


@dataclass
class RunResult:
    """Outcome of syncing one source or calendar."""

    success: bool
    target: str
    count: int = 0
    error: str | None = None
    retryable: bool = False
    run_id: str = ""
    stats: RunStats = field(default_factory=RunStats)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"success": self.success, "count": self.count}
        if self.error:
            data["error"] = self.error
        return data


class IngestionCoordinator:
    """
    Run ingestion for scraper sources and importing calendars.

    Each run opens its own session so runs on different worker threads
    share nothing but the database.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        settings: Settings | None = None,
        system_owner_id: str | None = None,
        adapter_builder: AdapterBuilder | None = None,
    ):
        """
        Initialize the coordinator.

        Args:
            session_factory: Factory for database sessions
            settings: Application settings
            system_owner_id: Owner of calendars created for unowned scraper sources
            adapter_builder: Override adapter construction (tests, alternate transports)
        """
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.system_owner_id = system_owner_id or self.settings.SYSTEM_OWNER_ID
        self.adapter_builder = adapter_builder
        self.normalizer = EventNormalizer()

    # ------------------------------------------------------------------
    # Scraper sources
    # ------------------------------------------------------------------

    def run_source(self, source_id: int, attempt: int = 1) -> RunResult:
        """
        Scrape one source and persist its events.

        Args:
            source_id: Scraper source primary key
            attempt: Retry attempt, stamped on the run's log records

        Raises:
            DescriptorNotFound: If the source no longer exists
        """
        run_id = uuid.uuid4().hex[:8]
        session = self.session_factory()
        try:
            source = session.get(ScraperSource, source_id)
            if source is None:
                raise DescriptorNotFound("ScraperSource", source_id)

            log = with_context(
                logger,
                run_id=run_id,
                target=source.slug,
                adapter=source.scraper_class or "configurable",
                stage="scrape",
                attempt=attempt,
            )
            log.info(f"Starting scrape of {source.name} ({source.list_url})")

            started = _utc_now()
            try:
                result = self._fetch(source, session, self._build_source_adapter)
            except Exception as e:
                self._record_source_crash(session, source_id, e, started)
                raise

            if not result.success:
                source.last_run_at = started
                source.last_error = result.error
                session.commit()
                log.warning(f"Scrape failed: {result.error}")
                return RunResult(False, source.slug, error=result.error, retryable=result.retryable, run_id=run_id)

            context = SourceContext(source_name=source.name, tz=self.settings.tzinfo)
            stats = self._ingest(
                session,
                result.records,
                context,
                log,
                calendar_id=source.calendar_id,
                calendar_name=source.name,
                calendar_color=source.color,
            )

            source.last_run_at = started
            source.last_success_at = started
            source.last_run_count = stats.processed
            source.total_events_scraped = (source.total_events_scraped or 0) + stats.processed
            source.last_error = None
            session.commit()

            log.info(
                f"Scrape complete: {stats.created} new, {stats.duplicates} duplicates, "
                f"{stats.rejected} rejected, {stats.failed} failed"
            )
            return RunResult(True, source.slug, count=stats.processed, run_id=run_id, stats=stats)
        finally:
            session.close()

    def _record_source_crash(self, session: Session, source_id: int, error: Exception, started: datetime) -> None:
        session.rollback()
        source = session.get(ScraperSource, source_id)
        if source is None:
            return
        source.last_run_at = started
        source.last_error = f"{type(error).__name__}: {error}"
        session.commit()

    def _build_source_adapter(self, source: ScraperSource, session: Session) -> BaseSourceAdapter:
        config = ScraperAdapterConfig(
            source_id=source.slug,
            source_type=SourceType.SCRAPER,
            base_url=source.base_url,
            list_path=source.list_path,
            source_name=source.name,
        )
        return resolve_adapter(source.adapter_ref(), config)

    # ------------------------------------------------------------------
    # Calendars
    # ------------------------------------------------------------------

    def run_calendar(self, calendar_id: int, attempt: int = 1) -> RunResult:
        """
        Import one calendar from its configured feed, API or extraction URL.

        Args:
            calendar_id: Calendar primary key
            attempt: Retry attempt, stamped on the run's log records

        Raises:
            DescriptorNotFound: If the calendar no longer exists
        """
        run_id = uuid.uuid4().hex[:8]
        session = self.session_factory()
        try:
            calendar = session.get(Calendar, calendar_id)
            if calendar is None:
                raise DescriptorNotFound("Calendar", calendar_id)

            target = f"calendar-{calendar.id}"
            log = with_context(
                logger,
                run_id=run_id,
                target=target,
                adapter=calendar.import_source,
                stage="import",
                attempt=attempt,
            )

            if calendar.is_ai_extraction:
                calendar.extraction_status = "processing"
                session.commit()

            started = _utc_now()
            try:
                result = self._fetch(calendar, session, self._build_calendar_adapter)
            except Exception as e:
                self._record_calendar_crash(session, calendar_id, e, started)
                raise

            if not result.success:
                calendar.last_run_at = started
                calendar.import_error = result.error
                if calendar.is_ai_extraction:
                    calendar.extraction_status = "failed"
                session.commit()
                log.warning(f"Import failed: {result.error}")
                return RunResult(False, target, error=result.error, retryable=result.retryable, run_id=run_id)

            source_name = self._calendar_source_name(calendar)
            context = SourceContext(source_name=source_name, tz=self.settings.tzinfo)
            stats = self._ingest(
                session,
                result.records,
                context,
                log,
                calendar_id=calendar.id,
                refresh_existing=calendar.import_source in FEED_IMPORT_SOURCES,
            )

            calendar.last_run_at = started
            calendar.last_imported_at = started
            calendar.last_run_count = stats.processed
            calendar.import_error = None
            if calendar.is_ai_extraction:
                calendar.extraction_status = "completed"
            session.commit()

            log.info(
                f"Import complete: {stats.created} new, {stats.updated} updated, "
                f"{stats.duplicates} unchanged, {stats.rejected} rejected"
            )
            return RunResult(True, target, count=stats.processed, run_id=run_id, stats=stats)
        finally:
            session.close()

    def _record_calendar_crash(self, session: Session, calendar_id: int, error: Exception, started: datetime) -> None:
        session.rollback()
        calendar = session.get(Calendar, calendar_id)
        if calendar is None:
            return
        calendar.last_run_at = started
        calendar.import_error = f"{type(error).__name__}: {error}"
        if calendar.is_ai_extraction:
            calendar.extraction_status = "failed"
        session.commit()

    @staticmethod
    def _calendar_source_name(calendar: Calendar) -> str:
        if calendar.import_source == "google":
            return "google"
        if calendar.is_ai_extraction:
            return "firecrawl"
        return calendar.import_source or "ical"

    def _build_calendar_adapter(self, calendar: Calendar, session: Session) -> BaseSourceAdapter:
        source_id = f"calendar-{calendar.id}"
        kind = calendar.import_source

        if kind in ("ical", "apple") or (kind is None and calendar.import_url):
            return ICalAdapter(
                ICalAdapterConfig(
                    source_id=source_id,
                    source_type=SourceType.ICAL,
                    url=calendar.import_url or "",
                    source_name=self._calendar_source_name(calendar),
                )
            )

        if kind == "google":
            account = (
                session.query(ConnectedAccount)
                .filter(ConnectedAccount.owner_id == calendar.owner_id, ConnectedAccount.provider == "google")
                .first()
            )
            secret = self.settings.GOOGLE_CLIENT_SECRET
            return GoogleCalendarAdapter(
                GoogleCalendarAdapterConfig(
                    source_id=source_id,
                    source_type=SourceType.GOOGLE,
                    calendar_id=calendar.import_source_id,
                    import_source=kind,
                    client_id=self.settings.GOOGLE_CLIENT_ID,
                    client_secret=secret.get_secret_value() if secret else None,
                ),
                account=account,
            )

        if kind == "firecrawl":
            api_key = self.settings.FIRECRAWL_API_KEY
            return AIExtractAdapter(
                AIExtractAdapterConfig(
                    source_id=source_id,
                    source_type=SourceType.AI_EXTRACTION,
                    url=calendar.import_url or "",
                    prompt=calendar.extraction_prompt or "",
                    api_key=api_key.get_secret_value() if api_key else None,
                    api_url=self.settings.FIRECRAWL_API_URL,
                )
            )

        raise SourceConfigurationError(f"Calendar {calendar.id} has no importable source")

    # ------------------------------------------------------------------
    # AI extraction lifecycle
    # ------------------------------------------------------------------

    def create_extraction_calendar(self, url: str, prompt: str, owner_id: str, name: str | None = None) -> Calendar:
        """Create a calendar in ``pending`` state, ready for an extraction run."""
        session = self.session_factory()
        try:
            calendar = Calendar(
                owner_id=owner_id,
                name=name or f"Events from {urlparse(url).netloc or url}",
                import_source="firecrawl",
                import_url=url,
                extraction_prompt=prompt,
                extraction_status="pending",
            )
            session.add(calendar)
            session.commit()
            logger.info(f"Created extraction calendar {calendar.id} for {url}")
            return calendar
        finally:
            session.close()

    def extraction_progress(self, calendar_id: int) -> dict:
        """
        Status snapshot for polling clients.

        Raises:
            DescriptorNotFound: If the calendar does not exist
        """
        session = self.session_factory()
        try:
            calendar = session.get(Calendar, calendar_id)
            if calendar is None:
                raise DescriptorNotFound("Calendar", calendar_id)
            event_count = session.query(Event).filter(Event.calendar_id == calendar.id).count()
            return {
                "calendar_id": calendar.id,
                "status": calendar.extraction_status,
                "error": calendar.import_error,
                "event_count": event_count,
                "last_imported_at": calendar.last_imported_at.isoformat() if calendar.last_imported_at else None,
            }
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def _fetch(self, target: Any, session: Session, default_builder: AdapterBuilder) -> FetchResult:
        """Build the adapter and fetch, turning configuration errors into a failed result."""
        builder = self.adapter_builder or default_builder
        try:
            adapter = builder(target, session)
        except IngestionError as e:
            return FetchResult(
                success=False,
                source_type=SourceType.SCRAPER,
                error=str(e),
                retryable=e.retryable,
                needs_reconnect=isinstance(e, NeedsReconnectError),
            )
        with adapter:
            return adapter.fetch()

    def _ingest(
        self,
        session: Session,
        records: list[dict],
        context: SourceContext,
        log: RunLogger,
        calendar_id: int | None = None,
        calendar_name: str | None = None,
        calendar_color: str | None = None,
        refresh_existing: bool = False,
    ) -> RunStats:
        creation = EventCreationService(
            session,
            settings=self.settings,
            normalizer=self.normalizer,
            system_owner_id=self.system_owner_id,
        )
        stats = RunStats(fetched=len(records))
        log = log.for_stage("persist")

        for raw in records:
            outcome = self.normalizer.normalize(raw, context)
            if isinstance(outcome, NormalizationError):
                stats.rejected += 1
                log.info(f"Skipping record {outcome.raw_title or raw.get('title')!r}: {outcome.reason}")
                continue

            try:
                result = creation.create_from_draft(
                    outcome,
                    SourceKind.SCRAPER,
                    calendar_id=calendar_id,
                    refresh_existing=refresh_existing,
                    calendar_name=calendar_name,
                    calendar_color=calendar_color,
                )
            except Exception as e:
                session.rollback()
                stats.failed += 1
                log.error(f"Failed to persist '{outcome.title}': {e}")
                continue

            if not result.success:
                stats.failed += 1
                log.warning(f"Rejected '{outcome.title}': {', '.join(result.errors)}")
            elif result.updated:
                stats.updated += 1
            elif result.duplicate:
                stats.duplicates += 1
            else:
                stats.created += 1

        return stats

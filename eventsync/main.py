"""
eventsync.main.

FastAPI entrypoint for eventsync.

Responsibilities
----------------
• Event creation endpoint (source kind ``api``)
• AI extraction calendars: create from a URL, poll progress
• Public iCal feed export
• Health monitoring

Authentication is handled upstream; the caller's identity arrives in the
``X-Owner-Id`` header.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Generator

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from eventsync.configs.settings import get_settings
from eventsync.export.ical_export import build_calendar_feed
from eventsync.ingestion.creation import EventCreationService
from eventsync.ingestion.errors import CalendarNotFound, DescriptorNotFound
from eventsync.ingestion.orchestrator import IngestionCoordinator
from eventsync.ingestion.scheduler import JOB_CALENDAR, JobQueue, Scheduler, SyncJob
from eventsync.schemas.event import EventCreateRequest, SourceKind
from eventsync.storage.database import get_session_factory

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# APP INITIALIZATION
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Shut down the background job queue, if one was started."""
    yield

    scheduler: Scheduler | None = getattr(app.state, "scheduler", None)
    if scheduler is not None and isinstance(scheduler.queue, JobQueue):
        scheduler.queue.shutdown(wait=False)


app = FastAPI(
    title="eventsync API",
    version="1.0.0",
    description="Event ingestion, deduplication and calendar feeds.",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# DEPENDENCIES
# ---------------------------------------------------------------------------


def get_db() -> Generator[Session, None, None]:
    """
    Yield a database session for the request.

    Yields
    ------
    sqlalchemy.orm.Session
        Session closed after the request lifecycle.
    """
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


def get_scheduler(request: Request) -> Scheduler:
    """
    Return the app-wide scheduler, starting its worker pool on first use.

    Returns
    -------
    Scheduler
        Scheduler used to queue extraction jobs.
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        settings = get_settings()
        coordinator = IngestionCoordinator(get_session_factory(), settings)
        scheduler = Scheduler(coordinator, JobQueue(workers=settings.SCHEDULER_WORKERS), settings)
        request.app.state.scheduler = scheduler
    return scheduler


def require_owner(x_owner_id: str | None = Header(default=None)) -> str:
    if not x_owner_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Owner-Id header")
    return x_owner_id


# ---------------------------------------------------------------------------
# REQUEST / RESPONSE MODELS
# ---------------------------------------------------------------------------


class ExtractionCalendarRequest(BaseModel):
    """Create a calendar populated by AI extraction of a web page."""

    url: str
    prompt: str = Field(..., min_length=1)
    name: str | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must be a valid HTTP(S) URL")
        return v


class ExtractionStatus(BaseModel):
    """Extraction progress for polling clients."""

    calendar_id: int
    status: str | None
    error: str | None = None
    event_count: int = 0
    last_imported_at: str | None = None


# ---------------------------------------------------------------------------
# HEALTH ENDPOINT
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Monitoring"])
def health_check() -> dict[str, str]:
    """
    Check API health.

    Returns
    -------
    dict
        Service status indicator.
    """
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# EVENT ENDPOINTS
# ---------------------------------------------------------------------------


@app.post("/api/v1/events", tags=["Events"])
def create_event(
    payload: EventCreateRequest,
    response: Response,
    owner_id: str = Depends(require_owner),
    db: Session = Depends(get_db),
) -> dict:
    """
    Create an event through the shared creation entry point.

    Returns
    -------
    dict
        The created (201) or already-existing (200) event.

    Raises
    ------
    HTTPException
        422 when the event cannot be normalized or stored.
    """
    result = EventCreationService(db).create(payload, SourceKind.API, owner_id=owner_id)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail={"errors": result.errors})

    response.status_code = status.HTTP_200_OK if result.duplicate else status.HTTP_201_CREATED
    return {"event": result.event.to_dict(), "duplicate": result.duplicate}


# ---------------------------------------------------------------------------
# EXTRACTION ENDPOINTS
# ---------------------------------------------------------------------------


@app.post("/api/v1/calendars/from-url", status_code=status.HTTP_202_ACCEPTED, tags=["Calendars"])
def create_calendar_from_url(
    payload: ExtractionCalendarRequest,
    owner_id: str = Depends(require_owner),
    scheduler: Scheduler = Depends(get_scheduler),
) -> dict:
    """
    Create an AI extraction calendar and queue its first import.

    Returns
    -------
    dict
        The new calendar id and its initial status.
    """
    calendar = scheduler.coordinator.create_extraction_calendar(
        payload.url, payload.prompt, owner_id, name=payload.name
    )
    scheduler.enqueue(SyncJob(JOB_CALENDAR, calendar.id, adapter_kind="firecrawl"))
    return {"calendar_id": calendar.id, "name": calendar.name, "status": calendar.extraction_status}


@app.get("/api/v1/calendars/{calendar_id}/extraction", response_model=ExtractionStatus, tags=["Calendars"])
def get_extraction_status(calendar_id: int, scheduler: Scheduler = Depends(get_scheduler)) -> ExtractionStatus:
    """
    Poll extraction progress.

    Raises
    ------
    HTTPException
        404 when the calendar does not exist.
    """
    try:
        return ExtractionStatus(**scheduler.coordinator.extraction_progress(calendar_id))
    except DescriptorNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


# ---------------------------------------------------------------------------
# ICAL FEED
# ---------------------------------------------------------------------------


@app.get("/calendars/{token}.ics", tags=["Feeds"])
def calendar_feed(token: str, db: Session = Depends(get_db)) -> Response:
    """
    Serve a calendar as an iCal feed.

    Raises
    ------
    HTTPException
        404 when the token matches no calendar.
    """
    try:
        body = build_calendar_feed(db, token, tz=get_settings().tzinfo)
    except CalendarNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return Response(content=body, media_type="text/calendar")

"""
Google Calendar Source Adapter.

Lists events from a connected Google account within a bounded window
(30 days back, one year ahead), following page tokens. Expired access
tokens are refreshed first; authorization failures surface as
``NeedsReconnectError`` so the owner is asked to reconnect instead of the
scheduler retrying forever.
"""

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from eventsync.ingestion.errors import NeedsReconnectError, SourceConfigurationError, SourceFetchError
from eventsync.runtime.resilience import is_transient_status
from eventsync.storage.models import ConnectedAccount

from .base_adapter import AdapterConfig, BaseSourceAdapter, RawEventRecord, SourceType

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
READONLY_SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]
RECONNECT_MESSAGE = "Authorization expired. Please reconnect Google Calendar."

ServiceFactory = Callable[[Credentials], Any]


@dataclass
class GoogleCalendarAdapterConfig(AdapterConfig):
    """Configuration for Google Calendar imports."""

    calendar_id: str | None = None
    import_source: str | None = "google"
    source_name: str = "google"
    client_id: str | None = None
    client_secret: str | None = None
    lookback_days: int = 30
    lookahead_days: int = 365
    page_size: int = 250

    def __post_init__(self):
        """Set source type to Google."""
        self.source_type = SourceType.GOOGLE


def build_calendar_service(credentials: Credentials) -> Any:
    """Google Calendar v3 client for the given credentials."""
    return build("calendar", "v3", credentials=credentials, cache_discovery=False)


class GoogleCalendarAdapter(BaseSourceAdapter):
    """
    Adapter for the Google Calendar events API.

    Example:
        adapter = GoogleCalendarAdapter(config, account=account)
        result = adapter.fetch()
    """

    def __init__(
        self,
        config: GoogleCalendarAdapterConfig,
        account: ConnectedAccount | None,
        service_factory: ServiceFactory | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        super().__init__(config)
        self.account = account
        self.service_factory = service_factory or build_calendar_service
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._pages = 0

    @property
    def google_config(self) -> GoogleCalendarAdapterConfig:
        """Get typed config."""
        return self.config  # type: ignore[return-value]

    def _validate_config(self) -> None:
        if self.google_config.import_source != "google":
            raise SourceConfigurationError("Not a Google Calendar")
        if not self.google_config.calendar_id:
            raise SourceConfigurationError("No import_source_id configured")
        if self.account is None:
            raise SourceConfigurationError("No Google account connected")

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def _credentials(self) -> Credentials:
        account = self.account
        expiry = account.expires_at.astimezone(timezone.utc).replace(tzinfo=None) if account.expires_at else None
        credentials = Credentials(
            token=account.access_token,
            refresh_token=account.refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=self.google_config.client_id,
            client_secret=self.google_config.client_secret,
            scopes=READONLY_SCOPES,
            expiry=expiry,
        )
        if account.is_expired(self._now()):
            self._refresh(credentials)
        return credentials

    def _refresh(self, credentials: Credentials) -> None:
        if not self.account.refresh_token:
            raise NeedsReconnectError(RECONNECT_MESSAGE)
        try:
            credentials.refresh(Request())
        except RefreshError as e:
            logger.warning(f"Google token refresh failed for owner {self.account.owner_id}: {e}")
            raise NeedsReconnectError(RECONNECT_MESSAGE) from e

        self.account.access_token = credentials.token
        if credentials.expiry is not None:
            self.account.expires_at = credentials.expiry.replace(tzinfo=timezone.utc)
        logger.info(f"Refreshed Google access token for owner {self.account.owner_id}")

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def iter_records(self) -> Iterator[RawEventRecord]:
        service = self.service_factory(self._credentials())
        now = self._now()
        time_min = (now - timedelta(days=self.google_config.lookback_days)).isoformat()
        time_max = (now + timedelta(days=self.google_config.lookahead_days)).isoformat()

        page_token = None
        self._pages = 0
        while True:
            response = self._list_page(service, time_min, time_max, page_token)
            self._pages += 1
            for item in response.get("items", []):
                if item.get("status") == "cancelled":
                    continue
                yield self._to_record(item)
            page_token = response.get("nextPageToken")
            if not page_token:
                break

    def _list_page(self, service: Any, time_min: str, time_max: str, page_token: str | None) -> dict:
        try:
            return (
                service.events()
                .list(
                    calendarId=self.google_config.calendar_id,
                    timeMin=time_min,
                    timeMax=time_max,
                    singleEvents=True,
                    orderBy="startTime",
                    maxResults=self.google_config.page_size,
                    pageToken=page_token,
                )
                .execute()
            )
        except HttpError as e:
            status = int(getattr(e.resp, "status", 0) or 0)
            if status in (401, 403):
                raise NeedsReconnectError(RECONNECT_MESSAGE) from e
            raise SourceFetchError(
                f"Google Calendar API error: HTTP {status}",
                retryable=is_transient_status(status),
                status_code=status,
            ) from e
        except RefreshError as e:
            raise NeedsReconnectError(RECONNECT_MESSAGE) from e

    def _to_record(self, item: dict) -> RawEventRecord:
        start = item.get("start", {})
        end = item.get("end", {})
        all_day = "date" in start
        return {
            "title": item.get("summary") or "Untitled",
            "starts_at": start.get("date") if all_day else start.get("dateTime"),
            "ends_at": end.get("date") if all_day else end.get("dateTime"),
            "all_day": all_day,
            "location": item.get("location"),
            "description": item.get("description"),
            "source_name": self.google_config.source_name,
            "source_id": item.get("id"),
            "source_url": item.get("htmlLink"),
        }

    def fetch_metadata(self) -> dict:
        return {"pages_fetched": self._pages}

"""
iCal Source Adapter.

Fetches a remote iCalendar document (``webcal://`` or ``https://``) and
yields one raw record per VEVENT. Events that started more than 30 days
ago are skipped so a first import never backfills years of history.
"""

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

import httpx
import icalendar

from eventsync.ingestion.errors import SourceConfigurationError, SourceFetchError
from eventsync.runtime.resilience import is_transient_status

from .base_adapter import AdapterConfig, BaseSourceAdapter, RawEventRecord, SourceType

logger = logging.getLogger(__name__)

USER_AGENT = "eventsync/1.0"
DEFAULT_LOOKBACK_DAYS = 30


@dataclass
class ICalAdapterConfig(AdapterConfig):
    """Configuration for iCal feed imports."""

    url: str = ""
    source_name: str = "ical"
    lookback_days: int = DEFAULT_LOOKBACK_DAYS

    def __post_init__(self):
        """Set source type to iCal."""
        self.source_type = SourceType.ICAL


def normalize_feed_url(url: str) -> str:
    """Rewrite the webcal scheme to https."""
    url = url.strip()
    if url.lower().startswith("webcal://"):
        return "https://" + url[len("webcal://") :]
    return url


def _as_utc_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class ICalAdapter(BaseSourceAdapter):
    """
    Adapter for iCalendar feeds.

    Maps each VEVENT's UID to ``source_id`` so re-imports hit the
    authoritative dedup path.
    """

    def __init__(
        self,
        config: ICalAdapterConfig,
        client: httpx.Client | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the iCal adapter.

        Args:
            config: ICalAdapterConfig with the feed URL
            client: Optional preconfigured HTTP client
            now: Clock used for the lookback cutoff
        """
        super().__init__(config)
        self._client = client
        self._owns_client = client is None
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._skipped_past = 0

    @property
    def ical_config(self) -> ICalAdapterConfig:
        """Get typed config."""
        return self.config  # type: ignore[return-value]

    def _validate_config(self) -> None:
        if not self.ical_config.url:
            raise SourceConfigurationError("No import URL configured")

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                headers={"User-Agent": USER_AGENT},
                timeout=self.ical_config.request_timeout,
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def _download(self) -> bytes:
        url = normalize_feed_url(self.ical_config.url)
        try:
            response = self._get_client().get(
                url,
                headers={"User-Agent": USER_AGENT},
                timeout=self.ical_config.request_timeout,
                follow_redirects=True,
            )
        except httpx.TimeoutException as e:
            raise SourceFetchError(f"Failed to fetch iCal feed: timed out ({e})", retryable=True) from e
        except httpx.HTTPError as e:
            raise SourceFetchError(f"Failed to fetch iCal feed: {e}", retryable=True) from e

        if response.status_code >= 400:
            raise SourceFetchError(
                f"Failed to fetch iCal feed: HTTP {response.status_code}",
                retryable=is_transient_status(response.status_code),
                status_code=response.status_code,
            )
        return response.content

    def iter_records(self) -> Iterator[RawEventRecord]:
        body = self._download()
        try:
            calendar = icalendar.Calendar.from_ical(body)
        except ValueError as e:
            raise SourceFetchError(f"Invalid iCal format: {e}", retryable=False) from e

        cutoff = self._now() - timedelta(days=self.ical_config.lookback_days)
        self._skipped_past = 0

        for component in calendar.walk("VEVENT"):
            dtstart = component.get("DTSTART")
            if dtstart is None:
                continue
            if _as_utc_datetime(dtstart.dt) < cutoff:
                self._skipped_past += 1
                continue
            yield self._to_record(component, dtstart.dt)

    def _to_record(self, component: icalendar.Event, start: date | datetime) -> RawEventRecord:
        end = None
        if component.get("DTEND") is not None:
            end = component.get("DTEND").dt
        elif component.get("DURATION") is not None:
            end = start + component.get("DURATION").dt

        uid = component.get("UID")
        url = component.get("URL")
        return {
            "title": str(component.get("SUMMARY") or ""),
            "starts_at": start,
            "ends_at": end,
            "all_day": not isinstance(start, datetime),
            "location": str(component.get("LOCATION") or "") or None,
            "description": str(component.get("DESCRIPTION") or "") or None,
            "source_name": self.ical_config.source_name,
            "source_id": str(uid) if uid else None,
            "source_url": str(url) if url else self.ical_config.url,
        }

    def fetch_metadata(self) -> dict:
        return {"skipped_past_events": self._skipped_past}

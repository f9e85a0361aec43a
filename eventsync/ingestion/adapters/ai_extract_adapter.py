"""
AI Page-Extraction Source Adapter.

Sends a page URL and a natural-language request ("family events this
weekend") to a hosted extraction API that returns structured events
matching a JSON schema. The prompt is pinned to a concrete date window
inferred from the request so the model does not drift into past events.
"""

import json
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import date

import httpx

from eventsync.ingestion.errors import SourceConfigurationError, SourceFetchError
from eventsync.runtime.resilience import is_transient_status
from eventsync.schemas.event import EventType

from .base_adapter import AdapterConfig, BaseSourceAdapter, RawEventRecord, SourceType
from .prompt_dates import DateRange, resolve_date_range

logger = logging.getLogger(__name__)

DEFAULT_EXTRACTION_URL = "https://api.firecrawl.dev/v1/scrape"
PAGE_TIMEOUT_MS = 30000

EVENT_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "events": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "starts_at": {"type": "string", "description": "ISO 8601 datetime"},
                    "ends_at": {"type": "string", "description": "ISO 8601 datetime"},
                    "location": {"type": "string"},
                    "venue": {"type": "string"},
                    "description": {"type": "string"},
                    "event_type": {"type": "string", "enum": [t.value for t in EventType]},
                    "image_url": {"type": "string"},
                    "source_url": {"type": "string"},
                },
                "required": ["title", "starts_at"],
            },
        }
    },
    "required": ["events"],
}


@dataclass
class AIExtractAdapterConfig(AdapterConfig):
    """Configuration for AI page extraction."""

    url: str = ""
    prompt: str = ""
    api_key: str | None = None
    api_url: str = DEFAULT_EXTRACTION_URL
    source_name: str = "firecrawl"
    request_timeout: float = 60.0

    def __post_init__(self):
        """Set source type to AI extraction."""
        self.source_type = SourceType.AI_EXTRACTION


def _format_day(day: date) -> str:
    return f"{day:%B} {day.day}, {day.year}"


def build_extraction_prompt(user_prompt: str, today: date, date_range: DateRange) -> str:
    """Instruction text sent alongside the JSON schema."""
    return (
        f"Today is {today:%A}, {_format_day(today)}. "
        f"Extract all events from this webpage that match: {user_prompt}. "
        f"Only include events occurring between {_format_day(date_range.start)} "
        f"and {_format_day(date_range.end)} (inclusive). "
        "For each event, extract the title, start date/time in ISO 8601 format, "
        "end date/time if available, location, venue name, a brief description (1-2 sentences), "
        f"and categorize as: {', '.join(t.value for t in EventType)}. "
        f"If the year is not specified, assume {today.year}. "
        "Skip any events outside the date range."
    )


class AIExtractAdapter(BaseSourceAdapter):
    """
    Adapter for the hosted page-extraction API.

    Every returned record still passes through the Normalizer, so the
    model's output is never trusted beyond the JSON schema.
    """

    def __init__(
        self,
        config: AIExtractAdapterConfig,
        client: httpx.Client | None = None,
        today: Callable[[], date] | None = None,
    ):
        super().__init__(config)
        self._client = client
        self._owns_client = client is None
        self._today = today or date.today
        self.date_range: DateRange | None = None

    @property
    def extract_config(self) -> AIExtractAdapterConfig:
        """Get typed config."""
        return self.config  # type: ignore[return-value]

    def _validate_config(self) -> None:
        if not self.extract_config.url:
            raise SourceConfigurationError("No import URL configured")
        if not self.extract_config.prompt:
            raise SourceConfigurationError("No extraction prompt configured")
        if not self.extract_config.api_key:
            raise SourceConfigurationError("FIRECRAWL_API_KEY not set")

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.extract_config.request_timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def request_body(self) -> dict:
        today = self._today()
        self.date_range = resolve_date_range(self.extract_config.prompt, today)
        return {
            "url": self.extract_config.url,
            "formats": ["extract"],
            "onlyMainContent": True,
            "extract": {
                "prompt": build_extraction_prompt(self.extract_config.prompt, today, self.date_range),
                "schema": EVENT_SCHEMA,
            },
            "timeout": PAGE_TIMEOUT_MS,
        }

    def iter_records(self) -> Iterator[RawEventRecord]:
        try:
            response = self._get_client().post(
                self.extract_config.api_url,
                headers={
                    "Authorization": f"Bearer {self.extract_config.api_key}",
                    "Content-Type": "application/json",
                },
                json=self.request_body(),
                timeout=self.extract_config.request_timeout,
            )
        except httpx.HTTPError as e:
            raise SourceFetchError(f"Request failed: {e}", retryable=True) from e

        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            if not response.is_success:
                raise SourceFetchError(
                    f"HTTP {response.status_code}",
                    retryable=is_transient_status(response.status_code),
                    status_code=response.status_code,
                ) from e
            raise SourceFetchError(f"Failed to parse response: {e}", retryable=False) from e

        if not response.is_success:
            message = payload.get("error") if isinstance(payload, dict) else None
            raise SourceFetchError(
                message or f"HTTP {response.status_code}",
                retryable=is_transient_status(response.status_code),
                status_code=response.status_code,
            )

        if not isinstance(payload, dict) or not payload.get("success"):
            message = payload.get("error") if isinstance(payload, dict) else None
            raise SourceFetchError(message or "Extraction failed", retryable=False)

        events = ((payload.get("data") or {}).get("extract") or {}).get("events") or []
        for item in events:
            if not isinstance(item, dict):
                continue
            yield {
                **item,
                "source_name": self.extract_config.source_name,
                "source_url": item.get("source_url") or self.extract_config.url,
            }

    def fetch_metadata(self) -> dict:
        if self.date_range is None:
            return {}
        return {"date_from": self.date_range.start.isoformat(), "date_to": self.date_range.end.isoformat()}

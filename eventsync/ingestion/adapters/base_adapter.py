"""
Base Source Adapter.

Abstract base class defining the interface for all source adapters.
Adapters yield raw event records lazily and never let exceptions escape
``fetch``: every failure is folded into the returned ``FetchResult``.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx
import requests

from eventsync.ingestion.errors import IngestionError, NeedsReconnectError, SourceFetchError

RawEventRecord = dict[str, Any]


class SourceType(str, Enum):
    """Kind of upstream source."""

    ICAL = "ical"
    GOOGLE = "google"
    SCRAPER = "scraper"
    AI_EXTRACTION = "firecrawl"


@dataclass
class FetchResult:
    """
    Result of a data fetch operation.

    ``retryable`` only matters when ``success`` is False: it separates
    transient upstream trouble from failures that will not fix themselves.
    """

    success: bool
    source_type: SourceType
    records: list[RawEventRecord] = field(default_factory=list)
    error: str | None = None
    retryable: bool = False
    needs_reconnect: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    fetch_started_at: datetime | None = None
    fetch_ended_at: datetime | None = None

    @property
    def total_fetched(self) -> int:
        return len(self.records)

    @property
    def duration_seconds(self) -> float:
        """Calculate fetch duration."""
        if self.fetch_started_at and self.fetch_ended_at:
            return (self.fetch_ended_at - self.fetch_started_at).total_seconds()
        return 0.0


@dataclass
class AdapterConfig:
    """
    Base configuration for source adapters.

    Extended by specific adapter types.
    """

    source_id: str
    source_type: SourceType
    request_timeout: float = 30.0
    custom_config: dict[str, Any] = field(default_factory=dict)


class BaseSourceAdapter(ABC):
    """
    Abstract base class for source adapters.

    Subclasses must implement:
        - iter_records(): Lazily yield raw event records, raising
          IngestionError subclasses on failure
        - _validate_config(): Validate adapter-specific configuration
    """

    def __init__(self, config: AdapterConfig):
        """
        Initialize the adapter.

        Args:
            config: AdapterConfig with source-specific settings
        """
        self.config = config
        self.logger = logging.getLogger(f"eventsync.adapter.{config.source_id}")

    @property
    def source_type(self) -> SourceType:
        return self.config.source_type

    @property
    def source_id(self) -> str:
        return self.config.source_id

    @abstractmethod
    def iter_records(self) -> Iterator[RawEventRecord]:
        """
        Yield raw records from the source.

        Raises:
            IngestionError: On any source-level failure
        """

    @abstractmethod
    def _validate_config(self) -> None:
        """
        Validate adapter-specific configuration.

        Raises:
            SourceConfigurationError: If configuration is invalid
        """

    def fetch(self) -> FetchResult:
        """
        Collect every record from the source.

        Returns:
            FetchResult; on failure ``records`` holds nothing and ``error``
            describes what went wrong
        """
        started = datetime.now(timezone.utc)
        records: list[RawEventRecord] = []
        try:
            self._validate_config()
            for record in self.iter_records():
                records.append(record)
        except IngestionError as e:
            self.logger.error(f"Fetch failed: {e}")
            return self._failure(e, started)
        except (httpx.HTTPError, requests.RequestException) as e:
            self.logger.error(f"Fetch failed: {e}")
            return self._failure(SourceFetchError(f"Request failed: {e}", retryable=True), started)
        except Exception as e:
            self.logger.error(f"Unexpected fetch failure: {e}", exc_info=True)
            return self._failure(SourceFetchError(f"{type(e).__name__}: {e}", retryable=True), started)

        self.logger.info(f"Fetched {len(records)} records")
        return FetchResult(
            success=True,
            source_type=self.source_type,
            records=records,
            metadata=self.fetch_metadata(),
            fetch_started_at=started,
            fetch_ended_at=datetime.now(timezone.utc),
        )

    def fetch_metadata(self) -> dict[str, Any]:
        """Extra details for a successful fetch. Override as needed."""
        return {}

    def _failure(self, error: IngestionError, started: datetime) -> FetchResult:
        return FetchResult(
            success=False,
            source_type=self.source_type,
            error=str(error),
            retryable=error.retryable,
            needs_reconnect=isinstance(error, NeedsReconnectError),
            fetch_started_at=started,
            fetch_ended_at=datetime.now(timezone.utc),
        )

    def close(self) -> None:
        """
        Release any resources held by the adapter.

        Override in subclasses that hold clients or sessions.
        """

    def __enter__(self) -> "BaseSourceAdapter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

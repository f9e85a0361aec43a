"""
Source Adapters for Event Ingestion.

Adapters provide a unified interface for fetching raw event records from
different source types:
- iCal feeds
- Google Calendar
- HTML scrapers (selector-driven or site-specific)
- AI page extraction

Usage:
    from eventsync.ingestion.adapters import ICalAdapter, ICalAdapterConfig

    adapter = ICalAdapter(ICalAdapterConfig(source_id="cal-1", source_type=SourceType.ICAL, url=url))
    result = adapter.fetch()
"""

from .ai_extract_adapter import AIExtractAdapter, AIExtractAdapterConfig
from .base_adapter import AdapterConfig, BaseSourceAdapter, FetchResult, RawEventRecord, SourceType
from .google_adapter import GoogleCalendarAdapter, GoogleCalendarAdapterConfig
from .ical_adapter import ICalAdapter, ICalAdapterConfig
from .registry import SCRAPER_REGISTRY, list_scrapers, register_scraper, resolve_adapter
from .scraper_adapter import ConfigurableScraperAdapter, ScraperAdapterConfig

from . import custom  # noqa: E402,F401  registers site-specific scrapers

__all__ = [
    "AIExtractAdapter",
    "AIExtractAdapterConfig",
    "AdapterConfig",
    "BaseSourceAdapter",
    "ConfigurableScraperAdapter",
    "FetchResult",
    "GoogleCalendarAdapter",
    "GoogleCalendarAdapterConfig",
    "ICalAdapter",
    "ICalAdapterConfig",
    "RawEventRecord",
    "SCRAPER_REGISTRY",
    "ScraperAdapterConfig",
    "SourceType",
    "list_scrapers",
    "register_scraper",
    "resolve_adapter",
]

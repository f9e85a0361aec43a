"""
Scraper registry.

Source descriptors reference a scraper either by name (``CustomAdapter``)
or by selectors (``ConfigurableAdapter``). Named scrapers are registered
here at import time with ``@register_scraper``; resolution is a plain
dictionary lookup.
"""

from collections.abc import Callable

from eventsync.ingestion.errors import SourceConfigurationError
from eventsync.runtime.http import PageFetcher
from eventsync.schemas.source import ConfigurableAdapter, CustomAdapter

from .scraper_adapter import ConfigurableScraperAdapter, ScraperAdapterConfig

SCRAPER_REGISTRY: dict[str, type[ConfigurableScraperAdapter]] = {}


def register_scraper(name: str) -> Callable[[type[ConfigurableScraperAdapter]], type[ConfigurableScraperAdapter]]:
    """
    Decorate a scraper class to register it under ``name``.

    Usage:
        @register_scraper("do512")
        class Do512Scraper(ConfigurableScraperAdapter):
            ...
    """

    def decorator(cls: type[ConfigurableScraperAdapter]) -> type[ConfigurableScraperAdapter]:
        SCRAPER_REGISTRY[name.lower()] = cls
        return cls

    return decorator


def list_scrapers() -> list[str]:
    return sorted(SCRAPER_REGISTRY)


def resolve_adapter(
    ref: CustomAdapter | ConfigurableAdapter,
    config: ScraperAdapterConfig,
    fetcher: PageFetcher | None = None,
) -> ConfigurableScraperAdapter:
    """
    Build the adapter a source descriptor points at.

    Raises:
        SourceConfigurationError: If a custom scraper name is not registered
    """
    if isinstance(ref, CustomAdapter):
        scraper_cls = SCRAPER_REGISTRY.get(ref.name.lower())
        if scraper_cls is None:
            raise SourceConfigurationError(f"Unknown scraper: {ref.name}")
        return scraper_cls(config, fetcher=fetcher)

    config.selectors = ref.selectors
    return ConfigurableScraperAdapter(config, fetcher=fetcher)

"""
Scraper Source Adapter.

Generic, selector-driven HTML scraper. It fetches a listing page, collects
event detail links matching a pattern, then visits each detail page in
turn (with a randomized pause between requests) and pulls fields out with
configurable CSS selectors.

Field fallback order on detail pages:
- datetime: JSON-LD startDate, selector [datetime], any [datetime],
  selector text, event meta tags
- venue/location: JSON-LD location, selector, Google Maps link
- image: og:image meta, JSON-LD image, selector src/content/data-src
"""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from eventsync.ingestion.errors import SourceConfigurationError, SourceFetchError
from eventsync.runtime.http import PageFetcher, PageFetcherOptions
from eventsync.runtime.resilience import PoliteDelay
from eventsync.schemas.source import ScraperSelectors

from .base_adapter import AdapterConfig, BaseSourceAdapter, RawEventRecord, SourceType
from .html_parsing import (
    all_matches,
    collapse_ws,
    first_match,
    json_ld_event,
    json_ld_image,
    json_ld_location,
    make_soup,
    meta_content,
    text_of,
)

logger = logging.getLogger(__name__)

MAX_EVENT_LINKS = 50
MAX_DESCRIPTION_LENGTH = 1000
DESCRIPTION_BLOCKS = 3
START_TIME_META = 'meta[property="event:start_time"], meta[itemprop="startDate"]'
MAPS_LINK = 'a[href*="maps.google"], a[href*="google.com/maps"], a[href*="goo.gl/maps"]'


@dataclass
class ScraperAdapterConfig(AdapterConfig):
    """Configuration for HTML scraper adapters."""

    base_url: str = ""
    list_path: str | None = None
    source_name: str = ""
    selectors: ScraperSelectors = field(default_factory=ScraperSelectors)
    max_links: int = MAX_EVENT_LINKS
    min_delay_s: float = 0.5
    max_delay_s: float = 1.5

    def __post_init__(self):
        """Set source type to scraper."""
        self.source_type = SourceType.SCRAPER


class ConfigurableScraperAdapter(BaseSourceAdapter):
    """
    Adapter for websites described by CSS selectors.

    Custom scrapers subclass this and override the ``extract_*`` hooks
    that need site-specific logic.
    """

    DEFAULT_LIST_PATH = "/"
    MAX_LINKS: int | None = None

    def __init__(self, config: ScraperAdapterConfig, fetcher: PageFetcher | None = None):
        """
        Initialize the scraper adapter.

        Args:
            config: ScraperAdapterConfig with site URL and selectors
            fetcher: Optional page fetcher (shared session, test double)
        """
        super().__init__(config)
        self._fetcher = fetcher
        self._owns_fetcher = fetcher is None
        self._links_found = 0
        self._pages_attempted = 0
        self._pages_failed = 0

    @property
    def scraper_config(self) -> ScraperAdapterConfig:
        """Get typed config."""
        return self.config  # type: ignore[return-value]

    @property
    def selectors(self) -> ScraperSelectors:
        return self.scraper_config.selectors

    @property
    def fetcher(self) -> PageFetcher:
        if self._fetcher is None:
            self._fetcher = PageFetcher(options=PageFetcherOptions(timeout_s=self.scraper_config.request_timeout))
        return self._fetcher

    @property
    def list_url(self) -> str:
        return self.full_url(self.scraper_config.list_path or self.DEFAULT_LIST_PATH)

    @property
    def link_cap(self) -> int:
        if self.MAX_LINKS is not None:
            return min(self.MAX_LINKS, self.scraper_config.max_links)
        return self.scraper_config.max_links

    def _validate_config(self) -> None:
        if not self.scraper_config.base_url.startswith(("http://", "https://")):
            raise SourceConfigurationError("Scraper base_url must be an HTTP(S) URL")
        try:
            re.compile(self.selectors.event_link_pattern)
        except re.error as e:
            raise SourceConfigurationError(f"Invalid event link pattern: {e}") from e

    def close(self) -> None:
        if self._fetcher is not None and self._owns_fetcher:
            self._fetcher.close()
            self._fetcher = None

    def full_url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return urljoin(self.scraper_config.base_url.rstrip("/") + "/", path.lstrip("/"))

    # ------------------------------------------------------------------
    # Crawl
    # ------------------------------------------------------------------

    def iter_records(self) -> Iterator[RawEventRecord]:
        listing = make_soup(self.fetcher.get(self.list_url))
        links = self.extract_event_links(listing)
        self._links_found = len(links)
        self.logger.info(f"Found {len(links)} event links on {self.list_url}")

        delay = PoliteDelay(self.scraper_config.min_delay_s, self.scraper_config.max_delay_s)
        for url in links:
            delay.wait()
            record = self.scrape_event_page(url)
            if record is not None:
                yield record

    def extract_event_links(self, soup: BeautifulSoup) -> list[str]:
        """Unique absolute detail-page URLs, in page order, capped."""
        pattern = re.compile(self.selectors.event_link_pattern)
        links: list[str] = []
        for anchor in all_matches(soup, self.selectors.event_links):
            href = anchor.get("href")
            if not href or not pattern.search(href):
                continue
            url = self.full_url(href)
            if url not in links:
                links.append(url)
        return links[: self.link_cap]

    def scrape_event_page(self, url: str) -> RawEventRecord | None:
        """Fetch and parse one detail page; failures skip the page only."""
        self._pages_attempted += 1
        try:
            soup = make_soup(self.fetcher.get(url))
        except SourceFetchError as e:
            self._pages_failed += 1
            self.logger.warning(f"Skipping {url}: {e}")
            return None
        return self.parse_event_page(soup, url)

    def structured_data(self, soup: BeautifulSoup) -> dict:
        """Embedded metadata the extract_* hooks may read from."""
        return json_ld_event(soup) or {}

    def parse_event_page(self, soup: BeautifulSoup, url: str) -> RawEventRecord | None:
        structured = self.structured_data(soup)
        title = self.extract_title(soup, structured)
        if not title:
            self.logger.debug(f"No title found on {url}")
            return None

        return {
            "title": title,
            "starts_at": self.extract_datetime(soup, structured),
            "ends_at": structured.get("endDate"),
            "venue": self.extract_venue(soup, structured),
            "location": self.extract_location(soup, structured),
            "description": self.extract_description(soup, structured),
            "image_url": self.extract_image(soup, structured, url),
            "source_name": self.scraper_config.source_name,
            "source_url": url,
        }

    # ------------------------------------------------------------------
    # Field extraction hooks
    # ------------------------------------------------------------------

    def extract_title(self, soup: BeautifulSoup, structured: dict) -> str:
        title = text_of(first_match(soup, self.selectors.title))
        if not title and structured.get("name"):
            title = collapse_ws(str(structured["name"]))
        return title

    def extract_datetime(self, soup: BeautifulSoup, structured: dict) -> str | None:
        if structured.get("startDate"):
            return str(structured["startDate"])

        node = first_match(soup, self.selectors.datetime)
        if node is not None and node.get("datetime"):
            return str(node["datetime"])

        any_datetime = first_match(soup, "[datetime]")
        if any_datetime is not None and any_datetime.get("datetime"):
            return str(any_datetime["datetime"])

        if node is not None and text_of(node):
            return text_of(node)

        return meta_content(soup, START_TIME_META)

    def extract_venue(self, soup: BeautifulSoup, structured: dict) -> str | None:
        venue, _ = json_ld_location(structured)
        return venue or text_of(first_match(soup, self.selectors.venue)) or None

    def extract_location(self, soup: BeautifulSoup, structured: dict) -> str | None:
        _, address = json_ld_location(structured)
        if address:
            return address

        location = text_of(first_match(soup, self.selectors.location))
        if location:
            return location

        maps_link = first_match(soup, MAPS_LINK)
        if maps_link is not None:
            return text_of(maps_link) or maps_link.get("aria-label") or None
        return None

    def extract_description(self, soup: BeautifulSoup, structured: dict) -> str | None:
        blocks = [text_of(node) for node in all_matches(soup, self.selectors.description)]
        blocks = [b for b in blocks if b][:DESCRIPTION_BLOCKS]
        description = "\n\n".join(blocks)
        if not description and structured.get("description"):
            description = str(structured["description"]).strip()
        if not description:
            description = meta_content(soup, 'meta[name="description"]') or ""
        return description[:MAX_DESCRIPTION_LENGTH] or None

    def extract_image(self, soup: BeautifulSoup, structured: dict, page_url: str) -> str | None:
        image = meta_content(soup, 'meta[property="og:image"]') or json_ld_image(structured)
        if not image:
            node = first_match(soup, self.selectors.image)
            if node is not None:
                image = node.get("src") or node.get("content") or node.get("data-src")
        return urljoin(page_url, str(image)) if image else None

    def fetch_metadata(self) -> dict:
        return {
            "links_found": self._links_found,
            "pages_attempted": self._pages_attempted,
            "pages_failed": self._pages_failed,
        }

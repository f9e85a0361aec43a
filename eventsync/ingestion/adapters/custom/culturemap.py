"""CultureMap Austin event listings."""

import re
from collections.abc import Callable, Iterator
from datetime import date, timedelta

from bs4 import BeautifulSoup, Tag

from eventsync.ingestion.adapters.base_adapter import RawEventRecord
from eventsync.ingestion.adapters.html_parsing import (
    all_matches,
    collapse_ws,
    first_json_ld,
    first_match,
    json_ld_image,
    make_soup,
    meta_content,
    text_of,
)
from eventsync.ingestion.adapters.registry import register_scraper
from eventsync.ingestion.adapters.scraper_adapter import ConfigurableScraperAdapter, ScraperAdapterConfig
from eventsync.ingestion.errors import SourceFetchError
from eventsync.runtime.http import PageFetcher
from eventsync.runtime.resilience import PoliteDelay
from eventsync.schemas.source import ScraperSelectors

DEFAULT_CITY = "Austin, TX"
DAYS_AHEAD = 7

OCCURRENCE = re.compile(r"^occurrence(\d{8})(\d{4})")
DATE_TAG = re.compile(r"^\d{8}$")
STREET_ADDRESS = re.compile(r"(\d+\s+[\w\s]+,\s*[\w\s]+,\s*[A-Z]{2}\s*\d{5}[\w\s,-]*)", re.IGNORECASE)
LONG_NUMBER = re.compile(r"\d{4,}")
NEWSLETTER = re.compile(r"subscribe|email|newsletter", re.IGNORECASE)
WHERE_LABEL = re.compile("WHERE")


def _tag(day: date) -> str:
    return day.strftime("%Y%m%d")


def _iso(tag: str, hhmm: str = "1200") -> str:
    return f"{tag[:4]}-{tag[4:6]}-{tag[6:]}T{hhmm[:2]}:{hhmm[2:]}"


def start_from_keywords(keywords: list, listing_day: date | None = None) -> str | None:
    """
    Local start time encoded in CultureMap article keywords.

    Occurrences look like ``occurrence202503081930``; bare ``20250308``
    tags mark the days an event is listed on and fall back to noon.
    """
    if isinstance(keywords, str):
        keywords = keywords.split(",")
    keywords = [str(k).strip() for k in keywords or []]
    occurrences = [m for m in map(OCCURRENCE.match, keywords) if m]

    if listing_day is not None:
        for match in occurrences:
            if match.group(1) == _tag(listing_day):
                return _iso(match.group(1), match.group(2))
    if occurrences:
        return _iso(occurrences[0].group(1), occurrences[0].group(2))

    if listing_day is not None and _tag(listing_day) in keywords:
        return _iso(_tag(listing_day))
    first_day = next((k for k in keywords if DATE_TAG.match(k)), None)
    return _iso(first_day) if first_day else None


@register_scraper("culturemap")
class CulturemapScraper(ConfigurableScraperAdapter):
    """
    Scraper for austin.culturemap.com.

    CultureMap has no weekly listing, so each of the next eight days is
    fetched as its own tag page. Detail pages are articles whose JSON-LD
    carries the headline and, in its keywords, the occurrence times.
    """

    DEFAULT_LIST_PATH = "/events"

    def __init__(
        self,
        config: ScraperAdapterConfig,
        fetcher: PageFetcher | None = None,
        today: Callable[[], date] | None = None,
    ):
        super().__init__(config, fetcher=fetcher)
        self._today = today or date.today
        self._listing_day: date | None = None

    @property
    def selectors(self) -> ScraperSelectors:
        return ScraperSelectors(event_links='a[href*="/eventdetail/"]', event_link_pattern="/eventdetail/")

    def day_url(self, day: date) -> str:
        return f"{self.list_url}?tags={_tag(day)}&time=custom"

    def iter_records(self) -> Iterator[RawEventRecord]:
        today = self._today()
        delay = PoliteDelay(self.scraper_config.min_delay_s, self.scraper_config.max_delay_s)
        seen: set[str] = set()
        failed_days = 0

        for offset in range(DAYS_AHEAD + 1):
            day = today + timedelta(days=offset)
            try:
                listing = make_soup(self.fetcher.get(self.day_url(day)))
            except SourceFetchError as e:
                failed_days += 1
                self.logger.warning(f"Skipping listing for {day}: {e}")
                if failed_days == DAYS_AHEAD + 1:
                    raise
                continue

            links = [url for url in self.extract_event_links(listing) if url not in seen]
            seen.update(links)
            self._links_found += len(links)
            self.logger.info(f"Found {len(links)} new event links for {day}")

            self._listing_day = day
            for url in links:
                delay.wait()
                record = self.scrape_event_page(url)
                if record is not None:
                    yield record

    def structured_data(self, soup: BeautifulSoup) -> dict:
        return first_json_ld(soup) or {}

    def extract_title(self, soup: BeautifulSoup, structured: dict) -> str:
        if structured.get("headline"):
            return collapse_ws(str(structured["headline"]))
        return text_of(first_match(soup, "h1"))

    def extract_datetime(self, soup: BeautifulSoup, structured: dict) -> str | None:
        return start_from_keywords(structured.get("keywords"), self._listing_day)

    def extract_venue(self, soup: BeautifulSoup, structured: dict) -> str | None:
        for node in all_matches(soup, "article div, div.venue"):
            text = text_of(node)
            if not 3 <= len(text) <= 100 or "WHERE" in text:
                continue
            if "," in text and LONG_NUMBER.search(text):
                continue
            if "venue" in (node.get("class") or []) or self._labelled_where(node):
                lines = [line.strip() for line in node.get_text("\n").split("\n") if line.strip()]
                return lines[0] if lines else None
        return None

    @staticmethod
    def _labelled_where(node: Tag) -> bool:
        label = node.find_previous_sibling()
        if label is not None and "WHERE" in text_of(label):
            return True
        parent = node.parent
        return parent is not None and parent.find(string=WHERE_LABEL, recursive=False) is not None

    def extract_location(self, soup: BeautifulSoup, structured: dict) -> str | None:
        for node in all_matches(soup, "article div, div"):
            # Innermost blocks only
            if node.find("div") is not None:
                continue
            match = STREET_ADDRESS.search(text_of(node))
            if match:
                return match.group(1).strip()

        venue = self.extract_venue(soup, structured)
        return f"{venue}, {DEFAULT_CITY}" if venue else DEFAULT_CITY

    def extract_description(self, soup: BeautifulSoup, structured: dict) -> str | None:
        if structured.get("description"):
            return str(structured["description"]).strip()
        for text in map(text_of, all_matches(soup, "article p")):
            if not 50 < len(text) < 2000 or "©" in text or NEWSLETTER.search(text):
                continue
            return text
        return None

    def extract_image(self, soup: BeautifulSoup, structured: dict, page_url: str) -> str | None:
        image = json_ld_image(structured) or meta_content(soup, 'meta[property="og:image"]')
        if image:
            return image
        node = first_match(soup, 'article img[src*="cloudinary"], article img[src*="culturemap"]')
        return str(node["src"]) if node is not None and node.get("src") else None

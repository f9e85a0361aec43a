"""Austin Chronicle event calendar."""

from bs4 import BeautifulSoup

from eventsync.ingestion.adapters.base_adapter import RawEventRecord
from eventsync.ingestion.adapters.html_parsing import (
    all_matches,
    collapse_ws,
    first_match,
    json_ld_image,
    json_ld_location,
    meta_content,
    text_of,
)
from eventsync.ingestion.adapters.registry import register_scraper
from eventsync.ingestion.adapters.scraper_adapter import ConfigurableScraperAdapter
from eventsync.schemas.source import ScraperSelectors

DEFAULT_CITY = "Austin, TX"

TITLE = "h1.event-title, h1.title, .event-name h1, .event-header h1"
DATE_TEXT = ".event-date, .date, .when, .event-time"
VENUE = ".venue-name, .event-venue, .location-name"
ADDRESS = ".venue-address, .event-address, .location-address"
DESCRIPTION = ".event-description, .event-body, .description, .event-content"
PARAGRAPHS = "article p, .event-details p, .content p"
IMAGE = ".event-image img, article img, .event-photo img"


@register_scraper("austin_chronicle")
class AustinChronicleScraper(ConfigurableScraperAdapter):
    """
    Scraper for austinchronicle.com.

    The events page on www links out to detail pages on the calendar
    subdomain, which usually embed a schema.org Event; markup is the
    fallback for every field. Pages without a start time are skipped.
    """

    DEFAULT_LIST_PATH = "/events/"
    MAX_LINKS = 30

    @property
    def selectors(self) -> ScraperSelectors:
        return ScraperSelectors(
            event_links='a[href*="calendar.austinchronicle.com/event/"]',
            event_link_pattern=r"calendar\.austinchronicle\.com/event/",
        )

    def parse_event_page(self, soup: BeautifulSoup, url: str) -> RawEventRecord | None:
        record = super().parse_event_page(soup, url)
        if record is not None and not record["starts_at"]:
            self.logger.debug(f"No start time found on {url}")
            return None
        return record

    def extract_title(self, soup: BeautifulSoup, structured: dict) -> str:
        if structured.get("name"):
            return collapse_ws(str(structured["name"]))
        return text_of(first_match(soup, TITLE)) or text_of(first_match(soup, "h1"))

    def extract_datetime(self, soup: BeautifulSoup, structured: dict) -> str | None:
        if structured.get("startDate"):
            return str(structured["startDate"])

        start = meta_content(soup, 'meta[itemprop="startDate"]')
        if start:
            return start

        node = first_match(soup, "time[datetime]")
        if node is not None and node.get("datetime"):
            return str(node["datetime"])

        return next((text_of(el) for el in all_matches(soup, DATE_TEXT) if text_of(el)), None)

    def extract_venue(self, soup: BeautifulSoup, structured: dict) -> str | None:
        venue, _ = json_ld_location(structured)
        return venue or text_of(first_match(soup, VENUE)) or text_of(first_match(soup, 'a[href*="/location/"]')) or None

    def extract_location(self, soup: BeautifulSoup, structured: dict) -> str | None:
        _, address = json_ld_location(structured)
        if address:
            return address

        address = text_of(first_match(soup, ADDRESS))
        if address:
            return address

        venue = self.extract_venue(soup, structured)
        return f"{venue}, {DEFAULT_CITY}" if venue else DEFAULT_CITY

    def extract_description(self, soup: BeautifulSoup, structured: dict) -> str | None:
        if structured.get("description"):
            return str(structured["description"]).strip()

        description = text_of(first_match(soup, DESCRIPTION))
        if description:
            return description

        return next((text for text in map(text_of, all_matches(soup, PARAGRAPHS)) if 50 < len(text) < 2000), None)

    def extract_image(self, soup: BeautifulSoup, structured: dict, page_url: str) -> str | None:
        image = json_ld_image(structured) or meta_content(soup, 'meta[property="og:image"]')
        if image:
            return image
        node = first_match(soup, IMAGE)
        return str(node["src"]) if node is not None and node.get("src") else None

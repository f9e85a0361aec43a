"""Do512 (Austin) event listings."""

import re
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup

from eventsync.ingestion.adapters.html_parsing import all_matches, collapse_ws, first_match, meta_content, text_of
from eventsync.ingestion.adapters.registry import register_scraper
from eventsync.ingestion.adapters.scraper_adapter import ConfigurableScraperAdapter
from eventsync.schemas.source import ScraperSelectors

EVENT_PATH = re.compile(r"/events/\d{4}/\d{1,2}/\d{1,2}/")
TIME_TEXT = re.compile(r"^\d{1,2}:\d{2}\s*(AM|PM)$", re.IGNORECASE)
DATE_TEXT = re.compile(r"(\w+)\s+(\w+)\s+(\d{1,2})")
DEFAULT_CITY = "Austin, TX"


@register_scraper("do512")
class Do512Scraper(ConfigurableScraperAdapter):
    """
    Scraper for do512.com.

    Detail links are dated paths (/events/2025/3/8/slug); venues link to
    /venues/ pages and addresses hide in Google Maps ``?q=`` parameters.
    """

    DEFAULT_LIST_PATH = "/events/week"
    MAX_LINKS = 30

    @property
    def selectors(self) -> ScraperSelectors:
        return ScraperSelectors(event_links='a[href*="/events/"]', event_link_pattern=EVENT_PATH.pattern)

    def extract_title(self, soup: BeautifulSoup, structured: dict) -> str:
        heading = first_match(soup, "h1")
        if heading is None:
            return ""
        title = text_of(heading)
        presenter = heading.find_previous_sibling()
        if presenter is not None and re.search(r"present", text_of(presenter), re.IGNORECASE):
            title = f"{text_of(presenter)} {title}"
        return collapse_ws(title)

    def extract_datetime(self, soup: BeautifulSoup, structured: dict) -> str | None:
        node = first_match(soup, "[datetime], time[datetime]")
        if node is not None and node.get("datetime"):
            return str(node["datetime"])

        date_link = first_match(soup, 'a[href*="/events/2"]')
        match = DATE_TEXT.search(text_of(date_link)) if date_link is not None else None
        if not match:
            return None

        time_text = next(
            (text_of(el) for el in all_matches(soup, "div, span") if TIME_TEXT.match(text_of(el))),
            None,
        )
        # Year is filled in by the normalizer's default year
        value = f"{match.group(2)} {match.group(3)}"
        return f"{value} {time_text}" if time_text else value

    def extract_venue(self, soup: BeautifulSoup, structured: dict) -> str | None:
        return text_of(first_match(soup, 'a[href*="/venues/"]')) or None

    def extract_location(self, soup: BeautifulSoup, structured: dict) -> str | None:
        maps_link = first_match(soup, 'a[href*="maps.google.com"]')
        if maps_link is not None and maps_link.get("href"):
            query = parse_qs(urlparse(str(maps_link["href"])).query).get("q")
            if query:
                return query[0]

        venue = self.extract_venue(soup, structured)
        return f"{venue}, {DEFAULT_CITY}" if venue else DEFAULT_CITY

    def extract_description(self, soup: BeautifulSoup, structured: dict) -> str | None:
        candidates = []
        for node in all_matches(soup, "p, div"):
            text = text_of(node)
            if not 50 < len(text) < 2000:
                continue
            if "©" in text or "cookie" in text or re.search(r"sign\s*(in|up)", text, re.IGNORECASE):
                continue
            candidates.append(text)
        return max(candidates, key=len) if candidates else None

    def extract_image(self, soup: BeautifulSoup, structured: dict, page_url: str) -> str | None:
        image = meta_content(soup, 'meta[property="og:image"]') or meta_content(soup, 'meta[name="twitter:image"]')
        if image:
            return image
        node = first_match(soup, 'article img, .event-image img, img[src*="do512"]')
        return str(node["src"]) if node is not None and node.get("src") else None

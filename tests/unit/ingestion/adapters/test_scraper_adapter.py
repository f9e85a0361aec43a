"""
Unit tests for the scraper_adapter module.

Tests for ConfigurableScraperAdapter, the do512, Austin Chronicle and
CultureMap custom scrapers and the scraper registry.
"""

import json
from datetime import date

import pytest

from eventsync.ingestion.adapters.base_adapter import SourceType
from eventsync.ingestion.adapters.custom.austin_chronicle import AustinChronicleScraper
from eventsync.ingestion.adapters.custom.culturemap import CulturemapScraper, start_from_keywords
from eventsync.ingestion.adapters.custom.do512 import Do512Scraper
from eventsync.ingestion.adapters.html_parsing import json_ld_event, json_ld_location, make_soup
from eventsync.ingestion.adapters.registry import list_scrapers, resolve_adapter
from eventsync.ingestion.adapters.scraper_adapter import ConfigurableScraperAdapter, ScraperAdapterConfig
from eventsync.ingestion.errors import SourceConfigurationError, SourceFetchError
from eventsync.schemas.source import ConfigurableAdapter, CustomAdapter, ScraperSelectors

BASE_URL = "https://events.example.com"

# =============================================================================
# FIXTURES
# =============================================================================


class FakeFetcher:
    """PageFetcher double serving canned HTML by URL."""

    def __init__(self, pages: dict[str, str]):
        self.pages = pages
        self.requested: list[str] = []

    def get(self, url: str) -> str:
        self.requested.append(url)
        if url not in self.pages:
            raise SourceFetchError(f"Failed to fetch {url}: HTTP 404", retryable=False, status_code=404)
        page = self.pages[url]
        if isinstance(page, Exception):
            raise page
        return page

    def close(self) -> None:
        pass


def listing_html(count: int) -> str:
    links = "".join(f'<a href="/events/{i}">Event {i}</a>' for i in range(1, count + 1))
    return f"<html><body>{links}<a href='/about'>About</a></body></html>"


def detail_html(title: str, extra: str = "") -> str:
    return f"""
    <html><head><meta property="og:image" content="/img/{title}.jpg"></head>
    <body>
      <h1>{title}</h1>
      <time datetime="2025-03-08T20:00:00">Sat Mar 8, 8pm</time>
      <div class="venue">Mohawk</div>
      <div class="address">912 Red River St, Austin, TX</div>
      <div class="description">A night of loud guitars.</div>
      {extra}
    </body></html>
    """


@pytest.fixture
def config():
    """Scraper config with no pause between requests."""
    return ScraperAdapterConfig(
        source_id="test-source",
        source_type=SourceType.SCRAPER,
        base_url=BASE_URL,
        list_path="/events",
        source_name="test-source",
        min_delay_s=0,
        max_delay_s=0,
    )


# =============================================================================
# TEST CLASSES
# =============================================================================


class TestScraperAdapterConfig:
    """Tests for ScraperAdapterConfig dataclass."""

    def test_default_values(self):
        """Should have sensible defaults."""
        config = ScraperAdapterConfig(source_id="test", source_type=SourceType.ICAL, base_url=BASE_URL)

        assert config.source_type == SourceType.SCRAPER
        assert config.max_links == 50
        assert config.selectors == ScraperSelectors()


class TestConfigurableScraperAdapter:
    """Tests for the generic selector-driven crawl."""

    def test_caps_links_at_fifty(self, config):
        """A listing with 80 links should only attempt 50 detail pages."""
        pages = {f"{BASE_URL}/events": listing_html(80)}
        pages.update({f"{BASE_URL}/events/{i}": detail_html(f"Show {i}") for i in range(1, 81)})
        fetcher = FakeFetcher(pages)

        result = ConfigurableScraperAdapter(config, fetcher=fetcher).fetch()

        assert result.success is True
        assert result.total_fetched == 50
        assert result.metadata["links_found"] == 50
        assert result.metadata["pages_attempted"] == 50
        assert len(fetcher.requested) == 51

    def test_extracts_fields(self, config):
        """Should pull every field using the default selectors."""
        pages = {f"{BASE_URL}/events": listing_html(1), f"{BASE_URL}/events/1": detail_html("Loud Guitars")}

        record = ConfigurableScraperAdapter(config, fetcher=FakeFetcher(pages)).fetch().records[0]

        assert record["title"] == "Loud Guitars"
        assert record["starts_at"] == "2025-03-08T20:00:00"
        assert record["venue"] == "Mohawk"
        assert record["location"] == "912 Red River St, Austin, TX"
        assert record["description"] == "A night of loud guitars."
        assert record["image_url"] == f"{BASE_URL}/img/Loud Guitars.jpg"
        assert record["source_name"] == "test-source"
        assert record["source_url"] == f"{BASE_URL}/events/1"

    def test_prefers_json_ld(self, config):
        """JSON-LD start date and location should win over selectors."""
        ld = {
            "@context": "https://schema.org",
            "@type": "MusicEvent",
            "name": "Loud Guitars",
            "startDate": "2025-03-08T21:00:00-06:00",
            "location": {
                "@type": "Place",
                "name": "Mohawk Outside",
                "address": {"streetAddress": "912 Red River St", "addressLocality": "Austin"},
            },
        }
        script = f'<script type="application/ld+json">{json.dumps(ld)}</script>'
        pages = {
            f"{BASE_URL}/events": listing_html(1),
            f"{BASE_URL}/events/1": detail_html("Loud Guitars", extra=script),
        }

        record = ConfigurableScraperAdapter(config, fetcher=FakeFetcher(pages)).fetch().records[0]

        assert record["starts_at"] == "2025-03-08T21:00:00-06:00"
        assert record["venue"] == "Mohawk Outside"
        assert record["location"] == "912 Red River St, Austin"

    def test_detail_failure_skips_page(self, config):
        """A failing detail page should be skipped, not fail the run."""
        pages = {
            f"{BASE_URL}/events": listing_html(3),
            f"{BASE_URL}/events/1": detail_html("One"),
            f"{BASE_URL}/events/3": detail_html("Three"),
        }

        result = ConfigurableScraperAdapter(config, fetcher=FakeFetcher(pages)).fetch()

        assert result.success is True
        assert [r["title"] for r in result.records] == ["One", "Three"]
        assert result.metadata["pages_failed"] == 1

    def test_page_without_title_is_dropped(self, config):
        """Detail pages with no title should produce no record."""
        pages = {f"{BASE_URL}/events": listing_html(1), f"{BASE_URL}/events/1": "<html><body>empty</body></html>"}

        result = ConfigurableScraperAdapter(config, fetcher=FakeFetcher(pages)).fetch()

        assert result.success is True
        assert result.records == []

    def test_listing_failure_fails_run(self, config):
        """A listing page that cannot be fetched should fail the whole fetch."""
        pages = {f"{BASE_URL}/events": SourceFetchError("Timed out", retryable=True)}

        result = ConfigurableScraperAdapter(config, fetcher=FakeFetcher(pages)).fetch()

        assert result.success is False
        assert result.retryable is True

    def test_rejects_non_http_base_url(self, config):
        """Should fail validation for a base URL without http(s)."""
        config.base_url = "ftp://events.example.com"

        result = ConfigurableScraperAdapter(config, fetcher=FakeFetcher({})).fetch()

        assert result.success is False
        assert result.error == "Scraper base_url must be an HTTP(S) URL"

    def test_links_deduplicated_and_absolute(self, config):
        """Repeated hrefs should be visited once, as absolute URLs."""
        html = '<a href="/events/1">a</a><a href="/events/1">again</a><a href="https://other.example/events/2">b</a>'
        adapter = ConfigurableScraperAdapter(config, fetcher=FakeFetcher({}))

        links = adapter.extract_event_links(make_soup(html))

        assert links == [f"{BASE_URL}/events/1", "https://other.example/events/2"]


class TestHtmlParsing:
    """Tests for JSON-LD helpers."""

    def test_malformed_json_ld_ignored(self):
        """Broken JSON-LD blocks should be skipped."""
        soup = make_soup('<script type="application/ld+json">{not json</script>')
        assert json_ld_event(soup) is None

    def test_graph_is_searched(self):
        """Events nested in @graph should be found."""
        data = {"@graph": [{"@type": "WebPage"}, {"@type": "Event", "name": "Found"}]}
        soup = make_soup(f'<script type="application/ld+json">{json.dumps(data)}</script>')
        assert json_ld_event(soup)["name"] == "Found"

    def test_string_location(self):
        """A plain string location is an address."""
        assert json_ld_location({"location": "Zilker Park"}) == (None, "Zilker Park")


class TestDo512Scraper:
    """Tests for the do512 custom scraper."""

    DETAIL = """
    <html><head><meta property="og:image" content="https://img.do512.com/show.jpg"></head>
    <body>
      <div class="presenter">Mohawk Presents</div>
      <h1>Loud Guitars</h1>
      <a href="/events/2025/3/8">Saturday March 8</a>
      <span>8:00 PM</span>
      <a href="/venues/mohawk">Mohawk</a>
      <a href="https://maps.google.com/?q=912+Red+River+St,+Austin,+TX">Map</a>
      <p>An evening of loud guitars and louder drums, with special guests from Houston.</p>
    </body></html>
    """

    def _scraper(self, pages):
        config = ScraperAdapterConfig(
            source_id="do512",
            source_type=SourceType.SCRAPER,
            base_url="https://do512.com",
            source_name="do512",
            min_delay_s=0,
            max_delay_s=0,
        )
        return Do512Scraper(config, fetcher=FakeFetcher(pages))

    def test_registered(self):
        """Should be registered under its name."""
        assert "do512" in list_scrapers()

    def test_parses_detail_page(self):
        """Should combine presenter and heading and read the maps query."""
        pages = {
            "https://do512.com/events/week": '<a href="/events/2025/3/8/loud-guitars">x</a><a href="/events/week">y</a>',
            "https://do512.com/events/2025/3/8/loud-guitars": self.DETAIL,
        }

        result = self._scraper(pages).fetch()
        record = result.records[0]

        assert result.total_fetched == 1
        assert record["title"] == "Mohawk Presents Loud Guitars"
        assert record["starts_at"] == "March 8 8:00 PM"
        assert record["venue"] == "Mohawk"
        assert record["location"] == "912 Red River St, Austin, TX"
        assert record["image_url"] == "https://img.do512.com/show.jpg"
        assert record["description"].startswith("An evening of loud guitars")

    def test_caps_links_at_thirty(self):
        """The do512 scraper should visit at most 30 events."""
        links = "".join(f'<a href="/events/2025/3/8/show-{i}">x</a>' for i in range(40))
        scraper = self._scraper({})

        assert len(scraper.extract_event_links(make_soup(links))) == 30

    def test_location_falls_back_to_city(self):
        """Without a maps link the venue and city should be used."""
        soup = make_soup('<a href="/venues/stubbs">Stubbs</a>')
        assert self._scraper({}).extract_location(soup, {}) == "Stubbs, Austin, TX"


class TestRegistry:
    """Tests for resolve_adapter."""

    def test_unknown_custom_scraper(self, config):
        """Should raise SourceConfigurationError for an unregistered name."""
        with pytest.raises(SourceConfigurationError, match="Unknown scraper: nope"):
            resolve_adapter(CustomAdapter(name="nope"), config)

    def test_custom_lookup_is_case_insensitive(self, config):
        """Names should resolve regardless of case."""
        assert isinstance(resolve_adapter(CustomAdapter(name="Do512"), config), Do512Scraper)

    def test_configurable_uses_given_selectors(self, config):
        """The configurable variant should carry its selectors into the config."""
        selectors = ScraperSelectors(title="h2.event-title")

        adapter = resolve_adapter(ConfigurableAdapter(selectors=selectors), config)

        assert type(adapter) is ConfigurableScraperAdapter
        assert adapter.selectors.title == "h2.event-title"


class TestAustinChronicleScraper:
    """Tests for the Austin Chronicle custom scraper."""

    LISTING = """
    <a href="https://calendar.austinchronicle.com/event/101-jazz">Jazz</a>
    <a href="https://calendar.austinchronicle.com/event/102-poetry">Poetry</a>
    <a href="https://calendar.austinchronicle.com/event/103-tba">TBA</a>
    <a href="https://www.austinchronicle.com/music/">Music</a>
    """

    JAZZ = """
    <html><head>
    <script type="application/ld+json">{
      "@type": "Event",
      "name": "Late Night Jazz",
      "startDate": "2025-03-08T21:00:00-06:00",
      "description": "The house trio plays until close.",
      "image": ["https://img.austinchronicle.com/jazz.jpg"],
      "location": {"name": "Elephant Room", "address": {
        "streetAddress": "315 Congress Ave", "addressLocality": "Austin",
        "addressRegion": "TX", "postalCode": "78701"}}
    }</script>
    </head><body><h1>Ignored Heading</h1></body></html>
    """

    POETRY = """
    <html><head><meta property="og:image" content="https://img.austinchronicle.com/poetry.jpg"></head>
    <body>
      <h1 class="event-title">Poetry Night</h1>
      <div class="event-date">March 9, 2025 7pm</div>
      <span class="venue-name">BookPeople</span>
      <article><p>Local poets read new work in the upstairs room, followed by an open mic for anyone.</p></article>
    </body></html>
    """

    TBA = "<html><body><h1>Date To Be Announced</h1></body></html>"

    def _scraper(self, pages):
        config = ScraperAdapterConfig(
            source_id="austin_chronicle",
            source_type=SourceType.SCRAPER,
            base_url="https://www.austinchronicle.com",
            source_name="Austin Chronicle",
            min_delay_s=0,
            max_delay_s=0,
        )
        return AustinChronicleScraper(config, fetcher=FakeFetcher(pages))

    def test_registered(self):
        """Should be registered under its name."""
        assert "austin_chronicle" in list_scrapers()

    def test_parses_detail_pages(self):
        """JSON-LD should win where present; markup fills in otherwise."""
        pages = {
            "https://www.austinchronicle.com/events/": self.LISTING,
            "https://calendar.austinchronicle.com/event/101-jazz": self.JAZZ,
            "https://calendar.austinchronicle.com/event/102-poetry": self.POETRY,
            "https://calendar.austinchronicle.com/event/103-tba": self.TBA,
        }

        result = self._scraper(pages).fetch()
        jazz, poetry = result.records

        assert result.total_fetched == 2
        assert jazz["title"] == "Late Night Jazz"
        assert jazz["starts_at"] == "2025-03-08T21:00:00-06:00"
        assert jazz["venue"] == "Elephant Room"
        assert jazz["location"] == "315 Congress Ave, Austin, TX, 78701"
        assert jazz["image_url"] == "https://img.austinchronicle.com/jazz.jpg"
        assert jazz["source_url"] == "https://calendar.austinchronicle.com/event/101-jazz"

        assert poetry["title"] == "Poetry Night"
        assert poetry["starts_at"] == "March 9, 2025 7pm"
        assert poetry["location"] == "BookPeople, Austin, TX"
        assert poetry["description"].startswith("Local poets read new work")
        assert poetry["image_url"] == "https://img.austinchronicle.com/poetry.jpg"

    def test_only_calendar_links_followed(self):
        """Links off the calendar subdomain should be ignored."""
        links = self._scraper({}).extract_event_links(make_soup(self.LISTING))

        assert all(url.startswith("https://calendar.austinchronicle.com/event/") for url in links)
        assert len(links) == 3

    def test_location_defaults_to_city(self):
        """With no address or venue the city should be used."""
        assert self._scraper({}).extract_location(make_soup("<h1>x</h1>"), {}) == "Austin, TX"


class TestCulturemapScraper:
    """Tests for the CultureMap custom scraper."""

    BASE = "https://austin.culturemap.com"

    JAZZ = """
    <html><head>
    <script type="application/ld+json">{
      "@type": "NewsArticle",
      "headline": "Jazz Night",
      "description": "A trio session on Congress Avenue.",
      "keywords": ["music", "20250308", "occurrence202503081930", "occurrence202503091930"],
      "image": [{"url": "https://img.culturemap.com/jazz.jpg"}]
    }</script>
    </head><body><article>
      <div class="details">
        <div>WHERE</div>
        <div>Elephant Room</div>
        <div>315 Congress Ave, Austin, TX 78701</div>
      </div>
    </article></body></html>
    """

    BRUNCH = """
    <html><head>
    <meta property="og:image" content="https://img.culturemap.com/brunch.jpg">
    <script type="application/ld+json">{"@type": "NewsArticle", "keywords": ["food", "20250309"]}</script>
    </head><body><h1>Sunday Brunch</h1><article>
      <p>Subscribe to our newsletter for more events like this one, delivered every week.</p>
      <p>Chefs from around town cook a long brunch menu on the patio with live bluegrass.</p>
    </article></body></html>
    """

    def _scraper(self, pages):
        config = ScraperAdapterConfig(
            source_id="culturemap",
            source_type=SourceType.SCRAPER,
            base_url=self.BASE,
            source_name="CultureMap Austin",
            min_delay_s=0,
            max_delay_s=0,
        )
        return CulturemapScraper(config, fetcher=FakeFetcher(pages), today=lambda: date(2025, 3, 8))

    def test_registered(self):
        """Should be registered under its name."""
        assert "culturemap" in list_scrapers()

    def test_walks_daily_listings(self):
        """Each day's tag page should be crawled and repeated links visited once."""
        pages = {
            f"{self.BASE}/events?tags=20250308&time=custom": '<a href="/eventdetail/jazz-night/">Jazz</a>',
            f"{self.BASE}/events?tags=20250309&time=custom": (
                '<a href="/eventdetail/jazz-night/">Jazz</a><a href="/eventdetail/sunday-brunch/">Brunch</a>'
            ),
            f"{self.BASE}/eventdetail/jazz-night/": self.JAZZ,
            f"{self.BASE}/eventdetail/sunday-brunch/": self.BRUNCH,
        }
        scraper = self._scraper(pages)

        result = scraper.fetch()
        jazz, brunch = result.records

        assert result.success is True
        assert f"{self.BASE}/events?tags=20250315&time=custom" in scraper.fetcher.requested
        assert scraper.fetcher.requested.count(f"{self.BASE}/eventdetail/jazz-night/") == 1

        assert jazz["title"] == "Jazz Night"
        assert jazz["starts_at"] == "2025-03-08T19:30"
        assert jazz["venue"] == "Elephant Room"
        assert jazz["location"] == "315 Congress Ave, Austin, TX 78701"
        assert jazz["image_url"] == "https://img.culturemap.com/jazz.jpg"
        assert jazz["description"] == "A trio session on Congress Avenue."

        assert brunch["title"] == "Sunday Brunch"
        assert brunch["starts_at"] == "2025-03-09T12:00"
        assert brunch["location"] == "Austin, TX"
        assert brunch["description"].startswith("Chefs from around town")
        assert brunch["image_url"] == "https://img.culturemap.com/brunch.jpg"

    def test_every_listing_failing_is_a_failure(self):
        """If no day's listing could be fetched the run should fail."""
        result = self._scraper({}).fetch()

        assert result.success is False
        assert "HTTP 404" in result.error

    def test_start_from_keywords(self):
        """Occurrences on the listing day win, then any occurrence, then date tags at noon."""
        keywords = ["20250308", "occurrence202503081930", "occurrence202503091800"]

        assert start_from_keywords(keywords, date(2025, 3, 9)) == "2025-03-09T18:00"
        assert start_from_keywords(keywords) == "2025-03-08T19:30"
        assert start_from_keywords(["20250310", "20250311"], date(2025, 3, 11)) == "2025-03-11T12:00"
        assert start_from_keywords("food, 20250310") == "2025-03-10T12:00"
        assert start_from_keywords(["music"]) is None

"""
Source descriptor schemas.

A scraper source is resolved to an adapter through a tagged variant:
either a named custom scraper registered in code, or the generic
configurable scraper driven by CSS selectors.
"""

import re
from typing import Annotated, Literal
from urllib.parse import urlparse

from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, field_validator

COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")
DEFAULT_SOURCE_COLOR = "#3788d8"
DEFAULT_SCRAPE_INTERVAL_HOURS = 4


class ScraperSelectors(BaseModel):
    """CSS selectors used by the configurable scraper."""

    model_config = ConfigDict(extra="ignore")

    event_links: str = 'a[href*="/event"]'
    event_link_pattern: str = r"/events?/"
    title: str = "h1"
    datetime: str = "[datetime], time[datetime], .date, .time"
    venue: str = '.venue, [itemprop="location"]'
    location: str = '.address, [itemprop="address"]'
    description: str = '.description, [itemprop="description"], p'
    image: str = 'meta[property="og:image"], img.event-image, .event-img img'

    @field_validator("event_link_pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        re.compile(v)
        return v


class CustomAdapter(BaseModel):
    """Reference to a scraper registered under a name."""

    kind: Literal["custom"] = "custom"
    name: str


class ConfigurableAdapter(BaseModel):
    """Generic selector-driven scraper."""

    kind: Literal["configurable"] = "configurable"
    selectors: ScraperSelectors = Field(default_factory=ScraperSelectors)


AdapterRef = Annotated[CustomAdapter | ConfigurableAdapter, Field(discriminator="kind")]


class SourceSchedule(BaseModel):
    """When a source should be scraped."""

    model_config = ConfigDict(extra="ignore")

    interval_hours: int = Field(DEFAULT_SCRAPE_INTERVAL_HOURS, ge=1)
    cron: str | None = None

    @field_validator("cron")
    @classmethod
    def validate_cron(cls, v: str | None) -> str | None:
        if v and not croniter.is_valid(v):
            raise ValueError(f"invalid cron expression: {v}")
        return v or None


class SourceDefinition(BaseModel):
    """
    A scraper source as written in sources.yaml or submitted by an owner.

    Example:
        SourceDefinition(
            slug="do512",
            name="Do512",
            base_url="https://do512.com",
            list_path="/events/week",
            scraper_class="do512",
        )
    """

    model_config = ConfigDict(extra="ignore")

    slug: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    base_url: str
    list_path: str | None = None
    scraper_class: str | None = None
    selectors: ScraperSelectors | None = None
    schedule: SourceSchedule = Field(default_factory=SourceSchedule)
    color: str = DEFAULT_SOURCE_COLOR
    enabled: bool = True

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if urlparse(v).scheme not in ("http", "https"):
            raise ValueError("base_url must be a valid HTTP(S) URL")
        return v.rstrip("/")

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if not COLOR_PATTERN.match(v):
            raise ValueError("color must be a hex color like #3788d8")
        return v

    def adapter_ref(self) -> CustomAdapter | ConfigurableAdapter:
        if self.scraper_class:
            return CustomAdapter(name=self.scraper_class)
        return ConfigurableAdapter(selectors=self.selectors or ScraperSelectors())

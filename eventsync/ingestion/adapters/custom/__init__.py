"""Site-specific scrapers, registered by name on import."""

from .austin_chronicle import AustinChronicleScraper
from .culturemap import CulturemapScraper
from .do512 import Do512Scraper

__all__ = ["AustinChronicleScraper", "CulturemapScraper", "Do512Scraper"]

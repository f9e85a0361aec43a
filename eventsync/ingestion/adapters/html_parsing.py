"""HTML parsing helpers for scrapers.

BeautifulSoup over lxml, plus JSON-LD (schema.org Event) extraction.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

logger = logging.getLogger(__name__)

_WS = re.compile(r"\s+")


def make_soup(html: str) -> BeautifulSoup:
    """Parse HTML with the lxml backend."""
    return BeautifulSoup(html or "", "lxml")


def collapse_ws(text: str | None) -> str:
    return _WS.sub(" ", text or "").strip()


def first_match(soup: BeautifulSoup | Tag, selector: str) -> Tag | None:
    """First element matching a CSS selector; invalid selectors match nothing."""
    try:
        return soup.select_one(selector)
    except SelectorSyntaxError as e:
        logger.warning(f"Invalid selector {selector!r}: {e}")
        return None


def all_matches(soup: BeautifulSoup | Tag, selector: str) -> list[Tag]:
    try:
        return soup.select(selector)
    except SelectorSyntaxError as e:
        logger.warning(f"Invalid selector {selector!r}: {e}")
        return []


def text_of(node: Tag | None) -> str:
    if node is None:
        return ""
    return collapse_ws(node.get_text(" ", strip=True))


def meta_content(soup: BeautifulSoup, selector: str) -> str | None:
    node = first_match(soup, selector)
    if node is not None and node.get("content"):
        return str(node["content"]).strip()
    return None


# ---------------------------------------------------------------------
# JSON-LD
# ---------------------------------------------------------------------


def _is_event_type(value: Any) -> bool:
    types = value if isinstance(value, list) else [value]
    return any(isinstance(t, str) and t.endswith("Event") for t in types)


def _walk_json_ld(data: Any):
    if isinstance(data, list):
        for item in data:
            yield from _walk_json_ld(item)
    elif isinstance(data, dict):
        yield data
        if "@graph" in data:
            yield from _walk_json_ld(data["@graph"])


def _json_ld_blocks(soup: BeautifulSoup):
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            yield json.loads(raw)
        except json.JSONDecodeError:
            continue


def json_ld_event(soup: BeautifulSoup) -> dict[str, Any] | None:
    """
    First schema.org Event object embedded as JSON-LD, if any.

    Malformed JSON-LD blocks are ignored.
    """
    for data in _json_ld_blocks(soup):
        for obj in _walk_json_ld(data):
            if _is_event_type(obj.get("@type")):
                return obj
    return None


def first_json_ld(soup: BeautifulSoup) -> dict[str, Any] | None:
    """First JSON-LD object of any type (articles carry event data on some sites)."""
    for data in _json_ld_blocks(soup):
        for obj in _walk_json_ld(data):
            return obj
    return None


def json_ld_location(event: dict[str, Any]) -> tuple[str | None, str | None]:
    """(venue name, address text) from a JSON-LD Event's location."""
    location = event.get("location")
    if isinstance(location, list):
        location = location[0] if location else None
    if isinstance(location, str):
        return None, location.strip() or None
    if not isinstance(location, dict):
        return None, None

    venue = location.get("name")
    address = location.get("address")
    if isinstance(address, dict):
        parts = [
            address.get("streetAddress"),
            address.get("addressLocality"),
            address.get("addressRegion"),
            address.get("postalCode"),
        ]
        address = ", ".join(str(p).strip() for p in parts if p)
    return (str(venue).strip() if venue else None), (str(address).strip() if address else None)


def json_ld_image(event: dict[str, Any]) -> str | None:
    image = event.get("image")
    if isinstance(image, list):
        image = image[0] if image else None
    if isinstance(image, dict):
        image = image.get("url")
    return str(image) if image else None

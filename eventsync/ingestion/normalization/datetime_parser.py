"""
Datetime parsing for upstream event data.

Sources hand us datetimes in every shape imaginable: real ``datetime``
objects, bare ``date`` objects from iCal, ISO 8601 strings, epoch numbers
and free text scraped off a page ("Sat, Mar 8 7:30 PM"). Everything is
converted to a timezone-aware datetime plus a flag saying whether the
value carried a time of day.
"""

import re
from datetime import date, datetime, time, timezone, tzinfo
from typing import Any, NamedTuple

from dateutil import parser as date_parser

DATE_ONLY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_OF_DAY_PATTERN = re.compile(r"\d{1,2}:\d{2}|\d\s*[ap]\.?m\b|\bnoon\b|\bmidnight\b|T\d{2}", re.IGNORECASE)


class ParsedTime(NamedTuple):
    value: datetime
    date_only: bool


def localize(value: datetime, tz: tzinfo) -> datetime:
    """Attach ``tz`` to naive datetimes; leave aware ones untouched."""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value


def parse_event_time(value: Any, tz: tzinfo, default_year: int | None = None) -> ParsedTime | None:
    """
    Parse a raw start/end value.

    Args:
        value: datetime, date, ISO/free-text string, or epoch seconds
        tz: Timezone applied to naive values
        default_year: Year assumed when free text omits it

    Returns:
        ParsedTime, or None when the value is missing or unparsable
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return ParsedTime(localize(value, tz), False)

    if isinstance(value, date):
        return ParsedTime(datetime.combine(value, time.min, tzinfo=tz), True)

    if isinstance(value, (int, float)):
        try:
            return ParsedTime(datetime.fromtimestamp(value, tz=timezone.utc), False)
        except (OverflowError, OSError, ValueError):
            return None

    text = str(value).strip()
    if not text:
        return None

    if DATE_ONLY_PATTERN.match(text):
        try:
            return ParsedTime(datetime.combine(date.fromisoformat(text), time.min, tzinfo=tz), True)
        except ValueError:
            return None

    try:
        return ParsedTime(localize(datetime.fromisoformat(text.replace("Z", "+00:00")), tz), False)
    except ValueError:
        pass

    default = datetime(default_year or datetime.now(tz).year, 1, 1)
    try:
        parsed = date_parser.parse(text, default=default, fuzzy=True)
    except (ValueError, OverflowError):
        return None

    date_only = TIME_OF_DAY_PATTERN.search(text) is None
    if date_only:
        parsed = datetime.combine(parsed.date(), time.min)
    return ParsedTime(localize(parsed, tz), date_only)

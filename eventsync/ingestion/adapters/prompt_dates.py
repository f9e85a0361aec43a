"""
Date window inference for extraction prompts.

Turns phrases like "family events this weekend" or "concerts in march"
into a concrete inclusive date range. Rules are checked in a fixed order
and the first match wins; with no match the window is the next 8 days.
"""

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from dateutil import parser as date_parser

DEFAULT_DAYS_AHEAD = 8

MONTH_NAMES = [m.lower() for m in calendar.month_name if m]
_MONTH_MENTION = re.compile(r"\b(?:in|during)\s+(" + "|".join(MONTH_NAMES) + r")\b")
_NEXT_N_DAYS = re.compile(r"next\s+(\d+)\s+days?")
_EXPLICIT_RANGE = re.compile(r"([a-z]+\s+\d{1,2})\s*(?:-|–|to|through|until)\s*([a-z]+\s+\d{1,2}|\d{1,2})\b")


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar days."""

    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def _sunday_based_weekday(day: date) -> int:
    """0 for Sunday through 6 for Saturday."""
    return (day.weekday() + 1) % 7


def _end_of_month(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def _first_of_next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def _parse_day(text: str, today: date) -> date | None:
    try:
        return date_parser.parse(text, default=datetime(today.year, today.month, 1)).date()
    except (ValueError, OverflowError):
        return None


def resolve_date_range(prompt: str, today: date) -> DateRange:
    """
    Infer the date window a free-text prompt refers to.

    Args:
        prompt: e.g. "live music next weekend"
        today: Reference day

    Returns:
        DateRange, inclusive on both ends
    """
    text = (prompt or "").lower()
    wday = _sunday_based_weekday(today)

    if re.search(r"this\s+weekend", text):
        if wday in (6, 0):
            saturday = today
        else:
            saturday = today + timedelta(days=(6 - wday) % 7)
        return DateRange(saturday, saturday + timedelta(days=1) if wday != 0 else today)

    if re.search(r"next\s+weekend", text):
        days_until_saturday = (6 - wday) % 7 or 7
        saturday = today + timedelta(days=days_until_saturday + 7)
        return DateRange(saturday, saturday + timedelta(days=1))

    if re.search(r"next\s+week\b", text):
        days_until_monday = (1 - wday) % 7 or 7
        monday = today + timedelta(days=days_until_monday)
        return DateRange(monday, monday + timedelta(days=6))

    if re.search(r"this\s+week\b", text):
        return DateRange(today, today + timedelta(days=6 - wday))

    match = _NEXT_N_DAYS.search(text)
    if match:
        return DateRange(today, today + timedelta(days=int(match.group(1))))

    if re.search(r"this\s+month", text):
        return DateRange(today, _end_of_month(today))

    if re.search(r"next\s+month", text):
        start = _first_of_next_month(today)
        return DateRange(start, _end_of_month(start))

    match = _EXPLICIT_RANGE.search(text)
    if match:
        start = _parse_day(match.group(1), today)
        end_text = match.group(2)
        if start is not None and end_text.isdigit():
            end_text = f"{calendar.month_name[start.month]} {end_text}"
        end = _parse_day(end_text, today)
        if start is not None and end is not None and end >= start:
            return DateRange(start, end)

    match = _MONTH_MENTION.search(text)
    if match:
        start = date(today.year, MONTH_NAMES.index(match.group(1)) + 1, 1)
        if start < today - timedelta(days=30):
            start = start.replace(year=start.year + 1)
        return DateRange(max(start, today), _end_of_month(start))

    return DateRange(today, today + timedelta(days=DEFAULT_DAYS_AHEAD))

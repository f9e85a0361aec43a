"""
Module for event deduplication.

Two entry points share one lexical matching core:
- DuplicateFinder: checks a single candidate against the store before insert
  (authoritative source-id lookup first, then fuzzy same-day title matching)
- BatchDeduplicator: periodic cross-source sweep that finds pairs of stored
  duplicates reported by different sources and keeps the more complete one

Similarity is Jaccard over normalized title word sets; nothing semantic.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from enum import Enum
from itertools import combinations
from typing import Any, Protocol

from eventsync.schemas.event import EventDraft
from eventsync.storage.models import Event
from eventsync.storage.repository import EventStore

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({"the", "a", "an", "at", "in", "on", "for", "and", "or", "with"})
# "w/" loses its slash during punctuation stripping
EXTENDED_STOP_WORDS = STOP_WORDS | {"w", "feat", "featuring", "present", "presents"}

SIMILARITY_THRESHOLD = 0.85
VENUE_MATCH_SIMILARITY_THRESHOLD = 0.60
RICH_DESCRIPTION_LENGTH = 100

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


class MatchMode(str, Enum):
    """Which comparison rules apply."""

    SINGLE = "single"  # creation path
    BATCH = "batch"  # cross-source sweep


class EventLike(Protocol):
    title: str
    venue: str | None
    starts_at: datetime


# ============================================================================
# TEXT SIMILARITY
# ============================================================================


def normalize_title(title: str | None, mode: MatchMode = MatchMode.SINGLE) -> str:
    """
    Lowercase, strip punctuation, drop stop words and collapse whitespace.

    Example:
        normalize_title("LIVE JAZZ AT STUBB'S!!") == "live jazz stubbs"
    """
    if not title:
        return ""
    stop_words = EXTENDED_STOP_WORDS if mode == MatchMode.BATCH else STOP_WORDS
    text = _PUNCTUATION.sub("", title.lower())
    return " ".join(word for word in _WHITESPACE.split(text) if word and word not in stop_words)


def jaccard_similarity(a: str, b: str) -> float:
    """
    Word-set Jaccard similarity of two already-normalized strings.

    Empty against anything is 0.0, so two blank titles never match.
    """
    words_a = set(a.split())
    words_b = set(b.split())
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def title_similarity(a: str | None, b: str | None, mode: MatchMode = MatchMode.SINGLE) -> float:
    """Similarity of two raw titles after normalization."""
    return jaccard_similarity(normalize_title(a, mode), normalize_title(b, mode))


def normalize_venue(venue: str | None) -> str:
    return normalize_title(venue, MatchMode.SINGLE)


def completeness_score(event: Any) -> int:
    """
    How much useful detail an event carries.

    One point each for description, venue, location, image and source URL,
    plus two more for a description longer than 100 characters.
    """
    score = 0
    for attr in ("description", "venue", "location", "image_url", "source_url"):
        if (getattr(event, attr, None) or "").strip():
            score += 1
    if len((event.description or "").strip()) > RICH_DESCRIPTION_LENGTH:
        score += 2
    return score


def is_duplicate(a: EventLike, b: EventLike, tz: tzinfo, mode: MatchMode = MatchMode.SINGLE) -> bool:
    """
    Decide whether two events describe the same real-world happening.

    Args:
        a: First event (draft or stored)
        b: Second event (draft or stored)
        tz: Timezone defining calendar days
        mode: SINGLE for the creation path, BATCH for the sweep

    Returns:
        True when titles are near-identical, when (batch only) one title
        contains the other, or when venues and dates match and titles are
        moderately similar
    """
    title_a = normalize_title(a.title, mode)
    title_b = normalize_title(b.title, mode)
    similarity = jaccard_similarity(title_a, title_b)

    if similarity > SIMILARITY_THRESHOLD:
        return True

    if mode == MatchMode.BATCH and title_a and title_b and (title_a in title_b or title_b in title_a):
        return True

    venue_a = normalize_venue(a.venue)
    venue_b = normalize_venue(b.venue)
    if venue_a and venue_a == venue_b:
        same_day = _local_date(a.starts_at, tz) == _local_date(b.starts_at, tz)
        if same_day and similarity > VENUE_MATCH_SIMILARITY_THRESHOLD:
            return True

    return False


def _local_date(value: datetime, tz: tzinfo) -> date:
    return value.astimezone(tz).date()


# ============================================================================
# SINGLE-CANDIDATE LOOKUP
# ============================================================================


class DuplicateFinder:
    """
    Find an existing event matching a candidate draft.

    The (source_name, source_id) pair is authoritative and checked first;
    fuzzy matching only considers events starting the same calendar day.
    """

    def __init__(self, store: EventStore):
        self.store = store

    def find_duplicate(self, candidate: EventDraft) -> Event | None:
        if candidate.has_source_pair:
            existing = self.store.find_by_source_pair(candidate.source_name, candidate.source_id)
            if existing is not None:
                return existing

        for existing in self.store.events_on_day(candidate.local_date(self.store.tz)):
            if is_duplicate(candidate, existing, self.store.tz, MatchMode.SINGLE):
                logger.debug(f"Fuzzy duplicate: '{candidate.title}' ~ '{existing.title}' (id={existing.id})")
                return existing

        return None


# ============================================================================
# BATCH SWEEP
# ============================================================================


@dataclass
class SweepResult:
    """Outcome of one cross-source dedup sweep."""

    days_checked: int = 0
    pairs_compared: int = 0
    removed_ids: list[int] = field(default_factory=list)
    kept_ids: list[int] = field(default_factory=list)

    @property
    def removed_count(self) -> int:
        return len(self.removed_ids)


class BatchDeduplicator:
    """
    Remove duplicates that slipped in from independent sources.

    Compares every pair of sourced events within a calendar day and keeps
    the one with the higher completeness score (the earlier import on ties).
    """

    def __init__(self, store: EventStore):
        self.store = store

    def sweep(self, since: datetime | None = None) -> SweepResult:
        result = SweepResult()
        by_day: dict[date, list[Event]] = {}
        for event in self.store.sourced_events(since=since):
            by_day.setdefault(_local_date(event.starts_at, self.store.tz), []).append(event)

        for day, events in by_day.items():
            result.days_checked += 1
            removed: set[int] = set()
            for first, second in combinations(events, 2):
                if first.id in removed or second.id in removed:
                    continue
                if self._same_source_record(first, second):
                    continue
                result.pairs_compared += 1
                if not is_duplicate(first, second, self.store.tz, MatchMode.BATCH):
                    continue

                keeper, loser = self._pick_keeper(first, second)
                logger.info(
                    f"Removing duplicate '{loser.title}' (id={loser.id}, {loser.source_name}) "
                    f"in favour of id={keeper.id} ({keeper.source_name}) on {day}"
                )
                removed.add(loser.id)
                result.removed_ids.append(loser.id)
                result.kept_ids.append(keeper.id)
                self.store.delete(loser)

        logger.info(f"Dedup sweep removed {result.removed_count} events across {result.days_checked} days")
        return result

    @staticmethod
    def _same_source_record(a: Event, b: Event) -> bool:
        if a.id == b.id:
            return True
        return bool(a.source_id) and a.source_name == b.source_name and a.source_id == b.source_id

    @staticmethod
    def _pick_keeper(a: Event, b: Event) -> tuple[Event, Event]:
        score_a = completeness_score(a)
        score_b = completeness_score(b)
        if score_b > score_a or (score_b == score_a and b.id < a.id):
            return b, a
        return a, b

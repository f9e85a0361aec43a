"""
Normalization of raw source records into canonical event drafts.

Usage:
    from eventsync.ingestion.normalization import SourceContext, normalize

    draft = normalize({"title": "Open Mic", "starts_at": "2025-03-08T19:30:00"}, SourceContext(source_name="ical"))
"""

from .datetime_parser import ParsedTime, parse_event_time
from .normalizer import (
    EventNormalizer,
    NormalizationError,
    SourceContext,
    clean_text,
    generate_source_id,
    normalize,
    parameterize,
)

__all__ = [
    "EventNormalizer",
    "NormalizationError",
    "ParsedTime",
    "SourceContext",
    "clean_text",
    "generate_source_id",
    "normalize",
    "parameterize",
    "parse_event_time",
]

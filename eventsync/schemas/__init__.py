"""
Pydantic schemas for eventsync.

This package contains:
- event.py: EventDraft, EventCreateRequest, EventType, SourceKind
- source.py: Scraper source descriptors and adapter references
"""

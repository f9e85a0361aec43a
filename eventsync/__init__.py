"""
eventsync: event ingestion and deduplication.

Pulls events from iCal feeds, Google Calendar, HTML scrapers and AI page
extraction into a single store, collapsing duplicates across sources.
"""

__version__ = "0.1.0"

"""
Ingestion Layer for eventsync.

Key Components:
- adapters: per-source fetchers producing raw event records
- normalization: raw record -> EventDraft
- deduplication: single-event matching and the batch sweep
- creation: the shared event-creation entry point
- orchestrator: IngestionCoordinator, one run per source or calendar
- scheduler: due-work discovery, job queue and retries
"""

"""Settings and YAML configuration for eventsync."""

"""Logging setup and per-run context injection."""

from .logging import LoggingOptions, RunLogger, setup_logging, with_context

__all__ = [
    "LoggingOptions",
    "RunLogger",
    "setup_logging",
    "with_context",
]

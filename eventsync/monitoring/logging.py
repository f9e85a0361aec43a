"""Logging for ingestion runs.

Every record emitted during a run can carry the run's context: the run id,
the target being ingested (a source slug or ``calendar-<id>``), the adapter
kind, the stage and the retry attempt. Output is either one JSON object per
line or a single human-readable line.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

ROOT_LOGGER = "eventsync"

# (record attribute, label in text output)
RUN_FIELDS: tuple[tuple[str, str], ...] = (
    ("run_id", "run"),
    ("target", "target"),
    ("adapter", "adapter"),
    ("stage", "stage"),
    ("attempt", "attempt"),
)

# Chatty client libraries: request-level logs drown out run summaries
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "googleapiclient.discovery_cache")


def run_context(record: logging.LogRecord) -> dict[str, Any]:
    """Run fields present on a record, in display order."""
    return {key: getattr(record, key) for key, _ in RUN_FIELDS if getattr(record, key, None) is not None}


# ---------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(run_context(record))

        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """``<time> <LEVEL> <logger> [run=.. target=..] message``"""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{self.formatTime(record)} {record.levelname} {record.name}"

        context = run_context(record)
        if context:
            labels = dict(RUN_FIELDS)
            line += " [" + " ".join(f"{labels[k]}={v}" for k, v in context.items()) + "]"

        line += f" {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# ---------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingOptions:
    """How the package logger should emit."""

    level: str = "INFO"
    json_logs: bool = False
    log_file: Path | None = None
    enable_console: bool = True
    quiet_libraries: bool = True


def setup_logging(options: LoggingOptions | None = None) -> logging.Logger:
    """
    Configure the ``eventsync`` logger.

    Existing handlers are replaced, so calling this again (e.g. from a
    second CLI invocation in the same process) never duplicates output.
    """
    options = options or LoggingOptions()
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, options.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = JsonFormatter() if options.json_logs else TextFormatter()
    handlers: list[logging.Handler] = []
    if options.enable_console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if options.log_file:
        options.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(options.log_file, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(logger.level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if options.quiet_libraries:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return logger


# ---------------------------------------------------------------------
# Run context
# ---------------------------------------------------------------------


class RunLogger(logging.LoggerAdapter):
    """Logger adapter stamping every record with the run's context."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def for_stage(self, stage: str) -> "RunLogger":
        """Same run, different stage."""
        return RunLogger(self.logger, {**self.extra, "stage": stage})


def with_context(
    logger: logging.Logger,
    *,
    run_id: str | None = None,
    target: str | None = None,
    adapter: str | None = None,
    stage: str | None = None,
    attempt: int | None = None,
) -> RunLogger:
    """Bind run context to a logger; unset fields are left off the records."""
    fields = {"run_id": run_id, "target": target, "adapter": adapter, "stage": stage, "attempt": attempt}
    return RunLogger(logger, {k: v for k, v in fields.items() if v is not None})

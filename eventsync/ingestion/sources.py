"""
Scraper source loading.

Syncs the scraper sources declared in ``sources.yaml`` into the database.
YAML-declared sources are unowned (no calendar); scraped events land in a
calendar created for the system owner on first import.
"""

import logging
from pathlib import Path

from pydantic import ValidationError
from sqlalchemy.orm import Session

from eventsync.configs.config import Config
from eventsync.configs.settings import Settings
from eventsync.ingestion.errors import SourceConfigurationError
from eventsync.schemas.source import SourceDefinition
from eventsync.storage.models import ScraperSource

logger = logging.getLogger(__name__)


def parse_source_definitions(raw: dict) -> list[SourceDefinition]:
    """
    Validate raw YAML entries keyed by slug.

    Raises:
        SourceConfigurationError: If any entry is invalid
    """
    definitions = []
    for slug, body in (raw or {}).items():
        try:
            definitions.append(SourceDefinition(slug=slug, **(body or {})))
        except ValidationError as e:
            raise SourceConfigurationError(f"Invalid source '{slug}': {e}") from e
    return definitions


def upsert_source(session: Session, definition: SourceDefinition) -> tuple[ScraperSource, bool]:
    """Create or update the unowned source with this slug. Returns (source, created)."""
    source = (
        session.query(ScraperSource)
        .filter(ScraperSource.slug == definition.slug, ScraperSource.calendar_id.is_(None))
        .first()
    )
    created = source is None
    if created:
        source = ScraperSource(slug=definition.slug)
        session.add(source)

    source.name = definition.name
    source.base_url = definition.base_url
    source.list_path = definition.list_path
    source.scraper_class = definition.scraper_class
    source.selectors = definition.selectors.model_dump() if definition.selectors else {}
    source.schedule = definition.schedule.model_dump(exclude_none=True)
    source.color = definition.color
    source.enabled = definition.enabled
    return source, created


def load_sources_from_yaml(
    session: Session,
    path: Path | str | None = None,
    settings: Settings | None = None,
) -> list[ScraperSource]:
    """
    Upsert every source in the YAML file and commit.

    Args:
        session: Database session
        path: Override of SOURCES_CONFIG_PATH
        settings: Settings used for ``${VAR}`` substitution

    Returns:
        The loaded sources, in file order
    """
    raw = Config.load_sources_config(Path(path) if path else None, settings=settings)
    definitions = parse_source_definitions(raw)

    sources = []
    for definition in definitions:
        source, created = upsert_source(session, definition)
        sources.append(source)
        logger.info(f"{'Created' if created else 'Updated'} source '{definition.slug}' ({definition.base_url})")

    session.commit()
    return sources

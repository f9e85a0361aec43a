"""Configuration loader for scraper source definitions."""

from pathlib import Path

import yaml

from eventsync.configs.settings import Settings, get_settings


class Config:
    """YAML-backed configuration for eventsync."""

    CONFIG_DIR = Path(__file__).parent.resolve()

    @classmethod
    def load_sources_config(cls, path: Path | None = None, settings: Settings | None = None) -> dict:
        """
        Load the YAML definitions of scraper sources.

        Placeholders like ``${FIRECRAWL_API_URL}`` are substituted from settings
        before parsing.

        Args:
            path: Optional override of SOURCES_CONFIG_PATH
            settings: Optional settings instance

        Returns:
            Mapping of source slug -> definition dict
        """
        settings = settings or get_settings()
        config_path = Path(path or settings.SOURCES_CONFIG_PATH)
        if not config_path.exists():
            raise FileNotFoundError(f"Missing config at {config_path}")

        content = config_path.read_text(encoding="utf-8")

        for key, value in settings.model_dump().items():
            placeholder = f"${{{key}}}"
            if placeholder in content:
                val_str = value.get_secret_value() if hasattr(value, "get_secret_value") else str(value)
                content = content.replace(placeholder, val_str)

        data = yaml.safe_load(content) or {}
        return data.get("sources", data)

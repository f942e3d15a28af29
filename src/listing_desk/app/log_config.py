"""Process-wide logging setup."""

import logging

from listing_desk.app.config import Settings, get_settings


def configure_logging(settings: Settings | None = None) -> None:
    """Apply the console log format. Debug builds log at INFO."""
    settings = settings or get_settings()
    level = logging.INFO if settings.debug else getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

"""Root logging configuration from GlobalSettings."""

import logging
from typing import Optional

from core.models.config import GlobalSettings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(settings: Optional[GlobalSettings] = None, level: Optional[str] = None) -> None:
    """
    Configure root logging.

    Args:
        settings: Source of the default level and the log-to-file switch
        level: Explicit level overriding the settings
    """
    settings = settings or GlobalSettings()
    handlers = [logging.StreamHandler()]
    log_file = settings.get_log_file()
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )
    # Transport chatter from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)

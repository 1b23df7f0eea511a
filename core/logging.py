"""
Logging configuration
"""

import logging
import sys
from typing import Optional
from core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Library loggers that drown out batch progress at INFO
QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "apscheduler",
    "httpx",
    "httpcore",
    "multipart",
)


class ErrorContextFormatter(logging.Formatter):
    """Appends ``extra={"error_context": {...}}`` from failed batches and runs"""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = getattr(record, "error_context", None)
        if context:
            message += f" | context={context}"
        return message


def setup_logging(level: Optional[str] = None):
    """Configure application logging; ``level`` overrides LOG_LEVEL"""
    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ErrorContextFormatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logging.basicConfig(level=log_level, handlers=[handler])

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {level_name} level")

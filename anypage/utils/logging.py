from __future__ import annotations

import logging
import os
import sys

from ..middleware.request_context import get_request_id

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s] | %(message)s"


class RequestIdFilter(logging.Filter):
    """Stamp each record with the identifier of the request being served."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id("-")
        return True


def configure_logging(default_level: str = "INFO") -> logging.Logger:
    level_name = os.getenv("LOG_LEVEL", default_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    logger = logging.getLogger("anypage")
    logger.setLevel(level)
    if not any(getattr(handler, "_anypage", False) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.addFilter(RequestIdFilter())
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._anypage = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger


__all__ = ["LOG_FORMAT", "RequestIdFilter", "configure_logging"]

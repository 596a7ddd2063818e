import logging
import sys
from pythonjsonlogger import jsonlogger

from .config import settings

# third-party loggers that log every request at INFO
_CHATTY_LOGGERS = ("httpx", "httpcore")


def setup_logger(name: str = "bizplan_backend", level: str = settings.LOG_LEVEL) -> logging.Logger:
    """
    Configure structured JSON logging for the application.

    Records carry their ``extra`` fields (plan_id, status, ...) as top-level JSON keys.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level.upper())

    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)
    logger.propagate = False

    for chatty in _CHATTY_LOGGERS:
        logging.getLogger(chatty).setLevel(logging.WARNING)

    return logger

logger = setup_logger()

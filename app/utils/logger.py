"""Process-wide "app" logger, writing to stdout."""
import logging
import sys
from app.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logger(name: str = "app") -> logging.Logger:
    log = logging.getLogger(name)
    level = logging.getLevelName(settings.log_level)
    log.setLevel(level)

    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        log.addHandler(handler)

    # uvicorn already prints to the root logger
    log.propagate = False

    # pymongo logs every heartbeat at DEBUG
    logging.getLogger("pymongo").setLevel(max(level, logging.WARNING))
    return log


logger = configure_logger()

__all__ = ["logger", "configure_logger"]

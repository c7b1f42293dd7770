"""
Logging setup for the TMS Portal.

Every module logs through ``logging.getLogger(__name__)``; this module installs
one stdout handler on the root logger so application, uvicorn and script output
share a single format.
"""
import logging
import sys

from app.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_configured = False


def configure_logging(level: str = None) -> None:
    """Configure root logging once; later calls are no-ops."""
    global _configured
    if _configured:
        return

    level_name = (level or LOG_LEVEL).upper()
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.handlers = [handler]
    logging.captureWarnings(True)

    # Request lines come from uvicorn's own access logger
    for noisy_logger in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        log = logging.getLogger(noisy_logger)
        log.handlers = []
        log.propagate = True

    _configured = True

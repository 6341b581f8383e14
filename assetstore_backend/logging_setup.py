from __future__ import annotations

import logging
import sys


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Loggers owned by the service: the backend package and the HTTP audit log.
_SERVICE_LOGGERS = ("assetstore_backend", "assetstore")


def configure_logging(level: str = "INFO") -> None:
    """Send service logs to stdout. Safe to call more than once."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    for name in _SERVICE_LOGGERS:
        log = logging.getLogger(name)
        log.setLevel(level)
        for existing in list(log.handlers):
            if getattr(existing, "_assetstore_handler", False):
                log.removeHandler(existing)
        handler._assetstore_handler = True  # type: ignore[attr-defined]
        log.addHandler(handler)

"""Logging configuration for the Stackseam backend."""
from __future__ import annotations

import logging
import sys


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach one stdout handler to the application logger.

    Every module logs through `logging.getLogger(__name__)`, so all of them
    live under the `src` logger.
    """
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    app_logger = logging.getLogger("src")
    app_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers on repeated create_app() calls
    if not app_logger.handlers:
        app_logger.addHandler(handler)

    # httpx logs every Gemini request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return app_logger

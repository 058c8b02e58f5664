from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Minimal logging configuration for this package.

    Notes:
    - stdlib logging only; the host application owns handlers and formatting.
    - Degraded-dependency denials are logged at WARNING, ordinary denials at
      DEBUG, so ``EXPEDIENTES_LOG_LEVEL=WARNING`` keeps only the operator-relevant lines.
    """

    normalized = level.upper()
    logging.getLogger("expedientes").setLevel(normalized)
    # Child loggers under expedientes.* inherit this level.
    logging.getLogger("expedientes").propagate = True

"""Observability for statescope: structured logging.

Example:
    from statescope.observability import get_logger

    logger = get_logger("statescope.engine")
    logger.info("Exploration started", strategy="breadth-first")
"""

from statescope.observability.logging import (
    BoundLogger,
    HumanReadableFormatter,
    StructuredFormatter,
    StructuredLogger,
    configure_logging,
    get_context,
    get_logger,
    log_context,
)

__all__ = [
    "BoundLogger",
    "HumanReadableFormatter",
    "StructuredFormatter",
    "StructuredLogger",
    "configure_logging",
    "get_context",
    "get_logger",
    "log_context",
]

"""Logging infrastructure for fullscore.

@public

Example:
    >>> from fullscore.logging import get_score_logger
    >>>
    >>> logger = get_score_logger(__name__)
    >>> logger.info("Slot claimed")

Note:
    Modules never call logging.getLogger() directly; get_score_logger()
    keeps Prefect integration and lazy configuration consistent.
"""

from .logging_config import LoggingConfig, get_score_logger, setup_logging

__all__ = [
    "LoggingConfig",
    "setup_logging",
    "get_score_logger",
]

"""
Logging utilities for consistent logging setup across the application.
"""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(logger: logging.Logger, log_level: int, handler: Optional[logging.Handler] = None) -> None:
    """
    Set up a logger with a handler and standard formatter.
    Library modules only call logging.getLogger(__name__); entry points call this.

    Args:
        logger: The logger instance to configure
        log_level: The logging level to set
        handler: Handler to attach (default: StreamHandler on stderr)
    """
    logger.setLevel(log_level)
    if not logger.handlers:
        handler = handler or logging.StreamHandler()
        handler.setLevel(log_level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

"""Logging configuration for the Helm repository tracker.

The logger is set up from environment variables and is silent by default.

Environment Variables:
    LOG_FILE: Path to log file (if not set, records go to stderr)
    LOG_LEVEL: Logging level (0=silent, 1=info, 2=debug, default=0)
"""

import logging
import os
import sys


def setup_logger() -> logging.Logger:
    """Configure logging based on environment variables.

    Environment Variables:
        LOG_FILE: Path to log file (optional, defaults to stderr)
        LOG_LEVEL: Logging verbosity (0=silent, 1=info, 2=debug, default=0)

    Returns:
        logging.Logger: Configured logger instance named "hubtracker"
    """
    log_file = os.environ.get("LOG_FILE")
    try:
        log_level = int(os.environ.get("LOG_LEVEL", "0"))
    except ValueError:
        log_level = 0  # fallback

    if log_level <= 0:
        level = logging.CRITICAL + 1  # effectively disables all logging
    elif log_level == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logger = logging.getLogger("hubtracker")
    logger.setLevel(level)
    logger.handlers.clear()  # avoid duplicate handlers

    handler: logging.Handler
    if log_file:
        try:
            handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as e:
            handler = logging.StreamHandler(sys.stderr)
            logger.error(f"Invalid log file path: {e}")
    else:
        handler = logging.StreamHandler(sys.stderr)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


# Module-level logger that others can import
logger = setup_logger()

"""Logging Utilities for the Recipe Import Pipeline
=================================================

Centralized logging configuration and utilities.

Usage:
    from tools.logging_utils import get_logger

    logger = get_logger(__name__)
    logger.info("Operation completed successfully")
    logger.error("Operation failed")

Standards:
    - Backend/operational code: MUST use logger
    - User-facing output: Use print() for CLI
    - Configuration: config.LOGGING_CONFIG
    - Location: data/logs/recipe_import.log (10MB rotation, 5 backups)
"""

import logging
import logging.config
import threading

from config import LOGGING_CONFIG, LOG_DIR

_setup_lock = threading.Lock()
_configured = False


def setup_logging():
    """
    Initialize logging configuration once.

    Thread-safe and idempotent - safe to call multiple times.
    """
    global _configured
    with _setup_lock:
        if _configured:
            return
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            logging.config.dictConfig(LOGGING_CONFIG)
        except (OSError, ValueError) as e:
            # Read-only data dir: keep console logging only
            logging.basicConfig(level=logging.INFO)
            logging.getLogger(__name__).warning(f"⚠️ File logging disabled: {e}")
        _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get logger for module.

    Args:
        name: Module name (use __name__)

    Returns:
        Configured logger instance
    """
    setup_logging()
    return logging.getLogger(name)

"""Logging configuration shared by the engine and the command line.

Usage:
    from kindle_vocab.logging_setup import get_logger

    logger = get_logger(__name__)
    logger.info("Opened store %s", path)
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
DATE_FORMAT = "%H:%M:%S"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger with a single console handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR). Defaults to INFO.
    """
    log_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    # spaCy and its model loaders are chatty at INFO
    logging.getLogger("spacy").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

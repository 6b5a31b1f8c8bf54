# Centralized logging configuration for the natours package.

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_LOG_LEVEL = "INFO"

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

NOISY_LIBRARIES = ["httpx", "httpcore", "stripe"]


def setup_logging(level: str = DEFAULT_LOG_LEVEL):
    """
    Configures logging for the application.

    Sets a standard format and directs logs to stderr. Invalid levels fall
    back to INFO. Louder libraries are set to WARNING.
    """
    log_level_name = (level or DEFAULT_LOG_LEVEL).upper()
    if log_level_name not in VALID_LOG_LEVELS:
        print(
            f"WARNING: Invalid LOG_LEVEL '{log_level_name}'. "
            f"Defaulting to {DEFAULT_LOG_LEVEL}. "
            f"Valid levels are: {', '.join(VALID_LOG_LEVELS)}",
            file=sys.stderr,
        )
        log_level_name = DEFAULT_LOG_LEVEL

    logging.basicConfig(
        level=getattr(logging, log_level_name),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_level_name

"""
Logging Configuration
Sets up the loggers of the DPD packages.
"""
import logging
import sys
from typing import Optional

PACKAGES = ("forces", "integrators", "solvers", "system")


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configures the loggers of every package in this project.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
    """
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w', encoding='utf-8'))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    for name in PACKAGES:
        logger = logging.getLogger(name)
        logger.setLevel(level)

        # Avoid duplicate logs when called twice
        if logger.hasHandlers():
            for old in logger.handlers:
                old.close()
            logger.handlers.clear()
        for handler in handlers:
            logger.addHandler(handler)
        logger.propagate = False

    logging.getLogger(__name__).info("Logging initialized.")

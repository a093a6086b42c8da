"""
Logging setup for the ``parley`` logger hierarchy.

Library modules only call ``get_logger(__name__)``; handlers are attached by
``setup_logging``, which the CLI calls once. Embedding applications can skip
it and configure the ``parley`` logger themselves.
"""

import logging
import sys
from pathlib import Path

from parley.config.settings import Settings

LOGGER_NAME = "parley"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        original = record.levelname
        if original in self.COLORS:
            record.levelname = f"{self.COLORS[original]}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            # Other handlers share the record
            record.levelname = original


def setup_logging(settings: Settings) -> logging.Logger:
    """
    Attach console (stderr) and optional file handlers to the ``parley`` logger.

    Stdout is left to command output. Colors are used only when stderr is a
    terminal.

    Returns:
        The configured ``parley`` logger
    """
    level = getattr(logging, settings.log_level)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    formatter_cls = ColoredFormatter if sys.stderr.isatty() else logging.Formatter
    console_handler.setFormatter(formatter_cls(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``parley`` namespace; ``parley.*`` names are used as-is."""
    if name == LOGGER_NAME or name.startswith(f"{LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")

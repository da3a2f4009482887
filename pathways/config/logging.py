"""
Logging for the ``pathways`` logger tree.

Every module logs through ``get_logger(__name__)``. setup_logging() attaches
a console handler on stderr (stdout is reserved for CLI answers) and, when
Settings.log_file is set, a plain-text file handler. LiteLLM and httpx log
every request at INFO; they are held at WARNING unless Pathways itself runs
at DEBUG.
"""

import copy
import logging
import sys
from pathlib import Path

from pathways.config.settings import Settings

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore")


class LevelColorFormatter(logging.Formatter):
    """
    Paint the level name with an ANSI color per level.

    The record is copied before it is changed, so handlers that format the
    same record later (the log file) still see the plain level name.
    """

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, *args, use_color: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname)
        if not self.use_color or color is None:
            return super().format(record)
        record = copy.copy(record)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(settings: Settings) -> None:
    """
    Configure the ``pathways`` logger tree from settings.

    Safe to call more than once: existing handlers are replaced.

    Args:
        settings: Application settings containing log configuration
    """
    level = getattr(logging, settings.log_level)
    logger = logging.getLogger("pathways")
    logger.setLevel(level)
    logger.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(
        LevelColorFormatter(CONSOLE_FORMAT, DATE_FORMAT, use_color=sys.stderr.isatty())
    )
    logger.addHandler(console)

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
        logger.addHandler(file_handler)

    logger.propagate = False

    third_party_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    logger.debug(
        f"Logging at {settings.log_level}"
        + (f", also writing to {settings.log_file}" if settings.log_file else "")
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Module names that already live under ``pathways`` are used as-is so
    that ``get_logger(__name__)`` does not double the prefix.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    if name == "pathways" or name.startswith("pathways."):
        return logging.getLogger(name)
    return logging.getLogger(f"pathways.{name}")

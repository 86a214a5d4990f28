"""
Logging setup shared across relaycord.

Console output goes through Rich when stdout is a TTY and plain formatted
lines otherwise.  When ``RELAYCORD_LOG_DIR`` is set every logger also writes
to a rotating log file, with errors duplicated into a separate file so
delivery problems are easy to spot after the fact.
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler

from rich.logging import RichHandler

_PLAIN_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_LOG_FILE = "relaycord.log"
_ERROR_LOG_FILE = "relaycord-error.log"
_MAX_BYTES = 5 * 1024 * 1024


def _file_handlers(log_dir: str) -> list[logging.Handler]:
    os.makedirs(log_dir, exist_ok=True)
    formatter = logging.Formatter(_FILE_FORMAT)

    everything = RotatingFileHandler(
        os.path.join(log_dir, _LOG_FILE), maxBytes=_MAX_BYTES, backupCount=3, encoding="utf-8"
    )
    everything.setFormatter(formatter)

    errors = RotatingFileHandler(
        os.path.join(log_dir, _ERROR_LOG_FILE), maxBytes=_MAX_BYTES, backupCount=3, encoding="utf-8"
    )
    errors.setLevel(logging.ERROR)
    errors.setFormatter(formatter)
    return [everything, errors]


def setup_log_system(name: str, *, level: str | None = None) -> logging.Logger:
    """
    Create (or return) a configured logger.

    - Honours LOG_LEVEL env var (default INFO) unless a ``level`` is explicitly passed.
    - Uses RichHandler when stdout is a TTY and NO_COLOR is not set.
    - Adds rotating file handlers when RELAYCORD_LOG_DIR is set.
    - Avoids duplicate handlers if called multiple times for the same logger.
    """
    level_str = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_str, logging.INFO)

    logger = logging.getLogger(name)
    if logger.handlers:
        logger.setLevel(log_level)
        return logger

    no_colour = os.getenv("NO_COLOR") is not None
    is_tty = sys.stdout.isatty()

    handler: logging.Handler
    if not no_colour and is_tty:
        handler = RichHandler(
            rich_tracebacks=True,
            show_time=True,
            show_level=True,
            show_path=False,
            markup=False,
        )
        # RichHandler does its own formatting of time/level
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT, datefmt="%H:%M:%S"))

    logger.addHandler(handler)

    log_dir = os.getenv("RELAYCORD_LOG_DIR")
    if log_dir:
        for file_handler in _file_handlers(log_dir):
            logger.addHandler(file_handler)

    logger.setLevel(log_level)
    # Only this logger owns console handlers, so propagating to root does not
    # duplicate console output but still lets test capture and host handlers see records.
    logger.propagate = True
    return logger


# Convenience alias
get_logger = setup_log_system

"""Logging configuration for PolySub."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Iterable, Optional

from .utils import ensure_dir_exists

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# SDK transports log every HTTP request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "google_genai", "urllib3")


def setup_logging(
    log_level: int = logging.INFO,
    log_dir: Optional[str] = "logs",
    log_file: str = "polysub.log",
    quiet: Iterable[str] = NOISY_LOGGERS
) -> Optional[str]:
    """
    Routes PolySub logs to stdout and to a rotating file.

    The console shows ``log_level`` and above; the file always records DEBUG so a
    failed batch run can be diagnosed afterwards. Calling this again (the CLI
    does, once the config names the real log directory) replaces the handlers.

    Args:
        log_level: Console level, e.g. logging.INFO.
        log_dir: Directory for the log file, or None for console-only logging.
        log_file: File name inside ``log_dir``.
        quiet: Third-party loggers lowered to WARNING.

    Returns:
        The log file path, or None when file logging is off or failed.
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    root.setLevel(min(log_level, logging.DEBUG) if log_dir else log_level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    console.setLevel(log_level)
    root.addHandler(console)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not log_dir:
        return None

    log_path = os.path.join(log_dir, log_file)
    try:
        ensure_dir_exists(log_dir)
        file_handler = RotatingFileHandler(log_path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding='utf-8')
    except Exception as e:
        # Console logging still works without the file handler
        root.error(f"Failed to set up file logging at {log_path}: {e}", exc_info=True)
        return None

    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)
    root.addHandler(file_handler)
    root.debug(f"Logging initialized. Log file: {log_path}")
    return log_path

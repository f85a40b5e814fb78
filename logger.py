"""Logging for Blink reminders.

Everything logs through one `blink` logger: a log file per day under LOG_DIR,
mirrored to stdout when running in a terminal. Import it as
`from logger import logger`.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from config import LOG_DIR, LOG_LEVEL

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
CONSOLE_DATEFMT = "%H:%M:%S"


def _configure(handler: logging.Handler, level: int, fmt: str, datefmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _interactive() -> bool:
    return sys.stdout is not None and sys.stdout.isatty()


def setup_logging(
    name: str = "blink",
    level: str = LOG_LEVEL,
    log_dir: Path = LOG_DIR,
    console: bool = None,
) -> logging.Logger:
    """Build the named logger from scratch.

    Args:
        name: Logger name
        level: Level name such as "DEBUG"; unknown names mean INFO
        log_dir: Directory for the dated log files
        console: Mirror to stdout (defaults to whether stdout is a terminal)

    Returns:
        The configured logger
    """
    log = logging.getLogger(name)
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    log.setLevel(numeric_level)

    # reconfiguring replaces handlers rather than stacking duplicates
    for handler in log.handlers:
        handler.close()
    log.handlers.clear()

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    today_file = log_dir / f"{datetime.now():%Y-%m-%d}.log"
    log.addHandler(_configure(
        logging.FileHandler(today_file, encoding="utf-8"), numeric_level, FILE_FORMAT, FILE_DATEFMT
    ))

    if console is None:
        console = _interactive()
    if console:
        log.addHandler(_configure(
            logging.StreamHandler(sys.stdout), numeric_level, CONSOLE_FORMAT, CONSOLE_DATEFMT
        ))

    return log


logger = setup_logging()

#!/usr/bin/env python3
"""
Logging setup for the autoscaler service

Every record carries the fleet id so that logs of several autoscalers
shipped to one place can be told apart.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(asctime)s - [%(fleet_id)s] %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - [%(fleet_id)s] %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s"

# Third-party loggers that only matter at WARNING and above
QUIET_LOGGERS = ("requests", "urllib3", "uvicorn.access")


class ColoredFormatter(logging.Formatter):
    """Colors the level name on the console"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname)
        if color is None:
            return super().format(record)
        # Color a copy so file handlers sharing the record stay plain
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


class FleetContextFilter(logging.Filter):
    """Stamps records with the fleet id unless the caller set one"""

    def __init__(self, fleet_id: str):
        super().__init__()
        self.fleet_id = fleet_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "fleet_id"):
            record.fleet_id = self.fleet_id
        return True


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    enable_colors: bool = True,
    fleet_id: str = "-"
) -> None:
    """
    Configure the root logger for the service

    Args:
        level: Logging level name
        log_file: Also write to this file when set
        enable_colors: Color level names on the console
        fleet_id: Fleet id stamped on every record
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    context = FleetContextFilter(fleet_id)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.addFilter(context)
    console_handler.setFormatter(
        ColoredFormatter(CONSOLE_FORMAT) if enable_colors else logging.Formatter(CONSOLE_FORMAT)
    )
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(numeric_level)
        file_handler.addFilter(context)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {level} level")
    if log_file:
        logger.info(f"Log file: {log_file}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_separator(logger: logging.Logger, title: str, width: int = 60) -> None:
    """Log a banner line, e.g. at the start of every tick"""
    logger.info("=" * width)
    logger.info(title.center(width))
    logger.info("=" * width)


def log_section(logger: logging.Logger, title: str) -> None:
    logger.debug(f"--- {title} ---")

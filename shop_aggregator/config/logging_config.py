# shop_aggregator/config/logging_config.py

"""Per-run timestamped logging for shop_aggregator.

Every process writes one ``logs/run_YYYYmmdd_HHMMSS.log`` file at DEBUG
level; all ``shop_aggregator.*`` loggers (coordinator, gate, quota,
cache, adapters) propagate into it, so one fan-out can be followed
across worker threads by the ``threadName`` column.  The console only
shows WARNING+ unless the caller asks for more.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from shop_aggregator.config.settings import Settings

ROOT_LOGGER = "shop_aggregator"

_DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(threadName)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)

_CONSOLE_FORMAT = "%(levelname)-8s | %(name)s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _run_file(logger: logging.Logger) -> Path | None:
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)
    return None


def _is_console(handler: logging.Handler) -> bool:
    return isinstance(handler, logging.StreamHandler) and not isinstance(
        handler, logging.FileHandler
    )


def setup_logging(
    logs_dir: Path | None = None,
    console_level: int = logging.WARNING,
) -> Path:
    """Attach the run-file and console handlers to the project logger.

    Args:
        logs_dir: Directory for run files (defaults to ``Settings.LOGS_DIR``).
        console_level: Threshold for the stderr handler.

    Returns:
        Path of this run's log file.  A repeated call keeps the existing
        handlers, only adjusts the console threshold and returns the
        file already in use.
    """
    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(logging.DEBUG)

    current = _run_file(root_logger)
    if current is not None:
        for handler in root_logger.handlers:
            if _is_console(handler):
                handler.setLevel(console_level)
        return current

    directory = logs_dir or Settings.LOGS_DIR
    directory.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = directory / f"run_{timestamp}.log"

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.debug("Run log opened at %s", log_file)
    return log_file

"""Logging setup for the agentrelay command line."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

FILE_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Third-party loggers that are chatty at INFO
_NOISY_LOGGERS = ("slack_sdk", "aiohttp")


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """
    Configure the root logger.

    Console output goes through a ``RichHandler`` on stderr. When ``log_file``
    is given, records are also written to a rotating file.

    Args:
        level: Log level name for agentrelay loggers.
        log_file: Optional path of a rotating log file.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    for handler in list(root.handlers):
        root.removeHandler(handler)

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        root.addHandler(file_handler)

    if root.level < logging.WARNING:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

"""
Logging setup for export runs.

The console gets rich-formatted messages (WARNING unless verbose) on stderr,
so VCF written to stdout stays clean. Every run also gets a rotating DEBUG
log file under <log_dir>/logs.
"""

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Libraries whose DEBUG output drowns the per-window messages
QUIET_LOGGERS = ("urllib3", "requests", "fsspec")

_log_file: Optional[Path] = None


def setup_logging(
    log_dir: Optional[str] = None,
    job_name: str = "vcf_dumper",
    console_level: int = logging.WARNING,
    file_level: int = logging.DEBUG,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    console: Optional[Console] = None,
) -> Path:
    """
    Attach a rich console handler and a rotating file handler to the root logger.

    Calling it again before reset_logging() keeps the first configuration.

    Args:
        log_dir: Parent of the logs/ directory (current directory if None)
        job_name: Log file name prefix
        console_level: Minimum level shown on the console
        file_level: Minimum level written to the log file
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files kept
        console: Rich console to log to (a stderr console if None)

    Returns:
        Path of the log file
    """
    global _log_file
    if _log_file is not None:
        return _log_file

    logs = Path(log_dir or Path.cwd()) / "logs"
    logs.mkdir(parents=True, exist_ok=True)
    log_file = logs / f"{job_name}_{datetime.now():%Y%m%d_%H%M%S}.log"

    console_handler = RichHandler(console=console or Console(stderr=True), show_path=False, markup=False)
    console_handler.setLevel(console_level)

    file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
    file_handler.setLevel(file_level)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)
    root.addHandler(console_handler)
    root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _log_file = log_file
    logging.getLogger(__name__).debug(f"Logging to {log_file}")
    return log_file


def reset_logging() -> None:
    """Close and remove the handlers installed by setup_logging()."""
    global _log_file
    if _log_file is None:
        return
    _log_file = None

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, (RichHandler, RotatingFileHandler)):
            root.removeHandler(handler)
            handler.close()

"""
Logging setup for sizefit.

Library modules only create loggers via logging.getLogger(__name__);
handlers are attached here, by the command-line entry point.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


LOGGER_NAME = "sizefit"
LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def _write_header(log_path: Path) -> None:
    """Write log file header"""
    with open(log_path, 'w', encoding='utf-8') as f:
        f.write("=" * 70 + "\n")
        f.write("SIZEFIT - LOG FILE\n")
        f.write(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"Log file: {log_path}\n")
        f.write("=" * 70 + "\n\n")


def configure_logging(
    log_file: Union[str, Path, None] = None,
    level: int = logging.INFO,
    stream: bool = True,
) -> logging.Logger:
    """Attach handlers to the package logger.

    The log file is overwritten on each run.

    Args:
        log_file: Optional file to write to
        level: Minimum level for the package logger
        stream: Also log to stderr

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Re-configuring replaces handlers instead of stacking them
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _write_header(log_path)
        file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if stream:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    logger.propagate = False
    return logger


def log_separator(logger: Optional[logging.Logger] = None) -> None:
    """Log a visual separator"""
    (logger or logging.getLogger(LOGGER_NAME)).info("=" * 70)

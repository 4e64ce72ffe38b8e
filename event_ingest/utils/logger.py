"""
Logging utilities shared by every pipeline component.

Key Features:
    - Console output plus one size-rotated log file per process run
    - Date-based log directories with automatic cleanup of old runs
    - Per-message log prefixes so one message can be traced through all stages
    - Timing helper for external calls
"""

import datetime
import logging
import os
import sys
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE_BASENAME = "event_ingest"

LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

MAX_LOG_SIZE_BYTES = 5 * 1024 * 1024
MAX_BACKUP_COUNT = 10
LOG_RETENTION_DAYS = 7

_run_started = datetime.datetime.now()
_run_dir = LOG_DIR / _run_started.strftime("%Y-%m-%d")
_run_dir.mkdir(exist_ok=True)

# Every logger in the process writes to the same run file
RUN_LOG_FILE = (
    _run_dir / f"{LOG_FILE_BASENAME}_{_run_started.strftime('%Y-%m-%d_%H-%M-%S')}.log"
)

_shared_file_handler: logging.Handler | None = None
_cleanup_done = False


class SafeRotatingFileHandler(RotatingFileHandler):
    """Size-based rotation that keeps writing to the current file if rollover fails."""

    def doRollover(self):
        try:
            super().doRollover()
        except OSError as e:
            sys.stderr.write(
                f"Log rotation failed: {e}. Continuing with current log file.\n"
            )
            sys.stderr.flush()


def _get_log_level(level_str: str) -> int:
    level = logging.getLevelName(level_str.upper())
    return level if isinstance(level, int) else logging.INFO


def _get_file_handler() -> logging.Handler:
    global _shared_file_handler
    if _shared_file_handler is None:
        _shared_file_handler = SafeRotatingFileHandler(
            RUN_LOG_FILE,
            maxBytes=MAX_LOG_SIZE_BYTES,
            backupCount=MAX_BACKUP_COUNT,
            encoding="utf-8",
        )
        _shared_file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return _shared_file_handler


def setup_logger(name: str, level: str | None = None) -> logging.Logger:
    """Set up logger with both console and file handlers."""
    global _cleanup_done

    logger = logging.getLogger(name)
    log_level = _get_log_level(level or DEFAULT_LOG_LEVEL)
    logger.setLevel(log_level)

    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))

    logger.addHandler(console_handler)
    logger.addHandler(_get_file_handler())

    if not _cleanup_done:
        cleanup_old_logs(keep_days=LOG_RETENTION_DAYS)
        _cleanup_done = True

    return logger


def message_log_prefix(message_id: str | None, record_id: str | None = None) -> str:
    """Build the `[Msg:...]` prefix used to trace one message through the pipeline."""
    parts = [f"Msg:{message_id or 'unknown'}"]
    if record_id:
        parts.append(f"Rec:{record_id}")
    return "[" + " ".join(parts) + "] "


def truncate_for_log(value, limit: int = 500) -> str:
    text = value if isinstance(value, str) else repr(value)
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... ({len(text)} chars)"


@contextmanager
def log_duration(logger: logging.Logger, operation: str, slow_threshold: float = 30.0):
    """Log how long the wrapped block took, warning when it is slow."""
    start_time = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start_time
        logger.debug(f"{operation} finished in {duration:.4f}s")
        if duration > slow_threshold:
            logger.warning(f"Slow operation: {operation} took {duration:.4f}s")


def cleanup_old_logs(keep_days: int = LOG_RETENTION_DAYS):
    """Remove date directories and log files older than `keep_days`."""
    cutoff = datetime.datetime.now() - datetime.timedelta(days=keep_days)
    deleted_count = 0
    failed_count = 0

    for date_dir in LOG_DIR.iterdir():
        if not date_dir.is_dir():
            continue
        try:
            dir_date = datetime.datetime.strptime(date_dir.name, "%Y-%m-%d")
        except ValueError:
            continue
        if dir_date >= cutoff:
            continue
        for log_file in date_dir.glob(f"{LOG_FILE_BASENAME}_*.log*"):
            try:
                log_file.unlink()
                deleted_count += 1
            except OSError:
                failed_count += 1
        try:
            date_dir.rmdir()
        except OSError:
            pass  # not empty

    if deleted_count or failed_count:
        sys.stderr.write(
            f"Log cleanup completed: {deleted_count} files deleted, {failed_count} failed\n"
        )

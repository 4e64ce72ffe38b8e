"""
Common utilities package for the event ingest service.

Logging, retry policies, JSON recovery from model replies, chat text
processing and reference-timezone conversions.
"""

from event_ingest.utils.json_parser import extract_json_object
from event_ingest.utils.logger import (
    log_duration,
    message_log_prefix,
    setup_logger,
    truncate_for_log,
)
from event_ingest.utils.retry_utils import (
    RetryPolicy,
    is_retryable_db_error,
    is_retryable_status,
    with_retry,
)

__all__ = [
    # JSON parsing utilities
    "extract_json_object",
    # Logging utilities
    "setup_logger",
    "message_log_prefix",
    "truncate_for_log",
    "log_duration",
    # Retry utilities
    "RetryPolicy",
    "with_retry",
    "is_retryable_status",
    "is_retryable_db_error",
]

from event_ingest.db_handlers.api_usage import ApiUsageDBHandler
from event_ingest.db_handlers.base import (
    BaseDBHandler,
    DatabaseUnavailableError,
    check_local_db,
)
from event_ingest.db_handlers.event_record import EventRecordDBHandler

__all__ = [
    "BaseDBHandler",
    "DatabaseUnavailableError",
    "check_local_db",
    "EventRecordDBHandler",
    "ApiUsageDBHandler",
]

"""
Database models for event ingestion.
"""

from event_ingest.models.api_usage import ApiUsage
from event_ingest.models.event_record import EventRecord

__all__ = [
    "EventRecord",
    "ApiUsage",
]

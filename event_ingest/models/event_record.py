"""
EventRecord model - one row per accepted chat message.

Lifecycle:
    pending (event is NULL, inserted at intake so identical arrivals are caught)
    → active (event populated by the pipeline)
    → updated in place, prior content pushed onto previous_versions
    → deleted (rejected at any stage; never soft-deleted)

The message text is duplicated into `message_text` so a generated tsvector
column can back candidate search.
"""

from sqlalchemy import Boolean, Column, Computed, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, TSVECTOR

from event_ingest.models.base import SCHEMA_NAME, Base, TimestampMixin, UUIDMixin


class EventRecord(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "event_records"
    __table_args__ = (
        Index("ix_event_records_message_signature", "message_signature"),
        Index("ix_event_records_is_active", "is_active"),
        Index("ix_event_records_search_vector", "search_vector", postgresql_using="gin"),
        {"schema": SCHEMA_NAME},
    )

    raw_message = Column(
        JSONB,
        nullable=False,
        comment="Captured chat message: id, senderId, groupId, text, media, timestamp",
    )

    message_text = Column(
        Text,
        nullable=False,
        default="",
        comment="Raw message text, indexed for candidate search",
    )

    media = Column(
        JSONB(none_as_null=True),
        nullable=True,
        comment="Object-store reference {url, id, mimetype} of uploaded media",
    )

    event = Column(
        JSONB(none_as_null=True),
        nullable=True,
        comment="Validated event document; NULL while the message is pending",
    )

    previous_versions = Column(
        JSONB,
        nullable=False,
        default=list,
        comment="Snapshots {event, rawMessage, media, timestamp} replaced by updates",
    )

    is_active = Column(Boolean, nullable=False, default=True)

    message_signature = Column(
        String(64),
        nullable=True,
        comment="SHA-256 of the normalized message text, used for deduplication",
    )

    ocr_text = Column(Text, nullable=True, comment="Text transcribed from attached media")

    search_vector = Column(
        TSVECTOR,
        Computed("to_tsvector('simple', coalesce(message_text, ''))", persisted=True),
    )

    def __repr__(self):
        return (
            f"<EventRecord(id={self.id}, active={self.is_active}, "
            f"pending={self.event is None}, signature={(self.message_signature or '')[:12]})>"
        )

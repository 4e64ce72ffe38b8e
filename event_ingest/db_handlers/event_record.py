"""
PostgreSQL-backed event record store.

Reads fail open (None / empty list) and writes fail closed (None / False):
a database outage degrades the pipeline to "proceed without persistence"
and is never raised to callers.
"""

import uuid
from functools import reduce
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from event_ingest.db import Database
from event_ingest.db_handlers.base import BaseDBHandler, check_local_db
from event_ingest.models.event_record import EventRecord
from event_ingest.schemas import (
    CandidateEvent,
    EventVersion,
    ExtractedEvent,
    MediaRef,
    RawMessage,
    StoredEventRecord,
)
from event_ingest.services.store_interface import EventStoreInterface
from event_ingest.utils.logger import setup_logger
from event_ingest.utils.retry_utils import RetryPolicy

logger = setup_logger("event_record_db_handler")


def _as_uuid(record_id: str | uuid.UUID) -> uuid.UUID:
    return record_id if isinstance(record_id, uuid.UUID) else uuid.UUID(str(record_id))


def _media_document(media: MediaRef | None) -> dict[str, Any] | None:
    return media.model_dump(by_alias=True, mode="json") if media else None


def _raw_message_document(raw_message: RawMessage) -> dict[str, Any]:
    return raw_message.model_dump(by_alias=True, mode="json")


def to_stored_record(row: EventRecord) -> StoredEventRecord:
    return StoredEventRecord.model_validate(
        {
            "id": str(row.id),
            "createdAt": row.created_at,
            "updatedAt": row.updated_at,
            "rawMessage": row.raw_message,
            "media": row.media,
            "event": row.event,
            "previousVersions": row.previous_versions or [],
            "isActive": row.is_active,
            "messageSignature": row.message_signature,
            "ocrText": row.ocr_text,
        }
    )


class EventRecordDBHandler(BaseDBHandler[EventRecord], EventStoreInterface):
    def __init__(self, database: Database | None, retry_policy: RetryPolicy | None = None):
        super().__init__(EventRecord, database, retry_policy)

    # ===========================================
    # Queries
    # ===========================================

    @check_local_db
    async def _find_active_by_signature(
        self, signature: str, *, db: AsyncSession = None
    ) -> EventRecord | None:
        stmt = (
            select(EventRecord)
            .where(
                EventRecord.message_signature == signature,
                EventRecord.is_active.is_(True),
            )
            .order_by(EventRecord.created_at.asc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalars().first()

    @check_local_db
    async def _search(
        self,
        keys: list[str],
        exclude_id: uuid.UUID | None,
        limit: int,
        *,
        db: AsyncSession = None,
    ) -> list[tuple[uuid.UUID, str, dict | None]]:
        tsquery = reduce(
            lambda left, right: left.op("||")(right),
            [func.plainto_tsquery("simple", key) for key in keys],
        )
        stmt = (
            select(EventRecord.id, EventRecord.message_text, EventRecord.event)
            .where(
                EventRecord.is_active.is_(True),
                EventRecord.event.is_not(None),
                EventRecord.search_vector.op("@@")(tsquery),
            )
            .order_by(
                func.ts_rank(EventRecord.search_vector, tsquery).desc(),
                EventRecord.created_at.desc(),
            )
            .limit(limit)
        )
        if exclude_id is not None:
            stmt = stmt.where(EventRecord.id != exclude_id)
        result = await db.execute(stmt)
        return [tuple(row) for row in result.all()]

    @check_local_db
    async def _append_version(
        self, record_id: uuid.UUID, version: dict[str, Any], *, db: AsyncSession = None
    ) -> bool:
        row = await self.get_by_id(record_id, db=db)
        if row is None:
            return False
        row.previous_versions = [*(row.previous_versions or []), version]
        db.add(row)
        await db.flush()
        return True

    # ===========================================
    # EventStoreInterface
    # ===========================================

    async def find_by_signature(self, signature: str) -> StoredEventRecord | None:
        if not signature:
            return None
        try:
            row = await self._find_active_by_signature(signature)
        except Exception as e:
            logger.error(f"find_by_signature failed, treating as not found: {e}")
            return None
        return to_stored_record(row) if row else None

    async def insert(
        self,
        raw_message: RawMessage,
        media: MediaRef | None,
        message_signature: str | None,
    ) -> str | None:
        try:
            row = await self.create(
                {
                    "raw_message": _raw_message_document(raw_message),
                    "message_text": raw_message.text or "",
                    "media": _media_document(media),
                    "event": None,
                    "previous_versions": [],
                    "is_active": True,
                    "message_signature": message_signature,
                }
            )
        except Exception as e:
            logger.error(f"Failed to insert placeholder record: {e}", exc_info=True)
            return None
        logger.info(f"Inserted placeholder record {row.id}")
        return str(row.id)

    async def update(self, record_id: str, event: ExtractedEvent) -> bool:
        try:
            row = await self.update_by_id(
                _as_uuid(record_id), {"event": event.to_document(), "is_active": True}
            )
        except Exception as e:
            logger.error(f"Failed to update record {record_id}: {e}", exc_info=True)
            return False
        return row is not None

    async def update_full(
        self,
        record_id: str,
        event: ExtractedEvent,
        raw_message: RawMessage,
        media: MediaRef | None,
        message_signature: str | None,
    ) -> bool:
        try:
            row = await self.update_by_id(
                _as_uuid(record_id),
                {
                    "event": event.to_document(),
                    "raw_message": _raw_message_document(raw_message),
                    "message_text": raw_message.text or "",
                    "media": _media_document(media),
                    "message_signature": message_signature,
                    "is_active": True,
                },
            )
        except Exception as e:
            logger.error(f"Failed to replace record {record_id}: {e}", exc_info=True)
            return False
        return row is not None

    async def update_ocr_text(self, record_id: str, ocr_text: str) -> bool:
        try:
            row = await self.update_by_id(_as_uuid(record_id), {"ocr_text": ocr_text})
        except Exception as e:
            logger.warning(f"Failed to store OCR text for record {record_id}: {e}")
            return False
        return row is not None

    async def delete(self, record_id: str) -> bool:
        try:
            row = await self.remove(_as_uuid(record_id))
        except Exception as e:
            logger.error(f"Failed to delete record {record_id}: {e}", exc_info=True)
            return False
        if row is None:
            logger.warning(f"Record {record_id} not found for deletion")
            return False
        logger.info(f"Deleted record {record_id}")
        return True

    async def append_version(self, record_id: str, version: EventVersion) -> bool:
        try:
            return await self._append_version(
                _as_uuid(record_id), version.model_dump(by_alias=True, mode="json")
            )
        except Exception as e:
            logger.error(f"Failed to append version to record {record_id}: {e}", exc_info=True)
            return False

    async def text_search(
        self, keys: list[str], exclude_id: str | None, limit: int
    ) -> list[CandidateEvent]:
        keys = [k for k in keys if k and k.strip()]
        if not keys or limit <= 0:
            return []
        try:
            rows = await self._search(
                keys, _as_uuid(exclude_id) if exclude_id else None, limit
            )
        except Exception as e:
            logger.error(f"Candidate search failed, treating as no candidates: {e}")
            return []
        return [
            CandidateEvent(id=str(record_id), text=text or "", event=event)
            for record_id, text, event in rows
        ]

    async def get(self, record_id: str) -> StoredEventRecord | None:
        try:
            row = await self.get_by_id(_as_uuid(record_id))
        except Exception as e:
            logger.error(f"Failed to load record {record_id}: {e}")
            return None
        return to_stored_record(row) if row else None

    async def ping(self) -> bool:
        if self.database is None:
            return False
        return await self.database.ping()


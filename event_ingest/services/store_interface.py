from abc import ABC, abstractmethod

from event_ingest.schemas import (
    CandidateEvent,
    EventVersion,
    ExtractedEvent,
    MediaRef,
    RawMessage,
    StoredEventRecord,
)


class EventStoreInterface(ABC):
    """
    Document store for event records.

    Every method is best-effort: when the store is unreachable, reads return
    None or an empty list and writes return None/False. Implementations never
    raise to the pipeline.
    """

    @abstractmethod
    async def find_by_signature(self, signature: str) -> StoredEventRecord | None:
        """Active record carrying this message signature, if any."""

    @abstractmethod
    async def insert(
        self,
        raw_message: RawMessage,
        media: MediaRef | None,
        message_signature: str | None,
    ) -> str | None:
        """Insert a placeholder record (event = None) and return its id."""

    @abstractmethod
    async def update(self, record_id: str, event: ExtractedEvent) -> bool:
        """Set the record's event."""

    @abstractmethod
    async def update_full(
        self,
        record_id: str,
        event: ExtractedEvent,
        raw_message: RawMessage,
        media: MediaRef | None,
        message_signature: str | None,
    ) -> bool:
        """Replace event, raw message, media and signature of an existing record."""

    @abstractmethod
    async def update_ocr_text(self, record_id: str, ocr_text: str) -> bool:
        """Keep the transcribed image text alongside the record."""

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """Hard-delete a record."""

    @abstractmethod
    async def append_version(self, record_id: str, version: EventVersion) -> bool:
        """Push a snapshot onto the record's previousVersions."""

    @abstractmethod
    async def text_search(
        self, keys: list[str], exclude_id: str | None, limit: int
    ) -> list[CandidateEvent]:
        """Full-text search over active records with an event, never returning `exclude_id`, at most `limit` results."""

    @abstractmethod
    async def get(self, record_id: str) -> StoredEventRecord | None:
        """Fetch a record by id."""

    async def ping(self) -> bool:
        return True

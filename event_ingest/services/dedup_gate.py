from dataclasses import dataclass

from event_ingest.schemas import MediaRef, RawMessage, StoredEventRecord
from event_ingest.services.store_interface import EventStoreInterface
from event_ingest.utils.logger import setup_logger
from event_ingest.utils.text_processing import compute_message_signature

logger = setup_logger("dedup_gate")


@dataclass
class DedupDecision:
    signature: str | None
    duplicate_of: StoredEventRecord | None = None

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate_of is not None


class DedupGate:
    """
    Exactly-once intake per distinct message text.

    The signature is written with the placeholder record before any model
    call, so an identical message arriving while the first is still queued
    is already caught here.
    """

    def __init__(self, store: EventStoreInterface):
        self.store = store

    async def check(self, text: str | None, log_prefix: str = "") -> DedupDecision:
        signature = compute_message_signature(text)
        if signature is None:
            return DedupDecision(signature=None)

        existing = await self.store.find_by_signature(signature)
        if existing is not None:
            logger.info(
                f"{log_prefix}Duplicate message text; matches record {existing.record_id} "
                f"(signature {signature[:12]})"
            )
            return DedupDecision(signature=signature, duplicate_of=existing)
        return DedupDecision(signature=signature)

    async def reserve(
        self,
        message: RawMessage,
        media: MediaRef | None,
        decision: DedupDecision,
        log_prefix: str = "",
    ) -> str | None:
        """Insert the pending placeholder carrying the signature; None if the store refused."""
        record_id = await self.store.insert(message, media, decision.signature)
        if record_id is None:
            logger.error(f"{log_prefix}Placeholder insert failed; message will not be processed")
        return record_id

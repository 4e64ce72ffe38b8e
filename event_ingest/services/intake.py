import base64
import binascii

from event_ingest.config import Settings
from event_ingest.schemas import (
    IncomingMedia,
    IncomingMessageRequest,
    IntakeResponse,
    MediaRef,
    RawMessage,
)
from event_ingest.services.confirmation import (
    ConfirmationService,
    ReasonCode,
    confirmation_context,
    duplicate_detail,
)
from event_ingest.services.dedup_gate import DedupGate
from event_ingest.services.media_store import MediaStoreInterface
from event_ingest.services.message_queue import SequentialQueue
from event_ingest.services.pipeline import PipelineJob
from event_ingest.services.transport import TransportInterface
from event_ingest.utils.logger import message_log_prefix, setup_logger

logger = setup_logger("intake")


class IntakeService:
    """
    Entry point for messages delivered by the transport.

    Filters by group, short-circuits duplicates, uploads media, inserts the
    pending placeholder and hands the job to the sequential queue.
    """

    def __init__(
        self,
        settings: Settings,
        dedup_gate: DedupGate,
        media_store: MediaStoreInterface,
        queue: SequentialQueue[PipelineJob],
        confirmations: ConfirmationService,
        transport: TransportInterface,
    ):
        self.settings = settings
        self.dedup_gate = dedup_gate
        self.media_store = media_store
        self.queue = queue
        self.confirmations = confirmations
        self.transport = transport

    async def _group_name(self, group_id: str) -> str | None:
        try:
            return await self.transport.get_group_name(group_id)
        except Exception as e:
            logger.warning(f"Could not resolve group name for {group_id}: {e}")
            return None

    async def _upload(self, media: IncomingMedia | None, log_prefix: str) -> MediaRef | None:
        if media is None:
            return None
        try:
            content = base64.b64decode(media.data_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"{log_prefix}Discarding undecodable media payload: {e}")
            return None
        return await self.media_store.upload(content, media.filename, media.mimetype)

    async def handle_incoming_message(self, request: IncomingMessageRequest) -> IntakeResponse:
        log_prefix = message_log_prefix(request.message_id)

        if request.from_me:
            return IntakeResponse(status="ignored", detail="Own message")

        if self.settings.discovery_mode:
            group_name = await self._group_name(request.group_id)
            logger.info(
                f"[Discovery] Group: {group_name or '(unknown)'} | ID: {request.group_id} | "
                f"Sender: {request.sender_id} | Text: {(request.text or '')[:80]!r}"
            )
            return IntakeResponse(status="discovery", detail="Discovery mode; message not processed")

        if request.group_id not in self.settings.allowed_group_ids:
            logger.info(f"{log_prefix}Ignoring message from group: {request.group_id}")
            return IntakeResponse(status="ignored", detail="Group not allowed")

        decision = await self.dedup_gate.check(request.text, log_prefix)
        if decision.is_duplicate:
            existing = decision.duplicate_of
            group_name = await self._group_name(request.group_id)
            await self.confirmations.send_confirmation(
                request.text,
                ReasonCode.DUPLICATE_MESSAGE,
                duplicate_detail(existing.record_id, existing.event.title if existing.event else None),
                confirmation_context(existing.record_id, request.group_id, group_name),
            )
            return IntakeResponse(
                status="duplicate", record_id=existing.record_id, detail="Identical message already received"
            )

        media = await self._upload(request.media, log_prefix)
        message = RawMessage(
            id=request.message_id,
            sender_id=request.sender_id,
            group_id=request.group_id,
            text=request.text,
            media=media,
            timestamp=request.timestamp,
        )

        record_id = await self.dedup_gate.reserve(message, media, decision, log_prefix)
        if record_id is None:
            if media is not None:
                await self.media_store.delete(media.media_id)
            return IntakeResponse(status="error", detail="Failed to store message; skipped")

        depth = await self.queue.enqueue(PipelineJob(record_id=record_id, message=message, media=media))
        logger.info(f"{log_prefix}Queued as record {record_id} ({depth} pending)")

        group_name = await self._group_name(request.group_id)
        await self.confirmations.send_confirmation(
            request.text,
            ReasonCode.PROCESSING_STARTED,
            None,
            confirmation_context(record_id, request.group_id, group_name),
        )
        return IntakeResponse(status="queued", record_id=record_id)

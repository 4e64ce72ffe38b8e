"""
Event pipeline - one queued message from placeholder to persisted event.

Flow:
    budget check → OCR → source document → classification → extraction →
    validation → candidate search → comparison → enrichment → persistence →
    confirmation

Every terminal rejection goes through `_cleanup`: the placeholder record is
deleted, uploaded media is freed, and the outcome is confirmed to the
configured groups. `process` is the outer exception boundary; nothing raised
inside a run reaches the queue worker.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from event_ingest.config import Settings
from event_ingest.schemas import (
    ComparisonResult,
    ComparisonStatus,
    EventVersion,
    ExtractedEvent,
    MediaRef,
    RawMessage,
    SourceDocument,
    StoredEventRecord,
)
from event_ingest.services.candidate_matcher import CandidateMatcher
from event_ingest.services.classifier import EventClassifier, rejection_reason
from event_ingest.services.comparator import EventComparator
from event_ingest.services.confirmation import (
    ConfirmationService,
    ReasonCode,
    confirmation_context,
    duplicate_detail,
)
from event_ingest.services.enrichment import Enricher
from event_ingest.services.extractor import EventExtractor
from event_ingest.services.media_store import MediaStoreInterface
from event_ingest.services.ocr_service import OcrService, is_image_url
from event_ingest.services.source_document import build_source_document
from event_ingest.services.store_interface import EventStoreInterface
from event_ingest.services.transport import TransportInterface
from event_ingest.services.usage_tracking import UsageTracker
from event_ingest.services.validator import EventValidator
from event_ingest.utils.logger import log_duration, message_log_prefix, setup_logger
from event_ingest.utils.text_processing import compute_message_signature

logger = setup_logger("pipeline")


@dataclass(frozen=True)
class PipelineJob:
    record_id: str
    message: RawMessage
    media: MediaRef | None = None

    @property
    def log_prefix(self) -> str:
        return message_log_prefix(self.message.message_id, self.record_id)


def version_snapshot(record: StoredEventRecord) -> EventVersion:
    """The record's current content, ready to push onto previousVersions."""
    return EventVersion(
        event=record.event,
        raw_message=record.raw_message,
        media=record.media,
        message_signature=record.message_signature,
        timestamp=record.updated_at or record.created_at or datetime.now(timezone.utc),
    )


class EventPipeline:
    def __init__(
        self,
        *,
        settings: Settings,
        store: EventStoreInterface,
        media_store: MediaStoreInterface,
        transport: TransportInterface,
        confirmations: ConfirmationService,
        classifier: EventClassifier,
        extractor: EventExtractor,
        validator: EventValidator,
        matcher: CandidateMatcher,
        comparator: EventComparator,
        enricher: Enricher,
        ocr: OcrService | None = None,
        usage_tracker: UsageTracker | None = None,
    ):
        self.settings = settings
        self.store = store
        self.media_store = media_store
        self.transport = transport
        self.confirmations = confirmations
        self.classifier = classifier
        self.extractor = extractor
        self.validator = validator
        self.matcher = matcher
        self.comparator = comparator
        self.enricher = enricher
        self.ocr = ocr
        self.usage_tracker = usage_tracker

    async def process(self, job: PipelineJob) -> None:
        log_prefix = job.log_prefix
        group_name = None
        logger.info(f"{log_prefix}Pipeline start")
        try:
            group_name = await self._group_name(job.message.group_id)
            with log_duration(logger, f"{log_prefix}pipeline run"):
                await self._run(job, group_name, log_prefix)
        except Exception as e:
            logger.error(f"{log_prefix}Pipeline error: {e}", exc_info=True)
            await self._cleanup(job, ReasonCode.PIPELINE_ERROR, None, group_name, log_prefix)

    async def _group_name(self, group_id: str | None) -> str | None:
        if not group_id:
            return None
        try:
            return await self.transport.get_group_name(group_id)
        except Exception as e:
            logger.warning(f"Could not resolve group name for {group_id}: {e}")
            return None

    # ===========================================
    # Stages
    # ===========================================

    async def _run(self, job: PipelineJob, group_name: str | None, log_prefix: str) -> None:
        message = job.message
        image_url = job.media.url if job.media and is_image_url(job.media.url, job.media.mimetype) else None

        if self.usage_tracker is not None:
            expects_ocr = bool(image_url and self.ocr and self.ocr.enabled)
            over_budget = await self.usage_tracker.budget_exceeded(expects_ocr=expects_ocr)
            if over_budget:
                logger.error(f"{log_prefix}Skipping message: {over_budget}")
                await self._cleanup(job, ReasonCode.PIPELINE_ERROR, over_budget, group_name, log_prefix)
                return

        if not (message.text or "").strip() and job.media is None:
            logger.info(f"{log_prefix}Skipping - no text")
            await self._cleanup(job, ReasonCode.NO_TEXT, None, group_name, log_prefix)
            return

        document = await self._build_document(job, image_url, log_prefix)

        classification = await self.classifier.classify(
            document.message_text_sanitized or document.ocr_text,
            image_url=image_url,
            log_prefix=log_prefix,
        )
        if classification is None:
            await self._cleanup(job, ReasonCode.AI_CLASSIFICATION_FAILED, None, group_name, log_prefix)
            return
        if not classification.is_event:
            await self._cleanup(
                job, rejection_reason(classification), classification.reason, group_name, log_prefix
            )
            return

        outcome = await self.extractor.extract(document, log_prefix)
        if outcome.event is None:
            await self._cleanup(job, outcome.failure, outcome.detail, group_name, log_prefix)
            return

        validation = self.validator.validate(outcome.event, document.combined_text())
        for correction in validation.corrections:
            logger.info(f"{log_prefix}Validation: {correction}")
        if validation.event is None:
            detail = validation.corrections[-1] if validation.corrections else None
            await self._cleanup(job, ReasonCode.VALIDATION_FAILED, detail, group_name, log_prefix)
            return
        event = validation.event

        candidates = await self.matcher.find_candidates(
            classification.search_keys, job.record_id, log_prefix
        )
        if candidates:
            comparison = await self.comparator.compare(event, message.text or "", candidates, log_prefix)
            if comparison is None:
                await self._cleanup(job, ReasonCode.AI_COMPARISON_FAILED, None, group_name, log_prefix)
                return
        else:
            comparison = ComparisonResult(status=ComparisonStatus.NEW_EVENT, reason="No candidates")

        if comparison.status == ComparisonStatus.EXISTING_EVENT:
            await self._cleanup(
                job,
                ReasonCode.ALREADY_EXISTING,
                duplicate_detail(comparison.matched_candidate_id, event.title),
                group_name,
                log_prefix,
            )
            return

        try:
            enriched = await self.enricher.enrich(event, message.sender_id, job.media, log_prefix)
        except Exception as e:
            logger.error(f"{log_prefix}Enrichment failed: {e}", exc_info=True)
            await self._cleanup(job, ReasonCode.ENRICHMENT_ERROR, None, group_name, log_prefix)
            return

        if comparison.status == ComparisonStatus.UPDATED_EVENT:
            await self._save_update(job, enriched, comparison, group_name, log_prefix)
        else:
            await self._save_new(job, enriched, group_name, log_prefix)

    async def _build_document(
        self, job: PipelineJob, image_url: str | None, log_prefix: str
    ) -> SourceDocument:
        ocr = None
        if image_url and self.ocr is not None and self.ocr.enabled:
            ocr = await self.ocr.recognize(image_url, job.media.mimetype, log_prefix)
            if ocr is not None:
                await self.store.update_ocr_text(job.record_id, ocr.full_text)
        return build_source_document(
            job.message, ocr, job.media, self.settings.message_text_max_length
        )

    # ===========================================
    # Persistence
    # ===========================================

    async def _save_new(
        self, job: PipelineJob, event: ExtractedEvent, group_name: str | None, log_prefix: str
    ) -> None:
        if not await self.store.update(job.record_id, event):
            await self._cleanup(job, ReasonCode.DATABASE_ERROR, None, group_name, log_prefix)
            return
        logger.info(f"{log_prefix}New event saved: {event.title}")
        await self.confirmations.send_confirmation(
            job.message.text,
            ReasonCode.NEW_EVENT,
            event.title or None,
            confirmation_context(job.record_id, job.message.group_id, group_name),
        )

    async def _save_update(
        self,
        job: PipelineJob,
        event: ExtractedEvent,
        comparison: ComparisonResult,
        group_name: str | None,
        log_prefix: str,
    ) -> None:
        target_id = comparison.matched_candidate_id
        existing = await self.store.get(target_id)
        if existing is None:
            logger.error(f"{log_prefix}Matched record {target_id} could not be loaded for update")
            await self._cleanup(job, ReasonCode.DATABASE_ERROR, None, group_name, log_prefix)
            return

        if not await self.store.append_version(target_id, version_snapshot(existing)):
            await self._cleanup(job, ReasonCode.DATABASE_ERROR, None, group_name, log_prefix)
            return
        signature = compute_message_signature(job.message.text)
        if not await self.store.update_full(target_id, event, job.message, job.media, signature):
            await self._cleanup(job, ReasonCode.DATABASE_ERROR, None, group_name, log_prefix)
            return

        # the uploaded media now belongs to the updated record
        if not await self.store.delete(job.record_id):
            logger.warning(f"{log_prefix}Placeholder {job.record_id} could not be removed after update")

        logger.info(
            f"{log_prefix}Updated record {target_id} in place "
            f"({len(existing.previous_versions) + 1} previous version(s)): {comparison.reason}"
        )
        await self.confirmations.send_confirmation(
            job.message.text,
            ReasonCode.UPDATED_EVENT,
            comparison.reason or None,
            confirmation_context(target_id, job.message.group_id, group_name),
        )

    async def _cleanup(
        self,
        job: PipelineJob,
        reason: ReasonCode,
        detail: str | None,
        group_name: str | None,
        log_prefix: str,
    ) -> None:
        """Delete the placeholder and its media, then confirm the outcome. Never raises."""
        logger.info(f"{log_prefix}Discarding message: {reason.value}{f' ({detail})' if detail else ''}")
        if job.media is not None:
            try:
                await self.media_store.delete(job.media.media_id)
            except Exception as e:
                logger.error(f"{log_prefix}Media cleanup failed for {job.media.media_id}: {e}")
        try:
            await self.store.delete(job.record_id)
        except Exception as e:
            logger.error(f"{log_prefix}Record cleanup failed: {e}")
        try:
            await self.confirmations.send_confirmation(
                job.message.text,
                reason,
                detail,
                confirmation_context(job.record_id, job.message.group_id, group_name),
            )
        except Exception as e:
            logger.error(f"{log_prefix}Failed to send {reason.value} confirmation: {e}")

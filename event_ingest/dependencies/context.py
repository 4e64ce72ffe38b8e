"""
Long-lived application context.

Everything with a connection or a background task is built once here at
startup and threaded through the app; no component reaches for a global
connection.
"""

from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from event_ingest.categories import FALLBACK_CATEGORY_ID
from event_ingest.config import Settings
from event_ingest.db import Database
from event_ingest.db_handlers import ApiUsageDBHandler, EventRecordDBHandler
from event_ingest.services.candidate_matcher import CandidateMatcher
from event_ingest.services.classifier import EventClassifier
from event_ingest.services.comparator import EventComparator
from event_ingest.services.confirmation import ConfirmationService
from event_ingest.services.dedup_gate import DedupGate
from event_ingest.services.enrichment import Enricher
from event_ingest.services.extractor import EventExtractor
from event_ingest.services.intake import IntakeService
from event_ingest.services.llm_interface import LLMInterface
from event_ingest.services.llm_service import LLMService, create_llm_client, llm_retry_policy
from event_ingest.services.media_store import LocalMediaStore, MediaStoreInterface
from event_ingest.services.message_queue import SequentialQueue
from event_ingest.services.ocr_service import OcrService
from event_ingest.services.pipeline import EventPipeline, PipelineJob
from event_ingest.services.store_interface import EventStoreInterface
from event_ingest.services.transport import (
    HttpTransportBridge,
    NullTransport,
    TransportInterface,
)
from event_ingest.services.usage_tracking import UsageTracker
from event_ingest.services.validator import EventValidator
from event_ingest.utils.logger import setup_logger

logger = setup_logger("app_context")


@dataclass
class AppContext:
    settings: Settings
    database: Database | None
    store: EventStoreInterface
    media_store: MediaStoreInterface
    transport: TransportInterface
    llm: LLMService
    pipeline: EventPipeline
    queue: SequentialQueue[PipelineJob]
    intake: IntakeService

    async def start(self):
        if self.database is not None:
            try:
                await self.database.init_db()
            except Exception as e:
                logger.critical(f"Database initialization failed: {e}", exc_info=True)
        if not await self.store.ping():
            logger.critical("Database connectivity check failed; running without persistence.")
        self.queue.start()

    async def close(self):
        await self.queue.stop(drain=True)
        await self.llm.close()
        await self.transport.close()
        if self.database is not None:
            await self.database.close()


def build_app_context(
    settings: Settings,
    *,
    database: Database | None = None,
    store: EventStoreInterface | None = None,
    usage_store=None,
    media_store: MediaStoreInterface | None = None,
    transport: TransportInterface | None = None,
    llm_client: LLMInterface | None = None,
) -> AppContext:
    """Wire every collaborator. Anything passed in replaces the configured default."""
    if database is None and store is None:
        database = Database.from_settings(settings)
    store = store or EventRecordDBHandler(database)
    usage_store = usage_store or ApiUsageDBHandler(database)
    media_store = media_store or LocalMediaStore(
        settings.media_root, settings.media_public_base_url
    )
    if transport is None:
        if settings.transport_base_url:
            transport = HttpTransportBridge(
                settings.transport_base_url, timeout=settings.transport_timeout_seconds
            )
        else:
            logger.warning("TRANSPORT_BASE_URL not set; confirmations and contact lookups disabled.")
            transport = NullTransport()
    if llm_client is None:
        llm_client = create_llm_client(settings)

    usage_tracker = UsageTracker(usage_store, settings)
    llm = LLMService(llm_client, llm_retry_policy(settings), usage_tracker)
    confirmations = ConfirmationService(transport, settings.confirmation_group_ids)

    pipeline = EventPipeline(
        settings=settings,
        store=store,
        media_store=media_store,
        transport=transport,
        confirmations=confirmations,
        classifier=EventClassifier(llm, settings),
        extractor=EventExtractor(llm, settings),
        validator=EventValidator(
            fallback_category=FALLBACK_CATEGORY_ID,
            far_future_years=settings.far_future_years,
        ),
        matcher=CandidateMatcher(store, settings.candidate_limit),
        comparator=EventComparator(llm, settings),
        enricher=Enricher(transport),
        ocr=OcrService(llm, settings),
        usage_tracker=usage_tracker,
    )
    queue: SequentialQueue[PipelineJob] = SequentialQueue(pipeline.process, name="pipeline")
    intake = IntakeService(
        settings, DedupGate(store), media_store, queue, confirmations, transport
    )
    return AppContext(
        settings=settings,
        database=database,
        store=store,
        media_store=media_store,
        transport=transport,
        llm=llm,
        pipeline=pipeline,
        queue=queue,
        intake=intake,
    )


def get_app_context(request: Request) -> AppContext:
    """FastAPI dependency returning the context built in the lifespan."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        logger.critical("Application context requested before startup completed.")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up.",
        )
    return context

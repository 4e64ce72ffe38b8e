"""
Event extraction.

Two modes, selected by EXTRACTION_MODE:

- evidence_first (default): an evidence-locator call returns verbatim quotes,
  deterministic parsers turn them into dates/times/location/price, and a
  description-builder call fills in the prose fields and categories. The
  model never produces a stored date, time or price directly.
- single_pass: one extraction call with the full event schema, including
  tri-state justifications.

Either way the result goes through the programmatic validator afterwards;
nothing here is trusted as final.
"""

from dataclasses import dataclass

from event_ingest.categories import (
    EVENT_CATEGORIES,
    FALLBACK_CATEGORY_ID,
    categories_prompt_block,
)
from event_ingest.config import Settings
from event_ingest.prompts import (
    DESCRIPTION_BUILDER_SYSTEM_PROMPT,
    DESCRIPTION_BUILDER_USER_TEMPLATE,
    EVIDENCE_LOCATOR_SYSTEM_PROMPT,
    EVIDENCE_LOCATOR_USER_TEMPLATE,
    EXTRACTION_SYSTEM_PROMPT,
    EXTRACTION_USER_TEMPLATE,
)
from event_ingest.response_schemas import (
    DESCRIPTION_BUILDER_SCHEMA,
    EVIDENCE_LOCATOR_SCHEMA,
    EXTRACTION_SCHEMA,
)
from event_ingest.schemas import (
    DescriptionResult,
    EvidenceLocatorResult,
    ExtractedEvent,
    Justifications,
    SourceDocument,
)
from event_ingest.services.confirmation import ReasonCode
from event_ingest.services.evidence_parsers import (
    build_occurrences,
    parse_price_evidence,
    verify_location,
)
from event_ingest.services.llm_service import LLMService, stage_value
from event_ingest.utils.logger import setup_logger
from event_ingest.utils.zone_time import date_time_context, utc_offset_label

logger = setup_logger("extractor")

OCR_PROMPT_LIMIT = 4000
OCR_DESCRIPTION_LIMIT = 3000


@dataclass
class ExtractionOutcome:
    event: ExtractedEvent | None
    failure: ReasonCode | None = None
    detail: str | None = None

    @classmethod
    def failed(cls, reason: ReasonCode, detail: str | None = None) -> "ExtractionOutcome":
        return cls(event=None, failure=reason, detail=detail)


def _links_line(urls: list[str]) -> str:
    return ", ".join(urls) if urls else "(none)"


class EventExtractor:
    def __init__(
        self,
        llm: LLMService,
        settings: Settings,
        categories: list[dict[str, str]] | None = None,
    ):
        self.llm = llm
        self.settings = settings
        self.categories = categories or EVENT_CATEGORIES

    async def extract(self, document: SourceDocument, log_prefix: str = "") -> ExtractionOutcome:
        if self.settings.extraction_mode == "single_pass":
            return await self.extract_single_pass(document, log_prefix)
        return await self.extract_evidence_first(document, log_prefix)

    # ===========================================
    # Evidence-first
    # ===========================================

    async def locate_evidence(
        self, document: SourceDocument, log_prefix: str = ""
    ) -> EvidenceLocatorResult | None:
        date_context = date_time_context()
        user_content = EVIDENCE_LOCATOR_USER_TEMPLATE.format(
            message_text=document.message_text_sanitized or "(empty)",
            links=_links_line(document.extracted_urls),
            ocr_text=document.ocr_text[:OCR_PROMPT_LIMIT] or "(none)",
        )
        result = await self.llm.run_stage(
            "Evidence locator",
            system_prompt=EVIDENCE_LOCATOR_SYSTEM_PROMPT.format(date_context=date_context),
            user_content=user_content,
            json_schema=EVIDENCE_LOCATOR_SCHEMA,
            response_model=EvidenceLocatorResult,
            max_tokens=self.settings.llm_evidence_max_tokens,
            log_prefix=log_prefix,
        )
        return stage_value(result, "Evidence locator", log_prefix)

    async def build_description(
        self,
        document: SourceDocument,
        city: str,
        price: float | None,
        log_prefix: str = "",
    ) -> DescriptionResult | None:
        user_content = DESCRIPTION_BUILDER_USER_TEMPLATE.format(
            city=city or "(none)",
            price="null" if price is None else f"{price:g}",
            message_html=document.message_html or document.message_text_sanitized or "(empty)",
            ocr_text=document.ocr_text[:OCR_DESCRIPTION_LIMIT] or "(none)",
            links=_links_line(document.extracted_urls),
        )
        result = await self.llm.run_stage(
            "Description builder",
            system_prompt=DESCRIPTION_BUILDER_SYSTEM_PROMPT.format(
                categories=categories_prompt_block(self.categories)
            ),
            user_content=user_content,
            json_schema=DESCRIPTION_BUILDER_SCHEMA,
            response_model=DescriptionResult,
            max_tokens=self.settings.llm_extraction_max_tokens,
            log_prefix=log_prefix,
        )
        return stage_value(result, "Description builder", log_prefix)

    async def extract_evidence_first(
        self, document: SourceDocument, log_prefix: str = ""
    ) -> ExtractionOutcome:
        located = await self.locate_evidence(document, log_prefix)
        if located is None:
            return ExtractionOutcome.failed(
                ReasonCode.EVIDENCE_LOCATOR_FAILED, "Evidence locator failed"
            )

        evidence = located.evidence_candidates
        occurrence_evidence = build_occurrences(
            evidence.date, evidence.time_of_day, document.message_timestamp
        )
        if not occurrence_evidence.occurrences:
            logger.info(f"{log_prefix}No parsable date among {len(evidence.date)} date quote(s)")
            return ExtractionOutcome.failed(ReasonCode.VALIDATION_FAILED, "No verified date")

        location_evidence = verify_location(evidence.location, document.extracted_urls)
        price_evidence = parse_price_evidence(evidence.price)

        description = await self.build_description(
            document, location_evidence.location.city, price_evidence.price, log_prefix
        )
        if description is None:
            return ExtractionOutcome.failed(
                ReasonCode.AI_EXTRACTION_FAILED, "Description builder failed"
            )

        main_category = description.main_category or FALLBACK_CATEGORY_ID
        categories = list(description.categories) or [main_category]
        if main_category not in categories:
            categories.append(main_category)

        event = ExtractedEvent(
            title=description.title,
            short_description=description.short_description,
            full_description=description.full_description,
            categories=categories,
            main_category=main_category,
            location=location_evidence.location,
            price=price_evidence.price,
            occurrences=occurrence_evidence.occurrences,
            justifications=Justifications(
                date=occurrence_evidence.date_evidence,
                location=location_evidence.evidence,
                start_time=occurrence_evidence.start_time_evidence,
                end_time=occurrence_evidence.end_time_evidence,
                price=price_evidence.evidence,
            ),
            media=[],
            urls=description.urls,
        )
        logger.info(
            f"{log_prefix}Evidence-first extraction: {len(event.occurrences)} occurrence(s), "
            f"city='{event.location.city}', price={event.price}, "
            f"location verified={location_evidence.verified}"
        )
        return ExtractionOutcome(event=event)

    # ===========================================
    # Single-pass
    # ===========================================

    async def extract_single_pass(
        self, document: SourceDocument, log_prefix: str = ""
    ) -> ExtractionOutcome:
        system_prompt = EXTRACTION_SYSTEM_PROMPT.format(
            date_context=date_time_context(),
            reference_zone=self.settings.reference_timezone,
            utc_offset=utc_offset_label(),
            categories=categories_prompt_block(self.categories),
        )
        user_content = EXTRACTION_USER_TEMPLATE.format(
            message_html=document.message_html or document.message_text_sanitized or "(empty)",
            links=_links_line(document.extracted_urls),
            ocr_text=document.ocr_text[:OCR_PROMPT_LIMIT] or "(none)",
        )
        result = await self.llm.run_stage(
            "Extraction",
            system_prompt=system_prompt,
            user_content=user_content,
            json_schema=EXTRACTION_SCHEMA,
            response_model=ExtractedEvent,
            max_tokens=self.settings.llm_extraction_max_tokens,
            image_url=document.media.url if document.media and not document.ocr_text else None,
            log_prefix=log_prefix,
        )
        event = stage_value(result, "Extraction", log_prefix)
        if event is None:
            return ExtractionOutcome.failed(ReasonCode.AI_EXTRACTION_FAILED, "Extraction failed")
        return ExtractionOutcome(event=event)

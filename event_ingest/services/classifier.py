from event_ingest.config import Settings
from event_ingest.prompts import CLASSIFICATION_SYSTEM_PROMPT, CLASSIFICATION_USER_TEMPLATE
from event_ingest.response_schemas import CLASSIFICATION_SCHEMA
from event_ingest.schemas import ClassificationResult
from event_ingest.services.confirmation import ReasonCode
from event_ingest.services.llm_service import LLMService, stage_value
from event_ingest.utils.logger import setup_logger
from event_ingest.utils.zone_time import date_time_context

logger = setup_logger("classifier")


def rejection_reason(classification: ClassificationResult) -> ReasonCode:
    """Map a negative classification onto the confirmation reason sent to the group."""
    reason = (classification.reason or "").lower()
    if "multiple" in reason:
        return ReasonCode.MULTIPLE_EVENTS
    if "date" in reason:
        return ReasonCode.NO_DATE
    return ReasonCode.NOT_EVENT


class EventClassifier:
    """Decides whether a message describes one specific, dated event."""

    def __init__(self, llm: LLMService, settings: Settings):
        self.llm = llm
        self.settings = settings

    async def classify(
        self,
        sanitized_text: str,
        image_url: str | None = None,
        log_prefix: str = "",
    ) -> ClassificationResult | None:
        """
        Returns None on irrecoverable failure.

        The image is attached only when one exists; the text placeholder tells
        the model where to look when the message itself is empty.
        """
        if image_url:
            body = sanitized_text or "(no text - check the image)"
        else:
            body = sanitized_text or "(empty)"

        result = await self.llm.run_stage(
            "Classification",
            system_prompt=CLASSIFICATION_SYSTEM_PROMPT.format(
                date_context=date_time_context()
            ),
            user_content=CLASSIFICATION_USER_TEMPLATE.format(message_text=body),
            json_schema=CLASSIFICATION_SCHEMA,
            response_model=ClassificationResult,
            max_tokens=self.settings.llm_classification_max_tokens,
            image_url=image_url,
            log_prefix=log_prefix,
        )
        classification = stage_value(result, "Classification", log_prefix)
        if classification is not None:
            logger.info(
                f"{log_prefix}Classification: isEvent={classification.is_event}, "
                f"reason={classification.reason}, searchKeys={classification.search_keys}"
            )
        return classification

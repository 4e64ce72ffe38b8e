"""
Outbound status confirmations.

Every processed message produces short status lines in the configured
confirmation groups: when processing starts, and once more with the outcome.
Sending is best-effort; a failed send is logged and never affects the
pipeline.
"""

from enum import Enum

from event_ingest.utils.logger import setup_logger
from event_ingest.utils.text_processing import message_preview

logger = setup_logger("confirmation")


class ReasonCode(str, Enum):
    PROCESSING_STARTED = "processing_started"
    NEW_EVENT = "new_event"
    UPDATED_EVENT = "updated_event"
    NO_TEXT = "no_text"
    NOT_EVENT = "not_event"
    NO_DATE = "no_date"
    MULTIPLE_EVENTS = "multiple_events"
    ALREADY_EXISTING = "already_existing"
    DUPLICATE_MESSAGE = "duplicate_message"
    AI_CLASSIFICATION_FAILED = "ai_classification_failed"
    EVIDENCE_LOCATOR_FAILED = "evidence_locator_failed"
    AI_EXTRACTION_FAILED = "ai_extraction_failed"
    AI_COMPARISON_FAILED = "ai_comparison_failed"
    VALIDATION_FAILED = "validation_failed"
    DATABASE_ERROR = "database_error"
    ENRICHMENT_ERROR = "enrichment_error"
    PIPELINE_ERROR = "pipeline_error"


REASON_MESSAGES: dict[ReasonCode, str] = {
    ReasonCode.PROCESSING_STARTED: "מתחיל עיבוד ההודעה",
    ReasonCode.NEW_EVENT: "✅ אירוע חדש נוסף בהצלחה",
    ReasonCode.UPDATED_EVENT: "🔄 אירוע קיים עודכן בהצלחה",
    ReasonCode.NO_TEXT: "❌ נכשל - הודעה ללא טקסט",
    ReasonCode.NOT_EVENT: "❌ נכשל - ההודעה לא מתארת אירוע",
    ReasonCode.NO_DATE: "❌ נכשל - לא נמצא תאריך לאירוע בהודעה",
    ReasonCode.MULTIPLE_EVENTS: "❌ נכשל - ההודעה מכילה יותר מאירוע אחד",
    ReasonCode.ALREADY_EXISTING: "❌ נכשל - אירוע קיים כבר במערכת (כפילות)",
    ReasonCode.DUPLICATE_MESSAGE: "❌ נכשל - הודעה זהה כבר התקבלה (כפילות)",
    ReasonCode.AI_CLASSIFICATION_FAILED: "❌ נכשל - שגיאה בניתוח ההודעה (AI)",
    ReasonCode.EVIDENCE_LOCATOR_FAILED: "❌ נכשל - שגיאה באיתור פרטי האירוע (AI)",
    ReasonCode.AI_EXTRACTION_FAILED: "❌ נכשל - שגיאה בחילוץ פרטי האירוע (AI)",
    ReasonCode.AI_COMPARISON_FAILED: "❌ נכשל - שגיאה בהשוואת אירועים (AI)",
    ReasonCode.VALIDATION_FAILED: "❌ נכשל - שגיאת אימות נתונים",
    ReasonCode.DATABASE_ERROR: "❌ נכשל - שגיאת מסד נתונים",
    ReasonCode.ENRICHMENT_ERROR: "❌ נכשל - שגיאה בעיבוד האירוע",
    ReasonCode.PIPELINE_ERROR: "❌ נכשל - שגיאה כללית בעיבוד",
}

NO_TITLE_PLACEHOLDER = "(ללא כותרת)"


def _reason_value(reason: ReasonCode | str) -> str:
    return reason.value if isinstance(reason, ReasonCode) else str(reason)


def reason_message(reason: ReasonCode | str) -> str:
    try:
        return REASON_MESSAGES[ReasonCode(reason)]
    except ValueError:
        return f"❌ נכשל - {reason}"


def format_confirmation(
    preview: str,
    reason: ReasonCode | str,
    detail: str | None = None,
    context: dict[str, str] | None = None,
) -> str:
    """
    >>> format_confirmation("ערב מוזיקה", ReasonCode.NEW_EVENT)
    'אירוע - ערב מוזיקה\\nסטטוס: ✅ אירוע חדש נוסף בהצלחה'
    """
    lines = [f"אירוע - {preview}", f"סטטוס: {reason_message(reason)}"]
    if detail:
        lines.append(detail)
    for key, value in (context or {}).items():
        if value:
            lines.append(f"{key}: {value}")
    return "\n".join(lines)


def confirmation_context(
    record_id: str | None, group_id: str | None, group_name: str | None = None
) -> dict[str, str]:
    context = {
        "eventId": record_id,
        "sourceGroupId": group_id,
        "sourceGroupName": group_name,
    }
    return {key: value for key, value in context.items() if value}


def duplicate_detail(record_id: str, title: str | None) -> str:
    return f"אירוע קיים: {title or NO_TITLE_PLACEHOLDER}, מזהה: {record_id}"


class ConfirmationService:
    def __init__(self, transport, confirmation_group_ids: list[str]):
        self.transport = transport
        self.confirmation_group_ids = list(confirmation_group_ids or [])

    async def send_confirmation(
        self,
        message_text: str | None,
        reason: ReasonCode | str,
        detail: str | None = None,
        context: dict[str, str] | None = None,
    ) -> None:
        if not self.confirmation_group_ids:
            return

        text = format_confirmation(message_preview(message_text), reason, detail, context)
        for group_id in self.confirmation_group_ids:
            try:
                sent = await self.transport.send_text(group_id, text)
            except Exception as e:
                logger.error(
                    f"Failed to send confirmation to group {group_id}: {e}", exc_info=True
                )
                continue
            if sent:
                logger.info(f"Sent confirmation to group {group_id}: {_reason_value(reason)}")
            else:
                logger.warning(
                    f"Confirmation to group {group_id} was not delivered: {_reason_value(reason)}"
                )

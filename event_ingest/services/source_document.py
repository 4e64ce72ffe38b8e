from event_ingest.schemas import MediaRef, OcrResult, RawMessage, SourceDocument
from event_ingest.utils.text_processing import (
    chat_format_to_html,
    extract_urls,
    sanitize_message_for_prompt,
)


def build_source_document(
    message: RawMessage,
    ocr: OcrResult | None = None,
    media: MediaRef | None = None,
    max_length: int | None = None,
) -> SourceDocument:
    """
    Build the per-run view of a message that model-facing stages read.

    Pure transform: no network calls, and the same inputs always give the
    same document. OCR must already have been run by the caller.
    """
    raw_text = message.text or ""
    return SourceDocument(
        raw_text=raw_text,
        message_text_sanitized=sanitize_message_for_prompt(raw_text, max_length),
        message_html=chat_format_to_html(raw_text),
        extracted_urls=extract_urls(raw_text),
        ocr=ocr,
        media=media or message.media,
        message_timestamp=message.timestamp,
    )

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from event_ingest.utils.logger import setup_logger

logger = setup_logger("schemas")

NOT_STATED_JUSTIFICATION = "Not stated in message or image."

_QUOTED_SNIPPET_PATTERNS = ("'", '"', "“", "”")


class EvidenceStatus(str, Enum):
    EVIDENCED = "evidenced"
    NOT_EVIDENCED = "not_evidenced"
    UNKNOWN = "unknown"


class EvidenceSource(str, Enum):
    MESSAGE_TEXT = "message_text"
    OCR_TEXT = "ocr_text"
    URL = "url"


# ===========================================
# Captured input
# ===========================================


class MediaRef(BaseModel):
    """Object-store reference returned by an upload."""

    url: str
    media_id: str = Field(..., alias="id")
    mimetype: str | None = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class RawMessage(BaseModel):
    """A chat message exactly as captured from the transport. Never mutated."""

    message_id: str | None = Field(default=None, alias="id")
    sender_id: str | None = Field(default=None, alias="senderId")
    group_id: str | None = Field(default=None, alias="groupId")
    text: str | None = None
    media: MediaRef | None = None
    timestamp: int | None = Field(
        default=None, description="Message time in Unix seconds"
    )

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class OcrBlock(BaseModel):
    block_id: str = Field(..., alias="id")
    text: str

    model_config = ConfigDict(populate_by_name=True)


class OcrLine(BaseModel):
    line_id: str = Field(..., alias="id")
    block_id: str = Field(..., alias="blockId")
    text: str

    model_config = ConfigDict(populate_by_name=True)


class OcrResult(BaseModel):
    full_text: str = Field(default="", alias="fullText")
    blocks: list[OcrBlock] = Field(default_factory=list)
    lines: list[OcrLine] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class SourceDocument(BaseModel):
    """Everything the model-facing stages may read about one message."""

    raw_text: str = Field(default="", alias="rawText")
    message_text_sanitized: str = Field(default="", alias="messageTextSanitized")
    message_html: str = Field(default="", alias="messageHtml")
    extracted_urls: list[str] = Field(default_factory=list, alias="extractedUrls")
    ocr: OcrResult | None = None
    media: MediaRef | None = None
    message_timestamp: int | None = Field(default=None, alias="messageTimestamp")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def ocr_text(self) -> str:
        return self.ocr.full_text if self.ocr else ""

    def combined_text(self) -> str:
        """Message text plus OCR text; the haystack for every verbatim check."""
        if self.ocr_text.strip():
            return f"{self.raw_text}\n[OCR]\n{self.ocr_text}"
        return self.raw_text


# ===========================================
# Evidence
# ===========================================


class EvidenceCandidate(BaseModel):
    quote: str
    source: EvidenceSource = EvidenceSource.MESSAGE_TEXT
    message_text_start_idx: int | None = Field(
        default=None, alias="messageTextStartIdx"
    )
    message_text_end_idx: int | None = Field(default=None, alias="messageTextEndIdx")
    ocr_block_id: str | None = Field(default=None, alias="ocrBlockId")
    ocr_line_id: str | None = Field(default=None, alias="ocrLineId")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("source", mode="before")
    @classmethod
    def default_unknown_source(cls, v: Any) -> Any:
        if v in (None, ""):
            return EvidenceSource.MESSAGE_TEXT
        return v


class EvidenceCandidates(BaseModel):
    date: list[EvidenceCandidate] = Field(default_factory=list)
    time_of_day: list[EvidenceCandidate] = Field(default_factory=list, alias="timeOfDay")
    location: list[EvidenceCandidate] = Field(default_factory=list)
    price: list[EvidenceCandidate] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class FieldEvidence(BaseModel):
    """
    Justification for one extracted field.

    `status` is the tri-state signal; `quote` is the verbatim snippet backing
    an evidenced value. Legacy free-text justifications are accepted on input
    and mapped onto the tri-state (the "not stated" phrase, compared
    case-insensitively, becomes not_evidenced).
    """

    status: EvidenceStatus = EvidenceStatus.UNKNOWN
    quote: str | None = None
    source: EvidenceSource | None = None

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_text(cls, data: Any) -> Any:
        if data is None:
            return {"status": EvidenceStatus.NOT_EVIDENCED}
        if not isinstance(data, str):
            return data
        text = data.strip()
        if not text or text.lower() == NOT_STATED_JUSTIFICATION.lower():
            return {"status": EvidenceStatus.NOT_EVIDENCED}
        source = (
            EvidenceSource.OCR_TEXT
            if text.lower().startswith("image:")
            else EvidenceSource.MESSAGE_TEXT
        )
        return {
            "status": EvidenceStatus.EVIDENCED,
            "quote": _unwrap_quoted_snippet(text),
            "source": source,
        }

    @classmethod
    def not_evidenced(cls) -> "FieldEvidence":
        return cls(status=EvidenceStatus.NOT_EVIDENCED)

    @classmethod
    def from_quote(
        cls, quote: str | None, source: EvidenceSource | str | None = None
    ) -> "FieldEvidence":
        if not quote or not quote.strip():
            return cls.not_evidenced()
        return cls(
            status=EvidenceStatus.EVIDENCED,
            quote=quote.strip(),
            source=source or EvidenceSource.MESSAGE_TEXT,
        )

    @property
    def is_evidenced(self) -> bool:
        return self.status == EvidenceStatus.EVIDENCED and bool(self.quote)


def _unwrap_quoted_snippet(text: str) -> str:
    """"Text: '25/02'" -> "25/02"; text without a quoted snippet is returned as-is."""
    for mark in _QUOTED_SNIPPET_PATTERNS:
        start = text.find(mark)
        end = text.rfind(mark if mark not in "“" else "”")
        if start != -1 and end > start:
            return text[start + 1 : end].strip()
    return text


class Justifications(BaseModel):
    date: FieldEvidence = Field(default_factory=FieldEvidence)
    location: FieldEvidence = Field(default_factory=FieldEvidence)
    start_time: FieldEvidence = Field(default_factory=FieldEvidence, alias="startTime")
    end_time: FieldEvidence = Field(default_factory=FieldEvidence, alias="endTime")
    price: FieldEvidence = Field(default_factory=FieldEvidence)

    model_config = ConfigDict(populate_by_name=True)


# ===========================================
# Extracted event
# ===========================================


class EventLocation(BaseModel):
    city: str = Field(default="", alias="City")
    city_evidence: str | None = Field(default=None, alias="CityEvidence")
    address_line1: str | None = Field(default=None, alias="addressLine1")
    address_line2: str | None = Field(default=None, alias="addressLine2")
    location_details: str | None = Field(default=None, alias="locationDetails")
    waze_nav_link: str | None = Field(default=None, alias="wazeNavLink")
    gmaps_nav_link: str | None = Field(default=None, alias="gmapsNavLink")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("city", mode="before")
    @classmethod
    def none_city_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def has_content(self) -> bool:
        return bool(
            self.city
            or self.city_evidence
            or self.address_line1
            or self.address_line2
            or self.location_details
            or self.waze_nav_link
            or self.gmaps_nav_link
        )


class Occurrence(BaseModel):
    date: str = Field(..., description="Local calendar date, YYYY-MM-DD")
    has_time: bool = Field(default=False, alias="hasTime")
    start_time: str = Field(default="", alias="startTime")
    end_time: str | None = Field(default=None, alias="endTime")

    model_config = ConfigDict(populate_by_name=True)


class EventLink(BaseModel):
    title: str = Field(default="", alias="Title")
    url: str = Field(..., alias="Url")

    model_config = ConfigDict(populate_by_name=True)


class ExtractedEvent(BaseModel):
    title: str = Field(default="", alias="Title")
    short_description: str = Field(default="", alias="shortDescription")
    full_description: str = Field(default="", alias="fullDescription")
    categories: list[str] = Field(default_factory=list)
    main_category: str | None = Field(default=None, alias="mainCategory")
    location: EventLocation = Field(default_factory=EventLocation)
    price: float | None = None
    occurrences: list[Occurrence] = Field(default_factory=list)
    justifications: Justifications = Field(default_factory=Justifications)
    media: list[str] = Field(default_factory=list)
    urls: list[EventLink] = Field(default_factory=list)
    publisher_phone: str | None = Field(default=None, alias="publisherPhone")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("location", mode="before")
    @classmethod
    def none_location_to_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("media", "urls", "categories", mode="before")
    @classmethod
    def none_list_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ===========================================
# Stage outputs
# ===========================================


class ClassificationResult(BaseModel):
    is_event: bool = Field(..., alias="isEvent")
    search_keys: list[str] = Field(default_factory=list, alias="searchKeys")
    reason: str | None = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("search_keys", mode="before")
    @classmethod
    def drop_blank_keys(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            return [k.strip() for k in v if isinstance(k, str) and k.strip()]
        return v


class EvidenceLocatorResult(BaseModel):
    evidence_candidates: EvidenceCandidates = Field(..., alias="evidenceCandidates")

    model_config = ConfigDict(populate_by_name=True)


class DescriptionResult(BaseModel):
    title: str = Field(..., alias="Title")
    short_description: str = Field(default="", alias="shortDescription")
    full_description: str = Field(default="", alias="fullDescription")
    categories: list[str] = Field(default_factory=list)
    main_category: str | None = Field(default=None, alias="mainCategory")
    urls: list[EventLink] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class ComparisonStatus(str, Enum):
    NEW_EVENT = "new_event"
    EXISTING_EVENT = "existing_event"
    UPDATED_EVENT = "updated_event"


class ComparisonResult(BaseModel):
    status: ComparisonStatus
    matched_candidate_id: str | None = Field(default=None, alias="matchedCandidateId")
    reason: str = ""

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("reason", mode="before")
    @classmethod
    def none_reason_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @model_validator(mode="after")
    def require_match_for_same_event(self) -> "ComparisonResult":
        if self.status != ComparisonStatus.NEW_EVENT and not self.matched_candidate_id:
            raise ValueError(f"matchedCandidateId is required for status {self.status.value}")
        return self


class ValidationResult(BaseModel):
    event: ExtractedEvent | None
    corrections: list[str] = Field(default_factory=list)


# ===========================================
# Persisted records
# ===========================================


class EventVersion(BaseModel):
    event: ExtractedEvent | None = None
    raw_message: RawMessage | None = Field(default=None, alias="rawMessage")
    media: MediaRef | None = None
    message_signature: str | None = Field(default=None, alias="messageSignature")
    timestamp: datetime

    model_config = ConfigDict(populate_by_name=True)


class StoredEventRecord(BaseModel):
    record_id: str = Field(..., alias="id")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")
    raw_message: RawMessage = Field(..., alias="rawMessage")
    media: MediaRef | None = None
    event: ExtractedEvent | None = None
    previous_versions: list[EventVersion] = Field(
        default_factory=list, alias="previousVersions"
    )
    is_active: bool = Field(default=True, alias="isActive")
    message_signature: str | None = Field(default=None, alias="messageSignature")
    ocr_text: str | None = Field(default=None, alias="ocrText")

    model_config = ConfigDict(populate_by_name=True)


class CandidateEvent(BaseModel):
    """Read-only projection of a stored record used for matching."""

    record_id: str = Field(..., alias="id")
    text: str = ""
    event: ExtractedEvent | None = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


# ===========================================
# HTTP payloads
# ===========================================


class IncomingMedia(BaseModel):
    data_base64: str = Field(..., alias="dataBase64")
    mimetype: str = "image/jpeg"
    filename: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class IncomingMessageRequest(BaseModel):
    message_id: str | None = Field(default=None, alias="id")
    sender_id: str | None = Field(default=None, alias="senderId")
    group_id: str = Field(..., alias="groupId")
    text: str | None = None
    timestamp: int | None = None
    from_me: bool = Field(default=False, alias="fromMe")
    media: IncomingMedia | None = None

    model_config = ConfigDict(populate_by_name=True)


class IntakeResponse(BaseModel):
    status: str
    record_id: str | None = None
    detail: str | None = None


class QueueStatusResponse(BaseModel):
    pending: int
    processing: bool
    processed_total: int
    failed_total: int


class HealthResponse(BaseModel):
    status: str
    database: bool
    queue_pending: int

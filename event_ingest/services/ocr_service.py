"""
OCR through a vision-capable model.

The image URL is attached to a transcription prompt; the returned text is
split into blocks (blank-line separated) and lines so evidence quotes can
point at them. Any failure yields None and the pipeline continues with
text-only evidence.
"""

from pydantic import BaseModel, ConfigDict, Field

from event_ingest.config import Settings
from event_ingest.prompts import OCR_SYSTEM_PROMPT, OCR_USER_PROMPT
from event_ingest.response_schemas import OCR_SCHEMA
from event_ingest.schemas import OcrBlock, OcrLine, OcrResult
from event_ingest.services.llm_service import LLMService, stage_value
from event_ingest.utils.logger import setup_logger

logger = setup_logger("ocr_service")

IMAGE_MIMETYPE_PREFIX = "image/"
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")


class _OcrReply(BaseModel):
    full_text: str = Field(default="", alias="fullText")

    model_config = ConfigDict(populate_by_name=True)


def is_image_url(url: str | None, mimetype: str | None = None) -> bool:
    if not url:
        return False
    if mimetype:
        return mimetype.startswith(IMAGE_MIMETYPE_PREFIX)
    return url.lower().split("?", 1)[0].endswith(IMAGE_EXTENSIONS)


def split_ocr_text(full_text: str) -> OcrResult:
    """Blocks are blank-line separated paragraphs; lines keep their block id."""
    text = (full_text or "").strip()
    blocks: list[OcrBlock] = []
    lines: list[OcrLine] = []
    for block_index, chunk in enumerate(p for p in text.split("\n\n") if p.strip()):
        block_id = f"b{block_index}"
        blocks.append(OcrBlock(block_id=block_id, text=chunk.strip()))
        for line in (ln.strip() for ln in chunk.split("\n")):
            if line:
                lines.append(OcrLine(line_id=f"l{len(lines)}", block_id=block_id, text=line))
    return OcrResult(full_text=text, blocks=blocks, lines=lines)


class OcrService:
    def __init__(self, llm: LLMService, settings: Settings):
        self.llm = llm
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return self.settings.ocr_enabled and self.llm.available

    async def recognize(
        self, image_url: str | None, mimetype: str | None = None, log_prefix: str = ""
    ) -> OcrResult | None:
        if not self.enabled or not is_image_url(image_url, mimetype):
            return None

        vision_model = None
        if self.llm.client.provider_name == "openai":
            vision_model = self.settings.openai_vision_model

        result = await self.llm.run_stage(
            "OCR",
            system_prompt=OCR_SYSTEM_PROMPT,
            user_content=OCR_USER_PROMPT,
            json_schema=OCR_SCHEMA,
            response_model=_OcrReply,
            max_tokens=self.settings.llm_ocr_max_tokens,
            image_url=image_url,
            model=vision_model,
            usage_kind="ocr",
            log_prefix=log_prefix,
        )
        reply = stage_value(result, "OCR", log_prefix)
        if reply is None or not reply.full_text.strip():
            logger.info(f"{log_prefix}OCR produced no text for {image_url}")
            return None

        ocr = split_ocr_text(reply.full_text)
        logger.info(
            f"{log_prefix}OCR extracted {len(ocr.full_text)} chars in {len(ocr.blocks)} block(s)"
        )
        return ocr

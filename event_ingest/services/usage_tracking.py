"""
Monthly model-call budget.

Counters live in the `api_usage` table keyed by calendar month. Recording is
best-effort and reading fails open: when the database is unreachable the
budget check sees zero usage and lets the message through.
"""

from datetime import datetime, timezone

from event_ingest.config import Settings
from event_ingest.utils.logger import setup_logger

logger = setup_logger("usage_tracking")

LLM_USAGE = "llm"
OCR_USAGE = "ocr"


def current_month_key(now: datetime | None = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m")


class UsageTracker:
    def __init__(self, usage_store, settings: Settings):
        self.usage_store = usage_store
        self.settings = settings

    async def record_call(self, kind: str = LLM_USAGE, count: int = 1) -> None:
        if count <= 0:
            return
        try:
            if kind == OCR_USAGE:
                await self.usage_store.increment(current_month_key(), ocr_calls=count)
            else:
                await self.usage_store.increment(current_month_key(), llm_calls=count)
        except Exception as e:
            logger.warning(f"Failed to record {kind} usage: {e}")

    async def monthly_usage(self) -> tuple[int, int]:
        try:
            return await self.usage_store.get_month(current_month_key())
        except Exception as e:
            logger.warning(f"Failed to read monthly usage, assuming none: {e}")
            return 0, 0

    async def budget_exceeded(self, expects_ocr: bool = False) -> str | None:
        """
        Reason the next pipeline run would exceed a monthly limit, or None.

        A limit of 0 disables that check.
        """
        llm_limit = self.settings.monthly_llm_call_limit
        ocr_limit = self.settings.monthly_ocr_call_limit
        if llm_limit <= 0 and (ocr_limit <= 0 or not expects_ocr):
            return None

        llm_calls, ocr_calls = await self.monthly_usage()
        estimated = self.settings.estimated_llm_calls_per_message
        if llm_limit > 0 and llm_calls + estimated > llm_limit:
            return (
                f"Monthly model call limit reached: {llm_calls} used + {estimated} estimated "
                f"> {llm_limit}"
            )
        if expects_ocr and ocr_limit > 0 and ocr_calls + 1 > ocr_limit:
            return f"Monthly OCR call limit reached: {ocr_calls} used, limit {ocr_limit}"
        return None

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from event_ingest.db import Database
from event_ingest.db_handlers.base import BaseDBHandler, check_local_db
from event_ingest.models.api_usage import ApiUsage
from event_ingest.utils.retry_utils import RetryPolicy


class ApiUsageDBHandler(BaseDBHandler[ApiUsage]):
    def __init__(self, database: Database | None, retry_policy: RetryPolicy | None = None):
        super().__init__(ApiUsage, database, retry_policy)

    @check_local_db
    async def get_month(self, month: str, *, db: AsyncSession = None) -> tuple[int, int]:
        """(llm_calls, ocr_calls) for the month, zeros when nothing was recorded."""
        stmt = select(ApiUsage.llm_calls, ApiUsage.ocr_calls).where(ApiUsage.month == month)
        row = (await db.execute(stmt)).first()
        if row is None:
            return 0, 0
        return int(row[0] or 0), int(row[1] or 0)

    @check_local_db
    async def increment(
        self, month: str, llm_calls: int = 0, ocr_calls: int = 0, *, db: AsyncSession = None
    ) -> None:
        stmt = insert(ApiUsage).values(month=month, llm_calls=llm_calls, ocr_calls=ocr_calls)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ApiUsage.month],
            set_={
                "llm_calls": ApiUsage.llm_calls + llm_calls,
                "ocr_calls": ApiUsage.ocr_calls + ocr_calls,
            },
        )
        await db.execute(stmt)

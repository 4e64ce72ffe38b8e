from sqlalchemy import Column, Integer, String, UniqueConstraint

from event_ingest.models.base import SCHEMA_NAME, Base, TimestampMixin, UUIDMixin


class ApiUsage(Base, UUIDMixin, TimestampMixin):
    """Monthly counters of external model calls, keyed by YYYY-MM."""

    __tablename__ = "api_usage"
    __table_args__ = (
        UniqueConstraint("month", name="uq_api_usage_month"),
        {"schema": SCHEMA_NAME},
    )

    month = Column(String(7), nullable=False, comment="Calendar month, YYYY-MM (UTC)")
    llm_calls = Column(Integer, nullable=False, default=0)
    ocr_calls = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<ApiUsage(month={self.month}, llm={self.llm_calls}, ocr={self.ocr_calls})>"

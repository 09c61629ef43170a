"""Saved analysis queries — tenant-scoped, re-executable on demand."""
import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class QueryType(str, enum.Enum):
    CROSS_FRAMEWORK = "cross_framework"
    GAP_ANALYSIS = "gap_analysis"
    REQUIREMENT_COVERAGE = "requirement_coverage"
    Z_INSPECTION = "z_inspection"


SCHEDULE_FREQUENCIES = ("hourly", "daily", "weekly", "monthly")


class SavedQuery(Base):
    __tablename__ = "saved_analysis_queries"
    __table_args__ = (
        Index("ix_saq_tenant", "tenant_id"),
        Index("ix_saq_scheduled", "is_scheduled"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    query_type: Mapped[str] = mapped_column(String(30), nullable=False)
    parameters: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    # Interpreted by the external scheduler, which calls run() at this cadence
    is_scheduled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    schedule_frequency: Mapped[str | None] = mapped_column(String(20))

    last_run_at: Mapped[datetime | None] = mapped_column(DateTime)
    last_result: Mapped[dict | list | None] = mapped_column(JSON)

    created_by: Mapped[str | None] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False,
    )

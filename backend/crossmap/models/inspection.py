"""
Z-Inspection models — external audit reports, their findings, and the links
the finding mapper derives between findings and controls.

Tables: inspection_reports, inspection_findings, finding_control_links
"""
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

FINDING_SEVERITIES = ("critical", "high", "medium", "low")
FINDING_TYPES = ("strength", "weakness", "opportunity", "threat", "recommendation", "observation")
LINK_TYPES = ("direct", "indirect", "recommended")


class InspectionReport(Base):
    __tablename__ = "inspection_reports"
    __table_args__ = (
        Index("ix_ir_tenant", "tenant_id"),
    )

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    ai_system_name: Mapped[str | None] = mapped_column(String(300))
    inspected_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    # relationships
    findings: Mapped[list["Finding"]] = relationship(
        back_populates="report", cascade="all, delete-orphan",
        order_by="Finding.id",
    )


class Finding(Base):
    """An observation from a Z-Inspection. Read-only input to the mapper."""

    __tablename__ = "inspection_findings"
    __table_args__ = (
        Index("ix_if_report", "report_id"),
    )

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    report_id: Mapped[str] = mapped_column(
        ForeignKey("inspection_reports.id", ondelete="CASCADE"), nullable=False,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(100))
    # Affected dimension: one of the seven trustworthy requirements
    requirement_id: Mapped[str | None] = mapped_column(
        ForeignKey("trustworthy_requirements.id", ondelete="SET NULL"),
    )
    severity: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)
    # Outcome of the observation
    finding_type: Mapped[str] = mapped_column(String(30), default="observation", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    # relationships
    report: Mapped["InspectionReport"] = relationship(back_populates="findings")
    control_links: Mapped[list["FindingControlLink"]] = relationship(
        back_populates="finding", cascade="all, delete-orphan",
    )


class FindingControlLink(Base):
    __tablename__ = "finding_control_links"
    __table_args__ = (
        UniqueConstraint("finding_id", "control_id", name="uq_fcl_finding_ctrl"),
        Index("ix_fcl_control", "control_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    finding_id: Mapped[str] = mapped_column(
        ForeignKey("inspection_findings.id", ondelete="CASCADE"), nullable=False,
    )
    control_id: Mapped[str] = mapped_column(
        ForeignKey("controls.id", ondelete="CASCADE"), nullable=False,
    )
    framework_id: Mapped[str] = mapped_column(
        ForeignKey("frameworks.id", ondelete="CASCADE"), nullable=False,
    )
    link_type: Mapped[str] = mapped_column(String(20), default="recommended", nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    rationale: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    # relationships
    finding: Mapped["Finding"] = relationship(back_populates="control_links")

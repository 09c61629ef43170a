"""
Cross-Reference Store models — weighted relationship edges between controls.

Tables: control_cross_references, cross_reference_adjustments

Edges are never deleted by the engine: a replaced edge is marked superseded,
and every confidence shift coming from an inspection report is kept as a
per-report adjustment row so the effective confidence can be explained and
recomputed.
"""
import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class RelationshipKind(str, enum.Enum):
    EQUIVALENT = "equivalent"
    OVERLAPPING = "overlapping"
    SUPPORTS = "supports"
    CONFLICTS = "conflicts"
    SUPERSEDES = "supersedes"


class Provenance(str, enum.Enum):
    MANUAL = "manual"
    AI_GENERATED = "ai_generated"
    INSPECTION_DERIVED = "inspection_derived"


# Kinds whose reverse edge is implied and materialised at write time
SYMMETRIC_KINDS = frozenset({RelationshipKind.EQUIVALENT})

# Kinds that count as cross-framework coverage in gap analysis
COVERAGE_KINDS = frozenset({RelationshipKind.EQUIVALENT, RelationshipKind.SUPPORTS})


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class CrossReference(Base):
    """Directed, confidence-weighted edge source_control -> target_control."""

    __tablename__ = "control_cross_references"
    __table_args__ = (
        Index("ix_ccr_pair", "source_control_id", "target_control_id"),
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_ccr_confidence"),
        CheckConstraint("base_confidence >= 0 AND base_confidence <= 1", name="ck_ccr_base_confidence"),
        CheckConstraint("source_control_id <> target_control_id", name="ck_ccr_no_self"),
        Index("ix_ccr_source", "source_control_id"),
        Index("ix_ccr_target", "target_control_id"),
        Index("ix_ccr_kind", "relationship_kind"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_control_id: Mapped[str] = mapped_column(
        ForeignKey("controls.id", ondelete="CASCADE"), nullable=False,
    )
    target_control_id: Mapped[str] = mapped_column(
        ForeignKey("controls.id", ondelete="CASCADE"), nullable=False,
    )
    relationship_kind: Mapped[RelationshipKind] = mapped_column(
        Enum(RelationshipKind, name="relationship_kind_enum", native_enum=False,
             values_callable=_enum_values, length=20),
        nullable=False,
    )

    # Confidence as set by the creator; adjustments are applied on top of it
    base_confidence: Mapped[float] = mapped_column(Float, default=0.8, nullable=False)
    # Effective confidence = clamp(base + sum of report deltas)
    confidence: Mapped[float] = mapped_column(Float, default=0.8, nullable=False)

    provenance: Mapped[Provenance] = mapped_column(
        Enum(Provenance, name="provenance_enum", native_enum=False,
             values_callable=_enum_values, length=30),
        default=Provenance.MANUAL, nullable=False,
    )
    rationale: Mapped[str | None] = mapped_column(Text)

    is_superseded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime)
    superseded_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("control_cross_references.id", ondelete="SET NULL"),
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    created_by: Mapped[str | None] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False,
    )

    __mapper_args__ = {"version_id_col": version_id}

    # relationships
    source_control: Mapped["Control"] = relationship(foreign_keys=[source_control_id])
    target_control: Mapped["Control"] = relationship(foreign_keys=[target_control_id])
    adjustments: Mapped[list["CrossReferenceAdjustment"]] = relationship(
        back_populates="cross_reference", cascade="all, delete-orphan",
    )


class CrossReferenceAdjustment(Base):
    """One inspection report's contribution to an edge's confidence.

    Exactly one row per (edge, report): replaying a report rewrites its row
    so contributions never stack.
    """

    __tablename__ = "cross_reference_adjustments"
    __table_args__ = (
        UniqueConstraint("cross_reference_id", "report_id", name="uq_ccra_edge_report"),
        Index("ix_ccra_report", "report_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cross_reference_id: Mapped[int] = mapped_column(
        ForeignKey("control_cross_references.id", ondelete="CASCADE"), nullable=False,
    )
    report_id: Mapped[str] = mapped_column(
        ForeignKey("inspection_reports.id", ondelete="CASCADE"), nullable=False,
    )
    delta: Mapped[float] = mapped_column(Float, nullable=False)
    old_confidence: Mapped[float] = mapped_column(Float, nullable=False)
    new_confidence: Mapped[float] = mapped_column(Float, nullable=False)
    clamped: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # [{finding_id, severity, outcome, delta}]
    justification: Mapped[list | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False,
    )

    # relationships
    cross_reference: Mapped["CrossReference"] = relationship(back_populates="adjustments")


# Resolve forward references
from .catalog import Control  # noqa: F401, E402

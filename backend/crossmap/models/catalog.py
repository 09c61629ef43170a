"""
Control Catalog models — read-only reference data.

Tables: frameworks, controls, trustworthy_requirements,
        requirement_control_mappings
"""
import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
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


class TrustworthyRequirement(str, enum.Enum):
    """The seven requirements for trustworthy AI. Closed set."""

    HUMAN_AGENCY = "human_agency_oversight"
    ROBUSTNESS = "technical_robustness_safety"
    PRIVACY = "privacy_data_governance"
    TRANSPARENCY = "transparency"
    FAIRNESS = "diversity_fairness_nondiscrimination"
    WELLBEING = "societal_environmental_wellbeing"
    ACCOUNTABILITY = "accountability"


# Short aliases accepted on input ("privacy" -> privacy_data_governance)
REQUIREMENT_ALIASES: dict[str, TrustworthyRequirement] = {
    "human_agency": TrustworthyRequirement.HUMAN_AGENCY,
    "robustness": TrustworthyRequirement.ROBUSTNESS,
    "privacy": TrustworthyRequirement.PRIVACY,
    "transparency": TrustworthyRequirement.TRANSPARENCY,
    "fairness": TrustworthyRequirement.FAIRNESS,
    "wellbeing": TrustworthyRequirement.WELLBEING,
    "societal_wellbeing": TrustworthyRequirement.WELLBEING,
    "accountability": TrustworthyRequirement.ACCOUNTABILITY,
}

# (id, name, short_name, keywords) in display order
REQUIREMENT_DEFINITIONS: list[tuple[TrustworthyRequirement, str, str, list[str]]] = [
    (TrustworthyRequirement.HUMAN_AGENCY, "Human agency and oversight", "Human Agency",
     ["human", "oversight", "agency", "intervention", "override", "autonomy"]),
    (TrustworthyRequirement.ROBUSTNESS, "Technical robustness and safety", "Robustness",
     ["robustness", "safety", "resilience", "accuracy", "reliability", "security", "continuity"]),
    (TrustworthyRequirement.PRIVACY, "Privacy and data governance", "Privacy",
     ["privacy", "personal", "data", "governance", "protection", "consent", "minimisation"]),
    (TrustworthyRequirement.TRANSPARENCY, "Transparency", "Transparency",
     ["transparency", "explainability", "traceability", "disclosure", "communication", "logging"]),
    (TrustworthyRequirement.FAIRNESS, "Diversity, non-discrimination and fairness", "Fairness",
     ["fairness", "bias", "discrimination", "diversity", "accessibility", "inclusion"]),
    (TrustworthyRequirement.WELLBEING, "Societal and environmental well-being", "Well-being",
     ["societal", "environmental", "wellbeing", "sustainability", "social", "impact"]),
    (TrustworthyRequirement.ACCOUNTABILITY, "Accountability", "Accountability",
     ["accountability", "audit", "auditability", "responsibility", "redress", "reporting"]),
]


class Framework(Base):
    """A named compliance standard (ISO 27001, SOC 2, GDPR, ...)."""

    __tablename__ = "frameworks"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    version: Mapped[str | None] = mapped_column(String(50))
    category: Mapped[str | None] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    # relationships
    controls: Mapped[list["Control"]] = relationship(
        back_populates="framework", cascade="all, delete-orphan",
    )


class Control(Base):
    """A discrete compliance requirement defined by one framework.

    ``id`` is globally unique (``ISO27001-A.5.1``); ``ref_id`` is the
    identifier as printed in the framework (``A.5.1``).
    """

    __tablename__ = "controls"
    __table_args__ = (
        UniqueConstraint("framework_id", "ref_id", name="uq_control_fw_ref"),
        Index("ix_control_framework", "framework_id"),
    )

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    framework_id: Mapped[str] = mapped_column(
        ForeignKey("frameworks.id", ondelete="CASCADE"), nullable=False,
    )
    ref_id: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    # relationships
    framework: Mapped["Framework"] = relationship(back_populates="controls")
    requirement_mappings: Mapped[list["RequirementControlMapping"]] = relationship(
        back_populates="control", cascade="all, delete-orphan",
    )


class Requirement(Base):
    """One of the seven trustworthy-AI requirements."""

    __tablename__ = "trustworthy_requirements"

    id: Mapped[str] = mapped_column(String(60), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    short_name: Mapped[str] = mapped_column(String(60), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    keywords: Mapped[list | None] = mapped_column(JSON)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class RequirementControlMapping(Base):
    """Many-to-many: which controls satisfy which requirement, and how strongly."""

    __tablename__ = "requirement_control_mappings"
    __table_args__ = (
        UniqueConstraint("requirement_id", "control_id", name="uq_rcm_req_ctrl"),
        CheckConstraint("strength >= 0 AND strength <= 1", name="ck_rcm_strength"),
        Index("ix_rcm_control", "control_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requirement_id: Mapped[str] = mapped_column(
        ForeignKey("trustworthy_requirements.id", ondelete="CASCADE"), nullable=False,
    )
    control_id: Mapped[str] = mapped_column(
        ForeignKey("controls.id", ondelete="CASCADE"), nullable=False,
    )
    strength: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)
    rationale: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    # relationships
    control: Mapped["Control"] = relationship(back_populates="requirement_mappings")
    requirement: Mapped["Requirement"] = relationship()

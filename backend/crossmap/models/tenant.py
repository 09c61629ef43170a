"""
Tenant scope models — which frameworks are enabled and which controls are
explicitly out of scope for a tenant.

Tables: tenant_module_configs, tenant_control_exclusions
"""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class TenantModuleConfig(Base):
    __tablename__ = "tenant_module_configs"
    __table_args__ = (
        UniqueConstraint("tenant_id", "framework_id", name="uq_tmc_tenant_fw"),
        Index("ix_tmc_tenant", "tenant_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    framework_id: Mapped[str] = mapped_column(
        ForeignKey("frameworks.id", ondelete="CASCADE"), nullable=False,
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False,
    )

    # relationships
    framework: Mapped["Framework"] = relationship()


class TenantControlExclusion(Base):
    __tablename__ = "tenant_control_exclusions"
    __table_args__ = (
        UniqueConstraint("tenant_id", "control_id", name="uq_tce_tenant_ctrl"),
        Index("ix_tce_tenant", "tenant_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    control_id: Mapped[str] = mapped_column(
        ForeignKey("controls.id", ondelete="CASCADE"), nullable=False,
    )
    reason: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


# Resolve forward references
from .catalog import Framework  # noqa: F401, E402

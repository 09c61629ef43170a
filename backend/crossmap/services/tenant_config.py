"""
Tenant module configuration — enabled frameworks and excluded controls.

Frameworks are opt-in: a tenant sees a framework only after it has been
enabled. Readers always query the current rows; writes drop the tenant's
cached resolutions.
"""
from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from crossmap.errors import InvalidInput, NotFound
from crossmap.models.catalog import Control, Framework
from crossmap.models.tenant import TenantControlExclusion, TenantModuleConfig
from crossmap.schemas.tenant import TenantConfigOut
from crossmap.services.resolution_cache import PendingInvalidations, ResolutionCache

logger = logging.getLogger(__name__)


def require_tenant(tenant_id: str | None) -> str:
    tenant_id = (tenant_id or "").strip()
    if not tenant_id:
        raise InvalidInput("tenant_id is required")
    return tenant_id


class TenantConfigService:
    def __init__(self, session: AsyncSession, cache: ResolutionCache | PendingInvalidations | None = None):
        self.session = session
        self.cache = cache

    async def scope(self, tenant_id: str) -> TenantConfigOut:
        tenant_id = require_tenant(tenant_id)
        rows = (await self.session.execute(
            select(TenantModuleConfig.framework_id, TenantModuleConfig.enabled)
            .join(Framework, Framework.id == TenantModuleConfig.framework_id)
            .where(TenantModuleConfig.tenant_id == tenant_id, Framework.is_active.is_(True))
            .order_by(TenantModuleConfig.framework_id)
        )).all()
        return TenantConfigOut(
            tenant_id=tenant_id,
            enabled_frameworks=[fw for fw, enabled in rows if enabled],
            disabled_frameworks=[fw for fw, enabled in rows if not enabled],
            excluded_controls=await self.excluded_control_ids(tenant_id),
        )

    async def excluded_control_ids(self, tenant_id: str) -> list[str]:
        q = (
            select(TenantControlExclusion.control_id)
            .where(TenantControlExclusion.tenant_id == tenant_id)
            .order_by(TenantControlExclusion.control_id)
        )
        return list((await self.session.execute(q)).scalars().all())

    async def set_framework_enabled(
        self, tenant_id: str, framework_id: str, enabled: bool, updated_by: str | None = None,
    ) -> TenantConfigOut:
        tenant_id = require_tenant(tenant_id)
        if not await self.session.get(Framework, framework_id):
            raise NotFound("Framework", framework_id)

        row = (await self.session.execute(
            select(TenantModuleConfig).where(
                TenantModuleConfig.tenant_id == tenant_id,
                TenantModuleConfig.framework_id == framework_id,
            )
        )).scalar_one_or_none()
        if row is None:
            row = TenantModuleConfig(tenant_id=tenant_id, framework_id=framework_id)
            self.session.add(row)
        row.enabled = enabled
        row.updated_by = updated_by

        await self.session.flush()
        self._invalidate(tenant_id)
        logger.info("Tenant %s: framework %s %s", tenant_id, framework_id, "enabled" if enabled else "disabled")
        return await self.scope(tenant_id)

    async def exclude_control(
        self, tenant_id: str, control_id: str, reason: str | None = None, created_by: str | None = None,
    ) -> TenantConfigOut:
        tenant_id = require_tenant(tenant_id)
        if not await self.session.get(Control, control_id):
            raise NotFound("Control", control_id)

        existing = (await self.session.execute(
            select(TenantControlExclusion).where(
                TenantControlExclusion.tenant_id == tenant_id,
                TenantControlExclusion.control_id == control_id,
            )
        )).scalar_one_or_none()
        if existing is None:
            self.session.add(TenantControlExclusion(
                tenant_id=tenant_id, control_id=control_id, reason=reason, created_by=created_by,
            ))
        elif reason is not None:
            existing.reason = reason

        await self.session.flush()
        self._invalidate(tenant_id)
        logger.info("Tenant %s: control %s excluded", tenant_id, control_id)
        return await self.scope(tenant_id)

    async def include_control(self, tenant_id: str, control_id: str) -> TenantConfigOut:
        tenant_id = require_tenant(tenant_id)
        await self.session.execute(
            delete(TenantControlExclusion).where(
                TenantControlExclusion.tenant_id == tenant_id,
                TenantControlExclusion.control_id == control_id,
            )
        )
        await self.session.flush()
        self._invalidate(tenant_id)
        return await self.scope(tenant_id)

    def _invalidate(self, tenant_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate_tenant(tenant_id)

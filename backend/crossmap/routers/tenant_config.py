"""
Tenant configuration module — /api/v1/tenant-config
Enabled frameworks and excluded controls for the calling tenant.
"""
from fastapi import APIRouter, Depends

from crossmap.dependencies import get_engine, get_tenant_id
from crossmap.schemas.tenant import ControlExclusionCreate, FrameworkToggle, TenantConfigOut
from crossmap.services.engine import MappingEngine

router = APIRouter(prefix="/api/v1/tenant-config", tags=["Tenant Config"])


@router.get("", response_model=TenantConfigOut)
async def get_config(
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.get_tenant_config(tenant_id)


@router.put("/frameworks", response_model=TenantConfigOut)
async def toggle_framework(
    body: FrameworkToggle,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.set_framework_enabled(tenant_id, body.framework_id, body.enabled, body.updated_by)


@router.post("/exclusions", response_model=TenantConfigOut, status_code=201)
async def exclude_control(
    body: ControlExclusionCreate,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.exclude_control(tenant_id, body.control_id, body.reason, body.created_by)


@router.delete("/exclusions/{control_id}", response_model=TenantConfigOut)
async def include_control(
    control_id: str,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.include_control(tenant_id, control_id)

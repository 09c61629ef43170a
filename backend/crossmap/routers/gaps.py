"""
Gap analysis module — /api/v1/gaps
Always computed from the tenant's current configuration.
"""
from fastapi import APIRouter, Depends

from crossmap.dependencies import get_engine, get_tenant_id
from crossmap.schemas.analysis import GapAnalysis, UnmappedControl, UnmappedRequirement
from crossmap.services.engine import MappingEngine

router = APIRouter(prefix="/api/v1/gaps", tags=["Gap Analysis"])


@router.get("", response_model=GapAnalysis)
async def identify_gaps(
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.identify_gaps(tenant_id)


@router.get("/unmapped-controls", response_model=list[UnmappedControl])
async def unmapped_controls(
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.find_unmapped_controls(tenant_id)


@router.get("/unmapped-requirements", response_model=list[UnmappedRequirement])
async def unmapped_requirements(
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.find_unmapped_requirements(tenant_id)

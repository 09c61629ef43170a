"""
Trustworthy-AI requirements module — /api/v1/requirements
The seven requirements, their control mappings and per-tenant coverage.
"""
from fastapi import APIRouter, Depends, Query

from crossmap.dependencies import get_engine, get_tenant_id
from crossmap.schemas.analysis import FrameworkCoverageDetail, RequirementCoverage
from crossmap.schemas.catalog import (
    RequirementControlMappingCreate,
    RequirementControlMappingOut,
    RequirementOut,
)
from crossmap.services.engine import MappingEngine

router = APIRouter(prefix="/api/v1/requirements", tags=["Requirements"])


@router.get("", response_model=list[RequirementOut])
async def list_requirements(engine: MappingEngine = Depends(get_engine)):
    return await engine.list_requirements()


@router.get("/coverage", response_model=list[RequirementCoverage])
async def requirement_coverage(
    requirement_ids: list[str] | None = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.requirement_coverage(tenant_id, requirement_ids)


@router.get("/{requirement_id}/controls", response_model=list[FrameworkCoverageDetail])
async def controls_for_requirement(
    requirement_id: str,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.controls_for_requirement(requirement_id, tenant_id)


@router.post("/mappings", response_model=RequirementControlMappingOut, status_code=201)
async def add_requirement_mapping(
    body: RequirementControlMappingCreate,
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.add_requirement_mapping(body.requirement_id, body.control_id, body.strength, body.rationale)

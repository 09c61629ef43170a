"""
Saved queries module — /api/v1/queries
Tenant-scoped analysis requests, re-run on demand or by an external scheduler.
"""
from fastapi import APIRouter, Depends

from crossmap.dependencies import get_engine, get_tenant_id
from crossmap.schemas.saved_query import QueryRunResult, SavedQueryCreate, SavedQueryOut
from crossmap.services.engine import MappingEngine

router = APIRouter(prefix="/api/v1/queries", tags=["Saved Queries"])


@router.get("", response_model=list[SavedQueryOut])
async def list_queries(
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.list_queries(tenant_id)


@router.post("", response_model=SavedQueryOut, status_code=201)
async def save_query(
    body: SavedQueryCreate,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.save_query(
        tenant_id,
        body.name,
        body.query_type,
        body.parameters,
        schedule=body.schedule_frequency,
        description=body.description,
        created_by=body.created_by,
    )


@router.get("/scheduled", response_model=list[SavedQueryOut])
async def list_scheduled(
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.list_scheduled_queries(tenant_id)


@router.get("/{query_id}", response_model=SavedQueryOut)
async def get_query(
    query_id: int,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.get_query(query_id, tenant_id)


@router.delete("/{query_id}", status_code=204)
async def delete_query(
    query_id: int,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    await engine.delete_query(query_id, tenant_id)


@router.post("/{query_id}/run", response_model=QueryRunResult)
async def run_query(
    query_id: int,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.run_query(query_id, tenant_id)

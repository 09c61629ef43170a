"""
Cross-framework module — /api/v1/cross-framework
Cross-reference edges, equivalence resolution, mapping matrix, overlap and
the AI analysis entry point.
"""
from fastapi import APIRouter, Depends, Query

from crossmap.dependencies import get_engine, get_tenant_id
from crossmap.schemas.ai import AIAnalysisResult, AIAnalyzeRequest
from crossmap.schemas.analysis import EquivalenceResult, FrameworkOverlap, MappingMatrix
from crossmap.schemas.cross_reference import CrossReferenceCreate, CrossReferenceOut, CrossReferenceSupersede
from crossmap.services.cross_reference import to_out
from crossmap.services.engine import MappingEngine

router = APIRouter(prefix="/api/v1/cross-framework", tags=["Cross-Framework Mapping"])


# ═══ Cross-references ═══════════════════════════════════════════


@router.get("/references", response_model=list[CrossReferenceOut])
async def list_cross_references(
    control_id: str | None = None,
    kind: str | None = None,
    include_superseded: bool = False,
    engine: MappingEngine = Depends(get_engine),
):
    edges = await engine.list_cross_references(control_id, kind, include_superseded)
    index = await engine.control_framework_index()
    return [to_out(e, index) for e in edges]


@router.post("/references", response_model=CrossReferenceOut, status_code=201)
async def create_cross_reference(body: CrossReferenceCreate, engine: MappingEngine = Depends(get_engine)):
    edge = await engine.create_cross_reference(
        body.source_control_id,
        body.target_control_id,
        body.relationship_kind,
        confidence=body.confidence,
        provenance=body.provenance,
        rationale=body.rationale,
        created_by=body.created_by,
    )
    return to_out(edge, await engine.control_framework_index())


@router.get("/references/{edge_id}", response_model=CrossReferenceOut)
async def get_cross_reference(edge_id: int, engine: MappingEngine = Depends(get_engine)):
    edge = await engine.get_cross_reference(edge_id)
    return to_out(edge, await engine.control_framework_index())


@router.post("/references/{edge_id}/supersede", response_model=CrossReferenceOut)
async def supersede_cross_reference(
    edge_id: int,
    body: CrossReferenceSupersede | None = None,
    engine: MappingEngine = Depends(get_engine),
):
    edge = await engine.supersede_cross_reference(edge_id, body.superseded_by_id if body else None)
    return to_out(edge, await engine.control_framework_index())


# ═══ Resolution ═════════════════════════════════════════════════


@router.get("/equivalents/{control_id}", response_model=EquivalenceResult)
async def resolve_equivalents(control_id: str, engine: MappingEngine = Depends(get_engine)):
    """All controls transitively equivalent to the given one (hop-limited)."""
    return await engine.resolve_equivalents(control_id)


@router.get("/matrix", response_model=MappingMatrix)
async def mapping_matrix(
    frameworks: list[str] | None = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    """Equivalent control pairs between every pair of the tenant's enabled frameworks."""
    return await engine.build_mapping_matrix(tenant_id, frameworks)


@router.get("/overlap", response_model=FrameworkOverlap | None)
async def framework_overlap(
    framework_a: str,
    framework_b: str,
    engine: MappingEngine = Depends(get_engine),
):
    """Directional overlap of two frameworks; null when either has no controls."""
    return await engine.framework_overlap(framework_a, framework_b)


# ═══ AI ═════════════════════════════════════════════════════════


@router.post("/ai/analyze", response_model=AIAnalysisResult)
async def ai_analyze(
    body: AIAnalyzeRequest,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.analyze(tenant_id, body.query, body.frameworks, body.requirement_focus)

"""
Z-Inspection module — /api/v1/z-inspection
Inspection report intake, finding -> control mapping and weight adjustment.
"""
from fastapi import APIRouter, Depends

from crossmap.dependencies import get_engine, get_tenant_id
from crossmap.models.inspection import InspectionReport
from crossmap.schemas.inspection import (
    AdjustWeightsRequest,
    FindingControlLinkOut,
    InspectionReportCreate,
    InspectionReportOut,
    MapFindingRequest,
    WeightAdjustment,
)
from crossmap.services.engine import MappingEngine

router = APIRouter(prefix="/api/v1/z-inspection", tags=["Z-Inspection"])


def _report_out(report: InspectionReport, finding_count: int) -> InspectionReportOut:
    return InspectionReportOut(
        id=report.id,
        tenant_id=report.tenant_id,
        title=report.title,
        ai_system_name=report.ai_system_name,
        inspected_at=report.inspected_at,
        finding_count=finding_count,
    )


@router.post("/reports", response_model=InspectionReportOut, status_code=201)
async def import_report(
    body: InspectionReportCreate,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    report = await engine.import_inspection_report(tenant_id, body)
    return _report_out(report, len(body.findings))


@router.get("/reports/{report_id}", response_model=InspectionReportOut)
async def get_report(
    report_id: str,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    report, findings = await engine.inspection_report_findings(report_id, tenant_id)
    return _report_out(report, len(findings))


@router.post("/map-finding", response_model=list[FindingControlLinkOut])
async def map_finding(
    body: MapFindingRequest,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    """Link a finding to relevant controls, replacing its previous links."""
    return await engine.map_finding_to_controls(body.finding_id, tenant_id)


@router.get("/findings/{finding_id}/links", response_model=list[FindingControlLinkOut])
async def finding_links(
    finding_id: str,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    return await engine.finding_links(finding_id, tenant_id)


@router.post("/adjust-weights", response_model=list[WeightAdjustment])
async def adjust_weights(
    body: AdjustWeightsRequest,
    tenant_id: str = Depends(get_tenant_id),
    engine: MappingEngine = Depends(get_engine),
):
    """Apply a report's findings to cross-reference confidence. Safe to replay."""
    return await engine.adjust_weights_from_report(body.report_id, tenant_id)

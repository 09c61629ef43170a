"""Pydantic schemas for Z-Inspection reports, finding links and weight shifts."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class FindingCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    category: str | None = None
    requirement_id: str | None = None
    severity: str = "medium"
    finding_type: str = "observation"


class InspectionReportCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=500)
    ai_system_name: str | None = None
    inspected_at: datetime | None = None
    findings: list[FindingCreate] = Field(default_factory=list)


class FindingOut(BaseModel):
    id: str
    report_id: str
    title: str
    description: str | None = None
    category: str | None = None
    requirement_id: str | None = None
    severity: str
    finding_type: str
    model_config = {"from_attributes": True}


class InspectionReportOut(BaseModel):
    id: str
    tenant_id: str
    title: str
    ai_system_name: str | None = None
    inspected_at: datetime | None = None
    finding_count: int = 0


class FindingControlLinkOut(BaseModel):
    id: int
    finding_id: str
    control_id: str
    framework_id: str
    link_type: str
    confidence: float
    rationale: str | None = None
    model_config = {"from_attributes": True}


class MapFindingRequest(BaseModel):
    finding_id: str = Field(..., min_length=1)


class AdjustWeightsRequest(BaseModel):
    report_id: str = Field(..., min_length=1)


class FindingJustification(BaseModel):
    finding_id: str
    severity: str
    outcome: str
    delta: float


class WeightAdjustment(BaseModel):
    edge_id: int
    source_control_id: str
    target_control_id: str
    relationship_kind: str
    old_confidence: float
    new_confidence: float
    delta: float
    clamped: bool = False
    justification: list[FindingJustification] = Field(default_factory=list)

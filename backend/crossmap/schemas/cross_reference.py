"""Pydantic schemas for cross-references between controls."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CrossReferenceCreate(BaseModel):
    source_control_id: str = Field(..., min_length=1, max_length=100)
    target_control_id: str = Field(..., min_length=1, max_length=100)
    # Validated by the store so bad values surface as InvalidInput
    relationship_kind: str
    confidence: float = 0.8
    provenance: str = "manual"
    rationale: str | None = None
    created_by: str | None = Field(None, max_length=200)


class CrossReferenceOut(BaseModel):
    id: int
    source_control_id: str
    source_framework_id: str | None = None
    target_control_id: str
    target_framework_id: str | None = None
    relationship_kind: str
    confidence: float
    base_confidence: float
    provenance: str
    rationale: str | None = None
    is_superseded: bool = False
    superseded_at: datetime | None = None
    superseded_by_id: int | None = None
    version_id: int
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime


class CrossReferenceSupersede(BaseModel):
    superseded_by_id: int | None = None

"""Pydantic schemas for the Control Catalog."""
from __future__ import annotations

from pydantic import BaseModel, Field


class FrameworkOut(BaseModel):
    id: str
    name: str
    version: str | None = None
    category: str | None = None
    description: str | None = None
    is_active: bool = True
    control_count: int | None = None
    model_config = {"from_attributes": True}


class ControlOut(BaseModel):
    id: str
    framework_id: str
    ref_id: str
    title: str
    description: str | None = None
    category: str | None = None
    is_active: bool = True
    model_config = {"from_attributes": True}


class RequirementOut(BaseModel):
    id: str
    name: str
    short_name: str
    description: str | None = None
    keywords: list[str] | None = None
    display_order: int = 0
    model_config = {"from_attributes": True}


class RequirementControlMappingOut(BaseModel):
    id: int
    requirement_id: str
    control_id: str
    strength: float
    rationale: str | None = None
    model_config = {"from_attributes": True}


class RequirementControlMappingCreate(BaseModel):
    requirement_id: str
    control_id: str
    strength: float = 0.5
    rationale: str | None = None


class CatalogImportResult(BaseModel):
    frameworks: int = 0
    controls: int = 0
    requirement_mappings: int = 0
    cross_references: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)

"""Pydantic schemas for tenant module configuration."""
from __future__ import annotations

from pydantic import BaseModel, Field


class FrameworkToggle(BaseModel):
    framework_id: str
    enabled: bool
    updated_by: str | None = Field(None, max_length=200)


class ControlExclusionCreate(BaseModel):
    control_id: str
    reason: str | None = None
    created_by: str | None = Field(None, max_length=200)


class TenantConfigOut(BaseModel):
    tenant_id: str
    enabled_frameworks: list[str] = Field(default_factory=list)
    disabled_frameworks: list[str] = Field(default_factory=list)
    excluded_controls: list[str] = Field(default_factory=list)

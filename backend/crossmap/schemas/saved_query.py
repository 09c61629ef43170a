"""Pydantic schemas for saved analysis queries."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class SavedQueryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    query_type: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    schedule_frequency: str | None = None
    description: str | None = None
    created_by: str | None = Field(None, max_length=200)


class SavedQueryOut(BaseModel):
    id: int
    tenant_id: str
    name: str
    description: str | None = None
    query_type: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    is_scheduled: bool = False
    schedule_frequency: str | None = None
    last_run_at: datetime | None = None
    last_result: dict | list | None = None
    created_by: str | None = None
    created_at: datetime
    model_config = {"from_attributes": True}


class QueryRunResult(BaseModel):
    query_id: int
    query_type: str
    ran_at: datetime
    result: dict | list | None = None

"""Pydantic schemas for the AI augmentation bridge."""
from __future__ import annotations

from pydantic import BaseModel, Field


class AIAnalyzeRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)
    frameworks: list[str] | None = None
    requirement_focus: list[str] | None = None


class AIAnalysisResult(BaseModel):
    query: str
    ai_used: bool = False
    answer: str | None = None
    findings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    related_controls: list[str] = Field(default_factory=list)
    cross_framework_insights: list[str] = Field(default_factory=list)
    confidence: float = 0.0
    degraded_reason: str | None = None

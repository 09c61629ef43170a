"""Result schemas for equivalence, overlap, gap and coverage analysis."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


# ═══ Equivalence ═══


class EquivalentControl(BaseModel):
    control_id: str
    framework_id: str
    title: str | None = None
    hops: int
    # Weakest edge confidence along the BFS path
    confidence: float
    provenances: list[str] = Field(default_factory=list)


class EquivalenceResult(BaseModel):
    control_id: str
    framework_id: str
    hop_limit: int
    equivalents: list[EquivalentControl] = Field(default_factory=list)
    truncated: bool = False

    @property
    def control_ids(self) -> set[str]:
        return {e.control_id for e in self.equivalents}


class MappedPair(BaseModel):
    """Normalised (min, max) pair of equivalent controls."""
    control_a: str
    control_b: str
    confidence: float
    provenances: list[str] = Field(default_factory=list)
    direct: bool = True


class FrameworkPairCell(BaseModel):
    framework_a: str
    framework_b: str
    pairs: list[MappedPair] = Field(default_factory=list)
    mapping_count: int = 0
    overlap_percent_a: float | None = None
    overlap_percent_b: float | None = None


class MatrixFramework(BaseModel):
    id: str
    name: str
    control_count: int


class MappingMatrixSummary(BaseModel):
    total_frameworks: int = 0
    total_mappings: int = 0
    average_overlap: float = 0.0
    most_mapped_framework: str | None = None


class MappingMatrix(BaseModel):
    tenant_id: str
    frameworks: list[MatrixFramework] = Field(default_factory=list)
    cells: list[FrameworkPairCell] = Field(default_factory=list)
    summary: MappingMatrixSummary = Field(default_factory=MappingMatrixSummary)
    generated_at: datetime

    def cell(self, framework_a: str, framework_b: str) -> FrameworkPairCell | None:
        key = tuple(sorted((framework_a, framework_b)))
        for c in self.cells:
            if (c.framework_a, c.framework_b) == key:
                return c
        return None


# ═══ Overlap ═══


class ControlOverlap(BaseModel):
    control_id: str
    title: str | None = None
    equivalents: list[str] = Field(default_factory=list)


class OverlapDirection(BaseModel):
    source_framework_id: str
    target_framework_id: str
    total_controls: int
    overlapping_controls: int
    overlap_ratio: float
    per_control: list[ControlOverlap] = Field(default_factory=list)


class FrameworkOverlap(BaseModel):
    framework_a: str
    framework_a_name: str
    framework_b: str
    framework_b_name: str
    shared_concepts: list[MappedPair] = Field(default_factory=list)
    overlap_ratio_a_in_b: float
    overlap_ratio_b_in_a: float
    a_in_b: OverlapDirection
    b_in_a: OverlapDirection
    direct_edges_by_kind: dict[str, int] = Field(default_factory=dict)
    calculated_at: datetime


# ═══ Gap analysis ═══


class SuggestedMapping(BaseModel):
    target_control_id: str
    target_framework_id: str
    confidence: float
    reason: str


class UnmappedControl(BaseModel):
    control_id: str
    title: str
    framework_id: str
    category: str | None = None
    priority: str
    suggested_mappings: list[SuggestedMapping] = Field(default_factory=list)


class UnmappedRequirement(BaseModel):
    requirement_id: str
    requirement_name: str
    frameworks_with_gaps: list[str] = Field(default_factory=list)
    suggested_controls: list[str] = Field(default_factory=list)


class GapRecommendation(BaseModel):
    type: str
    priority: str
    description: str
    affected_frameworks: list[str] = Field(default_factory=list)
    estimated_effort: str


class GapAnalysis(BaseModel):
    tenant_id: str
    enabled_frameworks: list[str] = Field(default_factory=list)
    unmapped_controls: list[UnmappedControl] = Field(default_factory=list)
    unmapped_requirements: list[UnmappedRequirement] = Field(default_factory=list)
    coverage_percent_by_framework: dict[str, float] = Field(default_factory=dict)
    overall_coverage_percent: float | None = None
    recommendations: list[GapRecommendation] = Field(default_factory=list)
    analyzed_at: datetime


# ═══ Requirement coverage ═══


class CoverageControl(BaseModel):
    control_id: str
    title: str
    category: str | None = None
    strength: float


class FrameworkCoverageDetail(BaseModel):
    framework_id: str
    framework_name: str
    control_count: int
    coverage_score: float
    controls: list[CoverageControl] = Field(default_factory=list)


class RequirementCoverage(BaseModel):
    requirement_id: str
    requirement_name: str
    framework_coverage: list[FrameworkCoverageDetail] = Field(default_factory=list)
    total_controls: int = 0
    average_coverage: float = 0.0

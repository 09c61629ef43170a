"""
Gap Analyzer — per-tenant unmapped controls, unmapped requirements and
coverage.

A control in scope (enabled framework, not excluded) is covered when it has
at least one requirement mapping, or an active EQUIVALENT/SUPPORTS edge in
either direction to an in-scope control of another enabled framework.

Results are recomputed from storage on every call: toggling a framework
changes what counts as a gap immediately.
"""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from crossmap.models.catalog import Control, Requirement
from crossmap.models.cross_reference import COVERAGE_KINDS
from crossmap.schemas.analysis import (
    CoverageControl,
    FrameworkCoverageDetail,
    GapAnalysis,
    GapRecommendation,
    RequirementCoverage,
    SuggestedMapping,
    UnmappedControl,
    UnmappedRequirement,
)
from crossmap.services.catalog import ControlCatalog, normalize_requirement_id
from crossmap.services.cross_reference import CrossReferenceStore
from crossmap.services.tenant_config import TenantConfigService
from crossmap.services.text_match import keyword_similarity, keywords

logger = logging.getLogger(__name__)

CATEGORY_PRIORITY = {
    "organizational": "high",
    "technological": "medium",
    "physical": "medium",
    "people": "low",
}

# Frameworks with more unmapped controls than this get an add_mapping recommendation
BULK_GAP_THRESHOLD = 10
SUGGESTION_THRESHOLD = 0.2
MAX_SUGGESTIONS = 5
MAX_REQUIREMENT_SUGGESTIONS = 10


def priority_for(category: str | None) -> str:
    return CATEGORY_PRIORITY.get((category or "").strip().lower(), "medium")


@dataclass
class _Scope:
    tenant_id: str
    frameworks: list[str]
    controls: list[Control]
    excluded: set[str]

    @property
    def control_ids(self) -> set[str]:
        return {c.id for c in self.controls}


class GapAnalyzer:
    def __init__(self, session: AsyncSession, tenant_config: TenantConfigService | None = None):
        self.session = session
        self.catalog = ControlCatalog(session)
        self.store = CrossReferenceStore(session)
        self.tenant_config = tenant_config or TenantConfigService(session)

    async def _scope(self, tenant_id: str) -> _Scope:
        config = await self.tenant_config.scope(tenant_id)
        excluded = set(config.excluded_controls)
        controls = [
            c for c in await self.catalog.list_controls(config.enabled_frameworks)
            if c.id not in excluded
        ]
        return _Scope(config.tenant_id, config.enabled_frameworks, controls, excluded)

    async def _covered_control_ids(self, scope: _Scope) -> set[str]:
        in_scope = {c.id: c.framework_id for c in scope.controls}
        covered = {m.control_id for m in await self.catalog.requirement_mappings(control_ids=set(in_scope))}

        for edge in await self.store.edges_touching(in_scope):
            if edge.relationship_kind not in COVERAGE_KINDS:
                continue
            src_fw = in_scope.get(edge.source_control_id)
            tgt_fw = in_scope.get(edge.target_control_id)
            if src_fw and tgt_fw and src_fw != tgt_fw:
                covered.add(edge.source_control_id)
                covered.add(edge.target_control_id)
        return covered

    # ─── Unmapped controls ───

    async def find_unmapped_controls(self, tenant_id: str, with_suggestions: bool = True) -> list[UnmappedControl]:
        scope = await self._scope(tenant_id)
        return await self._unmapped_controls(scope, await self._covered_control_ids(scope), with_suggestions)

    async def _unmapped_controls(
        self, scope: _Scope, covered: set[str], with_suggestions: bool,
    ) -> list[UnmappedControl]:
        result = []
        for control in scope.controls:
            if control.id in covered:
                continue
            result.append(UnmappedControl(
                control_id=control.id,
                title=control.title,
                framework_id=control.framework_id,
                category=control.category,
                priority=priority_for(control.category),
                suggested_mappings=self._suggest_mappings(control, scope) if with_suggestions else [],
            ))
        return result

    def _suggest_mappings(self, control: Control, scope: _Scope) -> list[SuggestedMapping]:
        words = keywords(control.title, control.description)
        suggestions = []
        for other in scope.controls:
            if other.framework_id == control.framework_id:
                continue
            score, matched = keyword_similarity(words, other.title, other.description)
            if score > SUGGESTION_THRESHOLD:
                suggestions.append(SuggestedMapping(
                    target_control_id=other.id,
                    target_framework_id=other.framework_id,
                    confidence=round(score, 4),
                    reason=f"keyword match ({', '.join(matched)})",
                ))
        suggestions.sort(key=lambda s: (-s.confidence, s.target_control_id))
        return suggestions[:MAX_SUGGESTIONS]

    # ─── Unmapped requirements ───

    async def find_unmapped_requirements(self, tenant_id: str) -> list[UnmappedRequirement]:
        return await self._unmapped_requirements(await self._scope(tenant_id))

    async def _unmapped_requirements(self, scope: _Scope) -> list[UnmappedRequirement]:
        mapped = {m.requirement_id for m in await self.catalog.requirement_mappings(control_ids=scope.control_ids)}
        result = []
        for req in await self.catalog.list_requirements():
            if req.id in mapped:
                continue
            result.append(UnmappedRequirement(
                requirement_id=req.id,
                requirement_name=req.name,
                frameworks_with_gaps=list(scope.frameworks),
                suggested_controls=self._suggest_controls(req, scope),
            ))
        return result

    def _suggest_controls(self, req: Requirement, scope: _Scope) -> list[str]:
        words = list(req.keywords or []) or keywords(req.name)
        scored = []
        for control in scope.controls:
            score, _ = keyword_similarity(words, control.title, control.description)
            if score > 0:
                scored.append((score, control.id))
        scored.sort(key=lambda s: (-s[0], s[1]))
        return [cid for _, cid in scored[:MAX_REQUIREMENT_SUGGESTIONS]]

    # ─── Full analysis ───

    async def identify_gaps(self, tenant_id: str) -> GapAnalysis:
        scope = await self._scope(tenant_id)
        covered = await self._covered_control_ids(scope)
        unmapped_controls = await self._unmapped_controls(scope, covered, with_suggestions=True)
        unmapped_requirements = await self._unmapped_requirements(scope)

        totals = Counter(c.framework_id for c in scope.controls)
        uncovered = Counter(u.framework_id for u in unmapped_controls)
        coverage = {
            fw: round((totals[fw] - uncovered[fw]) / totals[fw] * 100, 1)
            for fw in scope.frameworks
            if totals[fw]
        }
        total = sum(totals.values())
        overall = round((total - len(unmapped_controls)) / total * 100, 1) if total else None

        logger.info(
            "Gap analysis for tenant %s: %d frameworks, %d unmapped controls, %d unmapped requirements",
            scope.tenant_id, len(scope.frameworks), len(unmapped_controls), len(unmapped_requirements),
        )
        return GapAnalysis(
            tenant_id=scope.tenant_id,
            enabled_frameworks=scope.frameworks,
            unmapped_controls=unmapped_controls,
            unmapped_requirements=unmapped_requirements,
            coverage_percent_by_framework=coverage,
            overall_coverage_percent=overall,
            recommendations=recommend(unmapped_controls, unmapped_requirements),
            analyzed_at=datetime.utcnow(),
        )

    # ─── Requirement coverage ───

    async def controls_for_requirement(self, requirement_id: str, tenant_id: str) -> list[FrameworkCoverageDetail]:
        req = await self.catalog.get_requirement(requirement_id)
        scope = await self._scope(tenant_id)
        return await self._framework_details(req.id, scope)

    async def _framework_details(self, requirement_id: str, scope: _Scope) -> list[FrameworkCoverageDetail]:
        controls = {c.id: c for c in scope.controls}
        by_framework: dict[str, list[CoverageControl]] = defaultdict(list)
        for m in await self.catalog.requirement_mappings(requirement_id, control_ids=set(controls)):
            c = controls[m.control_id]
            by_framework[c.framework_id].append(CoverageControl(
                control_id=c.id, title=c.title, category=c.category, strength=m.strength,
            ))

        names = {fw.id: fw.name for fw in await self.catalog.list_frameworks(active_only=False)}
        details = []
        for fw in sorted(by_framework):
            mapped = sorted(by_framework[fw], key=lambda cc: (-cc.strength, cc.control_id))
            details.append(FrameworkCoverageDetail(
                framework_id=fw,
                framework_name=names.get(fw, fw),
                control_count=len(mapped),
                coverage_score=round(sum(cc.strength for cc in mapped) / len(mapped), 4),
                controls=mapped,
            ))
        return details

    async def requirement_coverage(
        self, tenant_id: str, requirement_ids: list[str] | None = None,
    ) -> list[RequirementCoverage]:
        scope = await self._scope(tenant_id)
        wanted = {normalize_requirement_id(r).value for r in requirement_ids} if requirement_ids else None

        result = []
        for req in await self.catalog.list_requirements():
            if wanted is not None and req.id not in wanted:
                continue
            details = await self._framework_details(req.id, scope)
            result.append(RequirementCoverage(
                requirement_id=req.id,
                requirement_name=req.name,
                framework_coverage=details,
                total_controls=sum(d.control_count for d in details),
                average_coverage=round(sum(d.coverage_score for d in details) / len(details), 4) if details else 0.0,
            ))
        return result


def recommend(
    unmapped_controls: list[UnmappedControl],
    unmapped_requirements: list[UnmappedRequirement],
) -> list[GapRecommendation]:
    recommendations = []
    per_framework = Counter(u.framework_id for u in unmapped_controls)
    for fw, count in sorted(per_framework.items()):
        if count > BULK_GAP_THRESHOLD:
            recommendations.append(GapRecommendation(
                type="add_mapping",
                priority="high",
                description=f"{count} controls in {fw} lack cross-framework mappings",
                affected_frameworks=[fw],
                estimated_effort="high" if count > 50 else "medium",
            ))
    for req in unmapped_requirements:
        recommendations.append(GapRecommendation(
            type="increase_coverage",
            priority="critical",
            description=f'Requirement "{req.requirement_name}" has no mapped control in the enabled frameworks',
            affected_frameworks=req.frameworks_with_gaps,
            estimated_effort="medium",
        ))
    return recommendations

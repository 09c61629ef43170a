"""
MappingEngine — composition root for one request.

Constructed explicitly with its session and the application's resolution
cache; every operation of the catalog, cross-reference store, resolver,
overlap calculator, gap analyzer, finding mapper, saved queries, tenant
config and AI bridge goes through it.

Transaction boundaries live here: each write operation commits once on
success and rolls back on any failure. Storage errors surface as
UpstreamUnavailable, optimistic-lock failures as ConflictingUpdate.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from crossmap.config import settings
from crossmap.errors import ConflictingUpdate, CrossMapError, InvalidInput, NotFound, UpstreamUnavailable
from crossmap.models.cross_reference import CrossReference
from crossmap.models.inspection import Finding, FindingControlLink, InspectionReport
from crossmap.models.saved_query import QueryType, SavedQuery
from crossmap.schemas.ai import AIAnalysisResult
from crossmap.schemas.analysis import (
    EquivalenceResult,
    FrameworkCoverageDetail,
    FrameworkOverlap,
    GapAnalysis,
    MappingMatrix,
    RequirementCoverage,
    UnmappedControl,
    UnmappedRequirement,
)
from crossmap.schemas.catalog import CatalogImportResult
from crossmap.schemas.inspection import InspectionReportCreate, WeightAdjustment
from crossmap.schemas.saved_query import QueryRunResult
from crossmap.schemas.tenant import TenantConfigOut
from crossmap.services.ai_adapters import AIAdapter
from crossmap.services.ai_bridge import AIBridge
from crossmap.services.catalog import ControlCatalog
from crossmap.services.catalog_import import import_catalog_yaml
from crossmap.services.cross_reference import CrossReferenceStore, parse_kind
from crossmap.services.equivalence import EquivalenceResolver
from crossmap.services.finding_mapper import FindingMapper, InspectionReportProvider, import_report
from crossmap.services.gap_analysis import GapAnalyzer
from crossmap.services.overlap import OverlapCalculator
from crossmap.services.resolution_cache import PendingInvalidations, ResolutionCache
from crossmap.services.saved_queries import SavedQueryService
from crossmap.services.tenant_config import TenantConfigService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MappingEngine:
    def __init__(
        self,
        session: AsyncSession,
        cache: ResolutionCache | None = None,
        config=settings,
        provider: InspectionReportProvider | None = None,
        ai_adapter: AIAdapter | None = None,
    ):
        self.session = session
        self.shared_cache = cache
        # Services see a per-request view; its invalidations are replayed after commit
        self.cache = PendingInvalidations(cache) if cache is not None else None
        self.config = config

        self.catalog = ControlCatalog(session)
        self.store = CrossReferenceStore(session, self.cache)
        self.tenant_config = TenantConfigService(session, self.cache)
        self.resolver = EquivalenceResolver(
            session, self.cache, hop_limit=config.EQUIVALENCE_HOP_LIMIT, tenant_config=self.tenant_config,
        )
        self.overlap = OverlapCalculator(session, self.resolver)
        self.gaps = GapAnalyzer(session, self.tenant_config)
        self.findings = FindingMapper(
            session,
            self.cache,
            provider=provider,
            relevance_threshold=config.FINDING_RELEVANCE_THRESHOLD,
            max_links=config.FINDING_MAX_LINKS,
            max_report_delta=config.MAX_REPORT_DELTA,
        )
        self.queries = SavedQueryService(session, handlers={
            QueryType.CROSS_FRAMEWORK: self._run_cross_framework,
            QueryType.GAP_ANALYSIS: self._run_gap_analysis,
            QueryType.REQUIREMENT_COVERAGE: self._run_requirement_coverage,
            QueryType.Z_INSPECTION: self._run_z_inspection,
        })
        self.ai = AIBridge(self, adapter=ai_adapter, config=config)

    # ─── Transaction helpers ───

    async def _read(self, op: Callable[[], Awaitable[T]]) -> T:
        try:
            return await op()
        except SQLAlchemyError as exc:
            logger.exception("Storage read failed")
            raise UpstreamUnavailable("Storage is unavailable", error=str(exc)) from exc

    async def _write(self, op: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await op()
            await self.session.commit()
        except StaleDataError as exc:
            await self._rollback()
            raise ConflictingUpdate("Record was modified concurrently; retry with a fresh read") from exc
        except CrossMapError:
            await self._rollback()
            raise
        except SQLAlchemyError as exc:
            await self._rollback()
            logger.exception("Storage write failed")
            raise UpstreamUnavailable("Storage is unavailable", error=str(exc)) from exc

        # Readers may have cached pre-commit state since the in-transaction clear
        if self.cache is not None:
            self.cache.apply()
        return result

    async def _rollback(self) -> None:
        await self.session.rollback()
        # Entries built from the rolled-back state must not outlive it
        if self.cache is not None:
            self.cache.discard()
            self.shared_cache.invalidate_all()

    # ─── Catalog ───

    async def list_frameworks(self):
        return await self._read(self.catalog.list_frameworks)

    async def control_counts(self) -> dict[str, int]:
        return await self._read(self.catalog.control_counts)

    async def list_controls(self, framework_id: str | None = None):
        async def op():
            if framework_id is not None:
                await self.catalog.get_framework(framework_id)
                return await self.catalog.list_controls([framework_id])
            return await self.catalog.list_controls()
        return await self._read(op)

    async def get_control(self, control_id: str):
        return await self._read(lambda: self.catalog.get_control(control_id))

    async def list_requirements(self):
        return await self._read(self.catalog.list_requirements)

    async def add_requirement_mapping(self, requirement_id: str, control_id: str, strength: float,
                                      rationale: str | None = None):
        return await self._write(
            lambda: self.catalog.add_requirement_mapping(requirement_id, control_id, strength, rationale)
        )

    async def import_catalog(self, content: bytes | str, imported_by: str = "yaml-import") -> CatalogImportResult:
        return await self._write(lambda: import_catalog_yaml(self.session, content, self.cache, imported_by))

    # ─── Cross-reference store ───

    async def create_cross_reference(
        self,
        source_control_id: str,
        target_control_id: str,
        relationship_kind: str,
        confidence: float = 0.8,
        provenance: str = "manual",
        rationale: str | None = None,
        created_by: str | None = None,
    ) -> CrossReference:
        return await self._write(lambda: self.store.create(
            source_control_id, target_control_id, relationship_kind,
            confidence=confidence, provenance=provenance, rationale=rationale, created_by=created_by,
        ))

    async def get_cross_reference(self, edge_id: int) -> CrossReference:
        return await self._read(lambda: self.store.get(edge_id))

    async def list_cross_references(
        self, control_id: str | None = None, kind: str | None = None, include_superseded: bool = False,
    ) -> list[CrossReference]:
        kinds = [parse_kind(kind)] if kind else None
        return await self._read(lambda: self.store.list_edges(control_id, kinds, include_superseded))

    async def supersede_cross_reference(self, edge_id: int, superseded_by_id: int | None = None) -> CrossReference:
        return await self._write(lambda: self.store.supersede(edge_id, superseded_by_id))

    async def control_framework_index(self) -> dict[str, str]:
        return await self._read(self.catalog.control_framework_index)

    # ─── Resolution & overlap ───

    async def resolve_equivalents(self, control_id: str) -> EquivalenceResult:
        return await self._read(lambda: self.resolver.resolve_equivalents(control_id))

    async def build_mapping_matrix(self, tenant_id: str, framework_ids: list[str] | None = None) -> MappingMatrix:
        return await self._read(lambda: self.resolver.build_mapping_matrix(tenant_id, framework_ids))

    async def framework_overlap(self, framework_a: str, framework_b: str) -> FrameworkOverlap | None:
        return await self._read(lambda: self.overlap.framework_overlap(framework_a, framework_b))

    # ─── Gaps & coverage ───

    async def identify_gaps(self, tenant_id: str) -> GapAnalysis:
        return await self._read(lambda: self.gaps.identify_gaps(tenant_id))

    async def find_unmapped_controls(self, tenant_id: str) -> list[UnmappedControl]:
        return await self._read(lambda: self.gaps.find_unmapped_controls(tenant_id))

    async def find_unmapped_requirements(self, tenant_id: str) -> list[UnmappedRequirement]:
        return await self._read(lambda: self.gaps.find_unmapped_requirements(tenant_id))

    async def requirement_coverage(
        self, tenant_id: str, requirement_ids: list[str] | None = None,
    ) -> list[RequirementCoverage]:
        return await self._read(lambda: self.gaps.requirement_coverage(tenant_id, requirement_ids))

    async def controls_for_requirement(self, requirement_id: str, tenant_id: str) -> list[FrameworkCoverageDetail]:
        return await self._read(lambda: self.gaps.controls_for_requirement(requirement_id, tenant_id))

    # ─── Z-Inspection ───

    async def _tenant_report(self, report_id: str, tenant_id: str | None) -> InspectionReport:
        report = await self.findings.provider.get_report(report_id)
        if tenant_id is not None and report.tenant_id != tenant_id:
            raise NotFound("InspectionReport", report_id)
        return report

    async def import_inspection_report(self, tenant_id: str, data: InspectionReportCreate) -> InspectionReport:
        return await self._write(lambda: import_report(self.session, tenant_id, data))

    async def get_inspection_report(self, report_id: str, tenant_id: str | None = None) -> InspectionReport:
        return await self._read(lambda: self._tenant_report(report_id, tenant_id))

    async def inspection_report_findings(
        self, report_id: str, tenant_id: str | None = None,
    ) -> tuple[InspectionReport, list[Finding]]:
        async def op():
            report = await self._tenant_report(report_id, tenant_id)
            return report, await self.findings.provider.findings_for_report(report_id)
        return await self._read(op)

    async def map_finding_to_controls(self, finding_id: str, tenant_id: str | None = None) -> list[FindingControlLink]:
        async def op():
            finding = await self.findings.provider.get_finding(finding_id)
            await self._tenant_report(finding.report_id, tenant_id)
            return await self.findings.map_finding_to_controls(finding_id)
        return await self._write(op)

    async def finding_links(self, finding_id: str, tenant_id: str | None = None) -> list[FindingControlLink]:
        async def op():
            finding = await self.findings.provider.get_finding(finding_id)
            await self._tenant_report(finding.report_id, tenant_id)
            return await self.findings.links_for_findings([finding_id])
        return await self._read(op)

    async def adjust_weights_from_report(self, report_id: str, tenant_id: str | None = None) -> list[WeightAdjustment]:
        async def op():
            await self._tenant_report(report_id, tenant_id)
            return await self.findings.adjust_weights_from_report(report_id)
        return await self._write(op)

    # ─── Saved queries ───

    async def save_query(
        self,
        tenant_id: str,
        name: str,
        query_type: str,
        parameters: dict[str, Any] | None = None,
        schedule: str | None = None,
        description: str | None = None,
        created_by: str | None = None,
    ) -> SavedQuery:
        return await self._write(lambda: self.queries.save(
            tenant_id, name, query_type, parameters, schedule, description, created_by,
        ))

    async def get_query(self, query_id: int, tenant_id: str | None = None) -> SavedQuery:
        return await self._read(lambda: self.queries.get(query_id, tenant_id))

    async def list_queries(self, tenant_id: str) -> list[SavedQuery]:
        return await self._read(lambda: self.queries.list_queries(tenant_id))

    async def list_scheduled_queries(self, tenant_id: str | None = None) -> list[SavedQuery]:
        return await self._read(lambda: self.queries.list_scheduled(tenant_id))

    async def delete_query(self, query_id: int, tenant_id: str | None = None) -> None:
        await self._write(lambda: self.queries.delete(query_id, tenant_id))

    async def run_query(self, query_id: int, tenant_id: str | None = None) -> QueryRunResult:
        return await self._write(lambda: self.queries.run(query_id, tenant_id))

    async def _run_cross_framework(self, tenant_id: str, params: dict[str, Any]):
        if params.get("framework_a") and params.get("framework_b"):
            return await self.overlap.framework_overlap(params["framework_a"], params["framework_b"])
        return await self.resolver.build_mapping_matrix(tenant_id, params.get("frameworks"))

    async def _run_gap_analysis(self, tenant_id: str, params: dict[str, Any]):
        return await self.gaps.identify_gaps(tenant_id)

    async def _run_requirement_coverage(self, tenant_id: str, params: dict[str, Any]):
        return await self.gaps.requirement_coverage(tenant_id, params.get("requirement_ids"))

    async def _run_z_inspection(self, tenant_id: str, params: dict[str, Any]):
        report_id = params.get("report_id")
        if not report_id:
            raise InvalidInput("z_inspection queries need a 'report_id' parameter")
        await self._tenant_report(report_id, tenant_id)
        return await self.findings.adjust_weights_from_report(report_id)

    # ─── Tenant config ───

    async def get_tenant_config(self, tenant_id: str) -> TenantConfigOut:
        return await self._read(lambda: self.tenant_config.scope(tenant_id))

    async def set_framework_enabled(
        self, tenant_id: str, framework_id: str, enabled: bool, updated_by: str | None = None,
    ) -> TenantConfigOut:
        return await self._write(
            lambda: self.tenant_config.set_framework_enabled(tenant_id, framework_id, enabled, updated_by)
        )

    async def exclude_control(
        self, tenant_id: str, control_id: str, reason: str | None = None, created_by: str | None = None,
    ) -> TenantConfigOut:
        return await self._write(
            lambda: self.tenant_config.exclude_control(tenant_id, control_id, reason, created_by)
        )

    async def include_control(self, tenant_id: str, control_id: str) -> TenantConfigOut:
        return await self._write(lambda: self.tenant_config.include_control(tenant_id, control_id))

    # ─── AI ───

    async def analyze(
        self,
        tenant_id: str,
        query: str,
        frameworks: list[str] | None = None,
        requirement_focus: list[str] | None = None,
    ) -> AIAnalysisResult:
        return await self.ai.analyze(tenant_id, query, frameworks, requirement_focus)

"""
External-Finding Mapper & Weight Adjuster.

Z-Inspection findings are linked to controls by keyword relevance and the
finding's requirement mappings, then used to shift the confidence of the
cross-reference edges around the linked controls.

Weight policy (per finding, per linked control, per touching edge):

    magnitude = SEVERITY_DELTA[severity] * link confidence
    weakness / threat -> EQUIVALENT, OVERLAPPING, SUPPORTS down; CONFLICTS up
    strength          -> EQUIVALENT, OVERLAPPING, SUPPORTS up by half
    anything else     -> no shift; SUPERSEDES edges never shift

A report's total delta on one edge is bounded by MAX_REPORT_DELTA and stored
as one adjustment row per (edge, report). The effective confidence is always
clamp(base + sum of report deltas), so replaying a report rewrites its own
row and yields the same values as running it once.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from crossmap.config import settings
from crossmap.errors import ConflictingUpdate, InvalidInput, NotFound
from crossmap.models.catalog import Requirement, RequirementControlMapping
from crossmap.models.cross_reference import CrossReference, CrossReferenceAdjustment, RelationshipKind
from crossmap.models.inspection import (
    FINDING_SEVERITIES,
    FINDING_TYPES,
    Finding,
    FindingControlLink,
    InspectionReport,
)
from crossmap.schemas.inspection import FindingJustification, InspectionReportCreate, WeightAdjustment
from crossmap.services.catalog import ControlCatalog, normalize_requirement_id
from crossmap.services.cross_reference import CrossReferenceStore, clamp_unit
from crossmap.services.resolution_cache import PendingInvalidations, ResolutionCache
from crossmap.services.text_match import keyword_similarity, keywords

logger = logging.getLogger(__name__)

SEVERITY_DELTA = {
    "critical": 0.20,
    "high": 0.10,
    "medium": 0.05,
    "low": 0.02,
}

NEGATIVE_OUTCOMES = frozenset({"weakness", "threat"})
POSITIVE_OUTCOMES = frozenset({"strength"})

# Signed multiplier per outcome direction and relationship kind. Every kind
# appears in every row.
_SHIFT: dict[str, dict[RelationshipKind, float]] = {
    "negative": {
        RelationshipKind.EQUIVALENT: -1.0,
        RelationshipKind.OVERLAPPING: -1.0,
        RelationshipKind.SUPPORTS: -1.0,
        RelationshipKind.CONFLICTS: 1.0,
        RelationshipKind.SUPERSEDES: 0.0,
    },
    "positive": {
        RelationshipKind.EQUIVALENT: 0.5,
        RelationshipKind.OVERLAPPING: 0.5,
        RelationshipKind.SUPPORTS: 0.5,
        RelationshipKind.CONFLICTS: 0.0,
        RelationshipKind.SUPERSEDES: 0.0,
    },
}


def outcome_direction(finding_type: str) -> str | None:
    if finding_type in NEGATIVE_OUTCOMES:
        return "negative"
    if finding_type in POSITIVE_OUTCOMES:
        return "positive"
    return None


def link_type_for(relevance: float) -> str:
    if relevance >= 0.8:
        return "direct"
    if relevance >= 0.5:
        return "indirect"
    return "recommended"


def bound(delta: float, limit: float) -> float:
    return max(-limit, min(limit, delta))


class InspectionReportProvider(Protocol):
    """Read-only source of inspection reports and their findings."""

    async def get_report(self, report_id: str) -> InspectionReport: ...

    async def get_finding(self, finding_id: str) -> Finding: ...

    async def findings_for_report(self, report_id: str) -> list[Finding]: ...


class DatabaseInspectionProvider:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_report(self, report_id: str) -> InspectionReport:
        report = await self.session.get(InspectionReport, report_id)
        if not report:
            raise NotFound("InspectionReport", report_id)
        return report

    async def get_finding(self, finding_id: str) -> Finding:
        finding = await self.session.get(Finding, finding_id)
        if not finding:
            raise NotFound("Finding", finding_id)
        return finding

    async def findings_for_report(self, report_id: str) -> list[Finding]:
        q = select(Finding).where(Finding.report_id == report_id).order_by(Finding.id)
        return list((await self.session.execute(q)).scalars().all())


async def import_report(session: AsyncSession, tenant_id: str, data: InspectionReportCreate) -> InspectionReport:
    """Persist an inspection report and its findings after validating them."""
    if await session.get(InspectionReport, data.id):
        raise InvalidInput(f"Inspection report '{data.id}' already exists")

    findings = []
    seen: set[str] = set()
    for f in data.findings:
        severity = f.severity.strip().lower()
        finding_type = f.finding_type.strip().lower()
        if severity not in FINDING_SEVERITIES:
            raise InvalidInput(f"Invalid severity '{f.severity}'. Must be one of: {', '.join(FINDING_SEVERITIES)}")
        if finding_type not in FINDING_TYPES:
            raise InvalidInput(f"Invalid finding_type '{f.finding_type}'. Must be one of: {', '.join(FINDING_TYPES)}")
        if f.id in seen or await session.get(Finding, f.id):
            raise InvalidInput(f"Finding '{f.id}' already exists")
        seen.add(f.id)
        findings.append(Finding(
            id=f.id,
            title=f.title,
            description=f.description,
            category=f.category,
            requirement_id=normalize_requirement_id(f.requirement_id).value if f.requirement_id else None,
            severity=severity,
            finding_type=finding_type,
        ))

    report = InspectionReport(
        id=data.id,
        tenant_id=tenant_id,
        title=data.title,
        ai_system_name=data.ai_system_name,
        inspected_at=data.inspected_at,
        findings=findings,
    )
    session.add(report)
    await session.flush()
    logger.info("Imported inspection report %s with %d findings", report.id, len(findings))
    return report


class FindingMapper:
    def __init__(
        self,
        session: AsyncSession,
        cache: ResolutionCache | PendingInvalidations | None = None,
        provider: InspectionReportProvider | None = None,
        relevance_threshold: float | None = None,
        max_links: int | None = None,
        max_report_delta: float | None = None,
    ):
        self.session = session
        self.cache = cache
        self.provider = provider or DatabaseInspectionProvider(session)
        self.catalog = ControlCatalog(session)
        self.store = CrossReferenceStore(session, cache)
        self.relevance_threshold = (
            settings.FINDING_RELEVANCE_THRESHOLD if relevance_threshold is None else relevance_threshold
        )
        self.max_links = settings.FINDING_MAX_LINKS if max_links is None else max_links
        self.max_report_delta = settings.MAX_REPORT_DELTA if max_report_delta is None else max_report_delta

    # ─── Finding -> control links ───

    async def _finding_keywords(self, finding: Finding) -> list[str]:
        words = keywords(finding.title, finding.description, finding.category)
        if finding.requirement_id:
            req = await self.session.get(Requirement, finding.requirement_id)
            if req and req.keywords:
                words += [k for k in req.keywords if k not in words]
        return words

    async def map_finding_to_controls(self, finding_id: str) -> list[FindingControlLink]:
        """Link a finding to every active control relevant enough; replaces earlier links."""
        finding = await self.provider.get_finding(finding_id)
        words = await self._finding_keywords(finding)

        strengths: dict[str, float] = {}
        if finding.requirement_id:
            q = select(RequirementControlMapping.control_id, RequirementControlMapping.strength).where(
                RequirementControlMapping.requirement_id == finding.requirement_id,
            )
            strengths = {cid: s for cid, s in (await self.session.execute(q)).all()}

        candidates = []
        for control in await self.catalog.list_controls():
            score, matched = keyword_similarity(words, control.title, control.description)
            strength = strengths.get(control.id, 0.0)
            relevance = round(max(score, strength), 4)
            if relevance < self.relevance_threshold or relevance <= 0:
                continue
            if strength >= score:
                reason = f"requirement mapping {finding.requirement_id} (strength {strength:.2f})"
            else:
                reason = f"keyword match ({', '.join(matched)})"
            candidates.append((relevance, control, reason))

        candidates.sort(key=lambda c: (-c[0], c[1].id))
        candidates = candidates[: self.max_links]

        await self.session.execute(delete(FindingControlLink).where(FindingControlLink.finding_id == finding.id))
        links = [
            FindingControlLink(
                finding_id=finding.id,
                control_id=control.id,
                framework_id=control.framework_id,
                link_type=link_type_for(relevance),
                confidence=relevance,
                rationale=f"Mapped based on {reason}",
            )
            for relevance, control, reason in candidates
        ]
        self.session.add_all(links)
        await self.session.flush()
        logger.info("Finding %s linked to %d controls", finding.id, len(links))
        return links

    async def links_for_findings(self, finding_ids: list[str]) -> list[FindingControlLink]:
        if not finding_ids:
            return []
        q = (
            select(FindingControlLink)
            .where(FindingControlLink.finding_id.in_(finding_ids))
            .order_by(FindingControlLink.finding_id, FindingControlLink.control_id)
        )
        return list((await self.session.execute(q)).scalars().all())

    # ─── Report -> edge weights ───

    async def adjust_weights_from_report(self, report_id: str) -> list[WeightAdjustment]:
        """Recompute this report's contribution to every edge it touches.

        Findings without links are mapped first. Edges the report touched on
        an earlier run but no longer touches get their contribution removed.
        Raises ConflictingUpdate when an edge changed concurrently; the
        caller rolls back so nothing from the report is applied.
        """
        await self.provider.get_report(report_id)
        findings = await self.provider.findings_for_report(report_id)

        linked = {link.finding_id for link in await self.links_for_findings([f.id for f in findings])}
        for finding in findings:
            if finding.id not in linked:
                await self.map_finding_to_controls(finding.id)

        links_by_finding: dict[str, list[FindingControlLink]] = defaultdict(list)
        for link in await self.links_for_findings([f.id for f in findings]):
            links_by_finding[link.finding_id].append(link)

        linked_controls = {link.control_id for links in links_by_finding.values() for link in links}
        edges = {e.id: e for e in await self.store.edges_touching(linked_controls)}

        # edge id -> finding id -> signed delta
        contributions: dict[int, dict[str, float]] = defaultdict(lambda: defaultdict(float))
        severities = {f.id: f.severity for f in findings}
        outcomes = {f.id: f.finding_type for f in findings}
        for finding in findings:
            direction = outcome_direction(finding.finding_type)
            if direction is None:
                continue
            base = SEVERITY_DELTA.get(finding.severity, 0.0)
            for link in links_by_finding.get(finding.id, ()):
                magnitude = base * link.confidence
                for edge in edges.values():
                    if link.control_id not in (edge.source_control_id, edge.target_control_id):
                        continue
                    shift = _SHIFT[direction][edge.relationship_kind] * magnitude
                    if shift:
                        contributions[edge.id][finding.id] += shift

        previous = {
            row.cross_reference_id: row
            for row in (await self.session.execute(
                select(CrossReferenceAdjustment).where(CrossReferenceAdjustment.report_id == report_id)
            )).scalars().all()
        }
        for edge_id in previous:
            if edge_id not in edges:
                edge = await self.session.get(CrossReference, edge_id)
                if edge is not None and not edge.is_superseded:
                    edges[edge_id] = edge

        results = []
        try:
            for edge_id in sorted(set(contributions) | (set(previous) & set(edges))):
                results.append(await self._apply(
                    report_id, edges[edge_id], contributions.get(edge_id, {}),
                    previous.get(edge_id), severities, outcomes,
                ))
            await self.session.flush()
        except StaleDataError as exc:
            raise ConflictingUpdate(
                f"Cross-reference changed while applying report '{report_id}'", report_id=report_id,
            ) from exc

        if results and self.cache is not None:
            self.cache.invalidate_all()
        logger.info("Report %s adjusted %d cross-references", report_id, len(results))
        return results

    async def _apply(
        self,
        report_id: str,
        edge: CrossReference,
        per_finding: dict[str, float],
        previous: CrossReferenceAdjustment | None,
        severities: dict[str, str],
        outcomes: dict[str, str],
    ) -> WeightAdjustment:
        delta = round(bound(sum(per_finding.values()), self.max_report_delta), 6)
        others = await self.store.adjustment_total(edge.id, excluding_report=report_id)
        raw = edge.base_confidence + others + delta
        new_confidence = round(clamp_unit(raw), 6)
        old_confidence = edge.confidence
        clamped = new_confidence != round(raw, 6)

        justification = [
            FindingJustification(
                finding_id=fid, severity=severities[fid], outcome=outcomes[fid], delta=round(d, 6),
            )
            for fid, d in sorted(per_finding.items())
        ]

        if delta == 0 and not per_finding:
            if previous is not None:
                await self.session.delete(previous)
        elif previous is None:
            self.session.add(CrossReferenceAdjustment(
                cross_reference_id=edge.id,
                report_id=report_id,
                delta=delta,
                old_confidence=old_confidence,
                new_confidence=new_confidence,
                clamped=clamped,
                justification=[j.model_dump() for j in justification],
            ))
        else:
            previous.delta = delta
            previous.old_confidence = old_confidence
            previous.new_confidence = new_confidence
            previous.clamped = clamped
            previous.justification = [j.model_dump() for j in justification]

        if edge.confidence != new_confidence:
            edge.confidence = new_confidence

        return WeightAdjustment(
            edge_id=edge.id,
            source_control_id=edge.source_control_id,
            target_control_id=edge.target_control_id,
            relationship_kind=edge.relationship_kind.value,
            old_confidence=old_confidence,
            new_confidence=new_confidence,
            delta=delta,
            clamped=clamped,
            justification=justification,
        )

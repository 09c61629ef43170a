"""
Cross-Reference Store — insert, supersede and traverse control edges.

Write rules:
- input is validated before anything touches the session (kind, provenance,
  confidence range, both controls in the catalog, no self reference);
- EQUIVALENT edges are normalised at write time: the reverse edge is
  materialised with the same kind, confidence and provenance;
- re-creating an active edge with the same provenance updates its
  confidence only; rationale of a manual edge is never overwritten;
- edges are superseded, never deleted;
- every write invalidates the resolution cache.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from crossmap.errors import InvalidInput, NotFound, require_unit_interval
from crossmap.models.catalog import Control
from crossmap.models.cross_reference import (
    SYMMETRIC_KINDS,
    CrossReference,
    CrossReferenceAdjustment,
    Provenance,
    RelationshipKind,
)
from crossmap.schemas.cross_reference import CrossReferenceOut
from crossmap.services.resolution_cache import PendingInvalidations, ResolutionCache

logger = logging.getLogger(__name__)


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def parse_kind(value: str | RelationshipKind) -> RelationshipKind:
    if isinstance(value, RelationshipKind):
        return value
    try:
        return RelationshipKind((value or "").strip().lower())
    except ValueError:
        valid = ", ".join(k.value for k in RelationshipKind)
        raise InvalidInput(f"Invalid relationship_kind '{value}'. Must be one of: {valid}")


def parse_provenance(value: str | Provenance) -> Provenance:
    if isinstance(value, Provenance):
        return value
    try:
        return Provenance((value or "").strip().lower())
    except ValueError:
        valid = ", ".join(p.value for p in Provenance)
        raise InvalidInput(f"Invalid provenance '{value}'. Must be one of: {valid}")


class CrossReferenceStore:
    def __init__(self, session: AsyncSession, cache: ResolutionCache | PendingInvalidations | None = None):
        self.session = session
        self.cache = cache

    def _invalidate(self) -> None:
        if self.cache is not None:
            self.cache.invalidate_all()

    # ─── Reads ───

    async def get(self, edge_id: int) -> CrossReference:
        edge = await self.session.get(CrossReference, edge_id)
        if not edge:
            raise NotFound("CrossReference", edge_id)
        return edge

    async def list_edges(
        self,
        control_id: str | None = None,
        kinds: Iterable[RelationshipKind] | None = None,
        include_superseded: bool = False,
    ) -> list[CrossReference]:
        q = select(CrossReference)
        if control_id is not None:
            q = q.where(or_(
                CrossReference.source_control_id == control_id,
                CrossReference.target_control_id == control_id,
            ))
        if kinds is not None:
            q = q.where(CrossReference.relationship_kind.in_(list(kinds)))
        if not include_superseded:
            q = q.where(CrossReference.is_superseded.is_(False))
        q = q.order_by(CrossReference.id)
        return list((await self.session.execute(q)).scalars().all())

    async def edges_touching(self, control_ids: Iterable[str]) -> list[CrossReference]:
        ids = list(set(control_ids))
        if not ids:
            return []
        q = (
            select(CrossReference)
            .where(
                CrossReference.is_superseded.is_(False),
                or_(
                    CrossReference.source_control_id.in_(ids),
                    CrossReference.target_control_id.in_(ids),
                ),
            )
            .order_by(CrossReference.id)
        )
        return list((await self.session.execute(q)).scalars().all())

    async def _find_active(
        self, source: str, target: str, kind: RelationshipKind, provenance: Provenance,
    ) -> CrossReference | None:
        q = select(CrossReference).where(
            CrossReference.source_control_id == source,
            CrossReference.target_control_id == target,
            CrossReference.relationship_kind == kind,
            CrossReference.provenance == provenance,
            CrossReference.is_superseded.is_(False),
        ).order_by(CrossReference.id)
        return (await self.session.execute(q)).scalars().first()

    async def adjustment_total(self, edge_id: int, excluding_report: str | None = None) -> float:
        q = select(func.coalesce(func.sum(CrossReferenceAdjustment.delta), 0.0)).where(
            CrossReferenceAdjustment.cross_reference_id == edge_id,
        )
        if excluding_report is not None:
            q = q.where(CrossReferenceAdjustment.report_id != excluding_report)
        return float((await self.session.execute(q)).scalar() or 0.0)

    # ─── Writes ───

    async def create(
        self,
        source_control_id: str,
        target_control_id: str,
        relationship_kind: str | RelationshipKind,
        confidence: float = 0.8,
        provenance: str | Provenance = Provenance.MANUAL,
        rationale: str | None = None,
        created_by: str | None = None,
    ) -> CrossReference:
        kind = parse_kind(relationship_kind)
        prov = parse_provenance(provenance)
        confidence = require_unit_interval("confidence", confidence)
        if source_control_id == target_control_id:
            raise InvalidInput("A control cannot cross-reference itself")
        for cid in (source_control_id, target_control_id):
            if not await self.session.get(Control, cid):
                raise NotFound("Control", cid)

        edge = await self._upsert(source_control_id, target_control_id, kind, confidence, prov, rationale, created_by)
        if kind in SYMMETRIC_KINDS:
            await self._upsert(target_control_id, source_control_id, kind, confidence, prov, rationale, created_by)

        await self.session.flush()
        self._invalidate()
        logger.info(
            "Cross-reference %s -[%s %.2f]-> %s (%s)",
            source_control_id, kind.value, confidence, target_control_id, prov.value,
        )
        return edge

    async def _upsert(
        self,
        source: str,
        target: str,
        kind: RelationshipKind,
        confidence: float,
        provenance: Provenance,
        rationale: str | None,
        created_by: str | None,
    ) -> CrossReference:
        edge = await self._find_active(source, target, kind, provenance)
        if edge is None:
            edge = CrossReference(
                source_control_id=source,
                target_control_id=target,
                relationship_kind=kind,
                base_confidence=confidence,
                confidence=confidence,
                provenance=provenance,
                rationale=rationale,
                created_by=created_by,
            )
            self.session.add(edge)
            return edge

        # Re-derivation: confidence only, unless the edge has no rationale yet.
        # Inspection adjustments are re-applied on top of the new base; the
        # effective value is clamped here and only logged, while
        # base_confidence keeps the requested value.
        edge.base_confidence = confidence
        effective = confidence + await self.adjustment_total(edge.id)
        edge.confidence = clamp_unit(effective)
        if edge.confidence != effective:
            logger.info(
                "Edge %s re-derived at %.4f clamped to %.4f after inspection adjustments",
                edge.id, effective, edge.confidence,
            )
        if rationale and not edge.rationale and provenance != Provenance.MANUAL:
            edge.rationale = rationale
        return edge

    async def supersede(self, edge_id: int, superseded_by_id: int | None = None) -> CrossReference:
        edge = await self.get(edge_id)
        if superseded_by_id is not None:
            if superseded_by_id == edge_id:
                raise InvalidInput("An edge cannot supersede itself")
            await self.get(superseded_by_id)
        if edge.is_superseded:
            return edge

        now = datetime.utcnow()
        edge.is_superseded = True
        edge.superseded_at = now
        edge.superseded_by_id = superseded_by_id

        if edge.relationship_kind in SYMMETRIC_KINDS:
            twin = await self._find_active(
                edge.target_control_id, edge.source_control_id,
                edge.relationship_kind, edge.provenance,
            )
            if twin is not None:
                twin.is_superseded = True
                twin.superseded_at = now
                twin.superseded_by_id = superseded_by_id

        await self.session.flush()
        self._invalidate()
        logger.info("Cross-reference %d superseded (by %s)", edge_id, superseded_by_id)
        return edge


def to_out(edge: CrossReference, framework_index: dict[str, str] | None = None) -> CrossReferenceOut:
    framework_index = framework_index or {}
    return CrossReferenceOut(
        id=edge.id,
        source_control_id=edge.source_control_id,
        source_framework_id=framework_index.get(edge.source_control_id),
        target_control_id=edge.target_control_id,
        target_framework_id=framework_index.get(edge.target_control_id),
        relationship_kind=edge.relationship_kind.value,
        confidence=edge.confidence,
        base_confidence=edge.base_confidence,
        provenance=edge.provenance.value,
        rationale=edge.rationale,
        is_superseded=edge.is_superseded,
        superseded_at=edge.superseded_at,
        superseded_by_id=edge.superseded_by_id,
        version_id=edge.version_id,
        created_by=edge.created_by,
        created_at=edge.created_at,
        updated_at=edge.updated_at,
    )

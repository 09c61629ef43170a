"""
Overlap Calculator — directional framework-to-framework overlap.

overlap(A in B) = |controls of A with >= 1 equivalent in B| / |controls of A|

Both directions are computed from the same set of shared equivalent pairs,
so they always describe the same underlying controls even when the ratios
differ. Returns None when either framework has no controls.
"""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crossmap.models.catalog import Control
from crossmap.models.cross_reference import CrossReference
from crossmap.schemas.analysis import ControlOverlap, FrameworkOverlap, OverlapDirection
from crossmap.services.catalog import ControlCatalog
from crossmap.services.equivalence import EquivalenceResolver

logger = logging.getLogger(__name__)


def _direction(
    source_fw: str,
    target_fw: str,
    controls: list[Control],
    partners: dict[str, set[str]],
) -> OverlapDirection:
    per_control = [
        ControlOverlap(control_id=c.id, title=c.title, equivalents=sorted(partners.get(c.id, ())))
        for c in controls
    ]
    overlapping = sum(1 for pc in per_control if pc.equivalents)
    return OverlapDirection(
        source_framework_id=source_fw,
        target_framework_id=target_fw,
        total_controls=len(controls),
        overlapping_controls=overlapping,
        overlap_ratio=round(overlapping / len(controls), 4),
        per_control=per_control,
    )


class OverlapCalculator:
    def __init__(self, session: AsyncSession, resolver: EquivalenceResolver):
        self.session = session
        self.resolver = resolver
        self.catalog = ControlCatalog(session)

    async def framework_overlap(self, framework_a: str, framework_b: str) -> FrameworkOverlap | None:
        fw_a = await self.catalog.get_framework(framework_a)
        fw_b = await self.catalog.get_framework(framework_b)

        controls_a = await self.catalog.list_controls([fw_a.id])
        controls_b = await self.catalog.list_controls([fw_b.id])
        if not controls_a or not controls_b:
            logger.debug("Overlap %s/%s: no controls on one side", fw_a.id, fw_b.id)
            return None

        pairs = await self.resolver.equivalent_pairs({fw_a.id, fw_b.id})
        ids_a = {c.id for c in controls_a}
        ids_b = {c.id for c in controls_b}

        partners: dict[str, set[str]] = defaultdict(set)
        shared = []
        for key in sorted(pairs):
            ca, cb = key
            if ca in ids_a and cb in ids_b:
                a_side, b_side = ca, cb
            elif cb in ids_a and ca in ids_b:
                a_side, b_side = cb, ca
            else:
                continue
            partners[a_side].add(b_side)
            partners[b_side].add(a_side)
            shared.append(pairs[key])

        a_in_b = _direction(fw_a.id, fw_b.id, controls_a, partners)
        b_in_a = _direction(fw_b.id, fw_a.id, controls_b, partners)

        return FrameworkOverlap(
            framework_a=fw_a.id,
            framework_a_name=fw_a.name,
            framework_b=fw_b.id,
            framework_b_name=fw_b.name,
            shared_concepts=shared,
            overlap_ratio_a_in_b=a_in_b.overlap_ratio,
            overlap_ratio_b_in_a=b_in_a.overlap_ratio,
            a_in_b=a_in_b,
            b_in_a=b_in_a,
            direct_edges_by_kind=await self._direct_edges_by_kind(ids_a, ids_b),
            calculated_at=datetime.utcnow(),
        )

    async def _direct_edges_by_kind(self, ids_a: set[str], ids_b: set[str]) -> dict[str, int]:
        """Active edges of any kind running between the two frameworks."""
        q = select(
            CrossReference.source_control_id,
            CrossReference.target_control_id,
            CrossReference.relationship_kind,
        ).where(
            CrossReference.is_superseded.is_(False),
            CrossReference.source_control_id.in_(ids_a | ids_b),
        )
        counts: Counter[str] = Counter()
        for src, tgt, kind in (await self.session.execute(q)).all():
            if (src in ids_a and tgt in ids_b) or (src in ids_b and tgt in ids_a):
                counts[kind.value] += 1
        return dict(sorted(counts.items()))

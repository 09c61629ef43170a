"""
Equivalence Resolver — transitive closure over EQUIVALENT cross-references.

EQUIVALENT edges form an undirected graph over controls. The graph is built
once per cache generation into an integer arena (control id -> index,
adjacency lists of indices) so traversal never looks controls up by string.

Resolution rules:
- only non-superseded EQUIVALENT edges are traversed; OVERLAPPING, SUPPORTS,
  CONFLICTS and SUPERSEDES answer different questions;
- edges are followed in both directions regardless of stored direction;
- BFS stops at the hop limit; ``truncated`` reports unexplored neighbours;
- parallel edges between one pair collapse to the max confidence and keep
  every contributing provenance;
- the confidence of a transitive equivalent is its weakest link on the best
  shortest path.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from itertools import combinations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crossmap.errors import NotFound
from crossmap.models.catalog import Control, Framework
from crossmap.models.cross_reference import CrossReference, RelationshipKind
from crossmap.schemas.analysis import (
    EquivalenceResult,
    EquivalentControl,
    FrameworkPairCell,
    MappedPair,
    MappingMatrix,
    MappingMatrixSummary,
    MatrixFramework,
)
from crossmap.services.resolution_cache import PendingInvalidations, ResolutionCache
from crossmap.services.tenant_config import TenantConfigService

logger = logging.getLogger(__name__)

DEFAULT_HOP_LIMIT = 6

_GRAPH_SCOPE = "equivalence-graph"


@dataclass
class _PairEdge:
    confidence: float
    provenances: set[str] = field(default_factory=set)


@dataclass
class Reached:
    index: int
    hops: int
    confidence: float
    provenances: frozenset[str]


class EquivalenceGraph:
    """Undirected EQUIVALENT graph over an integer arena of controls."""

    def __init__(self):
        self.ids: list[str] = []
        self.frameworks: list[str] = []
        self.titles: list[str] = []
        self.index: dict[str, int] = {}
        self.adjacency: list[list[int]] = []
        self._pairs: dict[tuple[int, int], _PairEdge] = {}

    def add_control(self, control_id: str, framework_id: str, title: str = "") -> int:
        idx = self.index.get(control_id)
        if idx is not None:
            return idx
        idx = len(self.ids)
        self.ids.append(control_id)
        self.frameworks.append(framework_id)
        self.titles.append(title)
        self.index[control_id] = idx
        self.adjacency.append([])
        return idx

    def add_edge(self, source_id: str, target_id: str, confidence: float, provenance: str) -> None:
        a = self.index.get(source_id)
        b = self.index.get(target_id)
        if a is None or b is None or a == b:
            return
        key = (a, b) if a < b else (b, a)
        pair = self._pairs.get(key)
        if pair is None:
            self._pairs[key] = _PairEdge(confidence, {provenance})
            self.adjacency[a].append(b)
            self.adjacency[b].append(a)
        else:
            pair.confidence = max(pair.confidence, confidence)
            pair.provenances.add(provenance)

    def pair(self, a: int, b: int) -> _PairEdge | None:
        return self._pairs.get((a, b) if a < b else (b, a))

    @property
    def edge_count(self) -> int:
        return len(self._pairs)

    def __contains__(self, control_id: str) -> bool:
        return control_id in self.index

    def reach(self, control_id: str, hop_limit: int) -> tuple[list[Reached], bool]:
        """Level-order BFS from ``control_id``.

        Returns the reached controls (start excluded) and whether any
        neighbour was left unexplored because of the hop limit.
        """
        start = self.index[control_id]
        best: dict[int, tuple[float, frozenset[str]]] = {start: (1.0, frozenset())}
        hops: dict[int, int] = {start: 0}
        frontier = [start]
        truncated = False
        depth = 0

        while frontier:
            if depth >= hop_limit:
                truncated = any(n not in hops for node in frontier for n in self.adjacency[node])
                break
            depth += 1
            candidates: dict[int, tuple[float, frozenset[str]]] = {}
            for node in frontier:
                node_conf, node_prov = best[node]
                for nxt in self.adjacency[node]:
                    if nxt in hops:
                        continue
                    edge = self.pair(node, nxt)
                    conf = min(node_conf, edge.confidence)
                    current = candidates.get(nxt)
                    if current is None or conf > current[0]:
                        candidates[nxt] = (conf, node_prov | edge.provenances)
            for nxt, value in candidates.items():
                hops[nxt] = depth
                best[nxt] = value
            frontier = sorted(candidates)

        reached = [
            Reached(index=i, hops=hops[i], confidence=round(best[i][0], 4), provenances=best[i][1])
            for i in sorted(hops, key=lambda i: (hops[i], self.ids[i]))
            if i != start
        ]
        return reached, truncated


async def load_graph(session: AsyncSession) -> EquivalenceGraph:
    graph = EquivalenceGraph()
    controls = (await session.execute(
        select(Control.id, Control.framework_id, Control.title)
        .where(Control.is_active.is_(True))
        .order_by(Control.id)
    )).all()
    for cid, fw, title in controls:
        graph.add_control(cid, fw, title)

    edges = (await session.execute(
        select(
            CrossReference.source_control_id,
            CrossReference.target_control_id,
            CrossReference.confidence,
            CrossReference.provenance,
        ).where(
            CrossReference.relationship_kind == RelationshipKind.EQUIVALENT,
            CrossReference.is_superseded.is_(False),
        )
    )).all()
    for src, tgt, conf, prov in edges:
        graph.add_edge(src, tgt, float(conf), prov.value if hasattr(prov, "value") else str(prov))

    logger.debug("Loaded equivalence graph: %d controls, %d pairs", len(graph.ids), graph.edge_count)
    return graph


class EquivalenceResolver:
    def __init__(
        self,
        session: AsyncSession,
        cache: ResolutionCache | PendingInvalidations | None = None,
        hop_limit: int = DEFAULT_HOP_LIMIT,
        tenant_config: TenantConfigService | None = None,
    ):
        self.session = session
        self.cache = cache
        self.hop_limit = hop_limit
        self.tenant_config = tenant_config or TenantConfigService(session, cache)

    async def graph(self, require: str | None = None) -> EquivalenceGraph:
        """Cached graph; rebuilt if it predates ``require`` being in the catalog."""
        if self.cache is None:
            return await load_graph(self.session)
        generation = self.cache.generation
        graph = self.cache.get(None, _GRAPH_SCOPE)
        if graph is None or (require is not None and require not in graph):
            graph = await load_graph(self.session)
            self.cache.put(None, _GRAPH_SCOPE, graph, generation)
        return graph

    async def resolve_equivalents(self, control_id: str) -> EquivalenceResult:
        """All controls transitively EQUIVALENT to ``control_id`` within the hop limit.

        Raises NotFound for an unknown control; an isolated control returns
        an empty ``equivalents`` list.
        """
        control = await self.session.get(Control, control_id)
        if control is None:
            raise NotFound("Control", control_id)

        if not control.is_active:
            return EquivalenceResult(
                control_id=control_id, framework_id=control.framework_id, hop_limit=self.hop_limit,
            )

        graph = await self.graph(require=control_id)
        reached, truncated = graph.reach(control_id, self.hop_limit)
        if truncated:
            logger.info("Equivalence traversal from %s truncated at %d hops", control_id, self.hop_limit)

        return EquivalenceResult(
            control_id=control_id,
            framework_id=control.framework_id,
            hop_limit=self.hop_limit,
            truncated=truncated,
            equivalents=[
                EquivalentControl(
                    control_id=graph.ids[r.index],
                    framework_id=graph.frameworks[r.index],
                    title=graph.titles[r.index],
                    hops=r.hops,
                    confidence=r.confidence,
                    provenances=sorted(r.provenances),
                )
                for r in reached
            ],
        )

    async def equivalent_pairs(
        self,
        framework_ids: set[str],
        excluded_controls: set[str] | frozenset[str] = frozenset(),
    ) -> dict[tuple[str, str], MappedPair]:
        """Cross-framework equivalent pairs among controls of ``framework_ids``.

        Keys are normalised (min, max) control id tuples.
        """
        graph = await self.graph()
        pairs: dict[tuple[str, str], MappedPair] = {}
        for idx, cid in enumerate(graph.ids):
            fw = graph.frameworks[idx]
            if fw not in framework_ids or cid in excluded_controls:
                continue
            reached, _ = graph.reach(cid, self.hop_limit)
            for r in reached:
                other = graph.ids[r.index]
                other_fw = graph.frameworks[r.index]
                if other_fw == fw or other_fw not in framework_ids or other in excluded_controls:
                    continue
                key = (cid, other) if cid < other else (other, cid)
                if key in pairs:
                    continue
                pairs[key] = MappedPair(
                    control_a=key[0],
                    control_b=key[1],
                    confidence=r.confidence,
                    provenances=sorted(r.provenances),
                    direct=r.hops == 1,
                )
        return pairs

    async def build_mapping_matrix(
        self,
        tenant_id: str,
        framework_ids: list[str] | None = None,
    ) -> MappingMatrix:
        """Equivalence matrix over the tenant's currently enabled frameworks."""
        generation = self.cache.generation if self.cache is not None else None
        scope = await self.tenant_config.scope(tenant_id)
        enabled = set(scope.enabled_frameworks)
        if framework_ids:
            unknown = [f for f in framework_ids if not await self.session.get(Framework, f)]
            if unknown:
                raise NotFound("Framework", unknown[0])
            enabled &= set(framework_ids)

        cache_key = (frozenset(enabled), frozenset(scope.excluded_controls))
        if self.cache is not None:
            cached = self.cache.get(tenant_id, cache_key)
            if cached is not None:
                return cached

        matrix = await self._compute_matrix(tenant_id, enabled, set(scope.excluded_controls))
        if self.cache is not None:
            self.cache.put(tenant_id, cache_key, matrix, generation)
        return matrix

    async def _compute_matrix(self, tenant_id: str, enabled: set[str], excluded: set[str]) -> MappingMatrix:
        frameworks = []
        if enabled:
            q = select(Framework).where(Framework.id.in_(sorted(enabled))).order_by(Framework.id)
            frameworks = list((await self.session.execute(q)).scalars().all())

        graph = await self.graph()
        counts: dict[str, int] = {fw.id: 0 for fw in frameworks}
        for idx, cid in enumerate(graph.ids):
            fw = graph.frameworks[idx]
            if fw in counts and cid not in excluded:
                counts[fw] += 1

        pairs = await self.equivalent_pairs(enabled, excluded)
        fw_of = {cid: graph.frameworks[graph.index[cid]] for key in pairs for cid in key}

        cells: dict[tuple[str, str], FrameworkPairCell] = {}
        for fa, fb in combinations(sorted(counts), 2):
            cells[(fa, fb)] = FrameworkPairCell(framework_a=fa, framework_b=fb)

        for (ca, cb), pair in sorted(pairs.items()):
            fa, fb = fw_of[ca], fw_of[cb]
            key = (fa, fb) if fa < fb else (fb, fa)
            cells[key].pairs.append(pair)

        participation: dict[str, int] = {fw: 0 for fw in counts}
        overlaps: list[float] = []
        for (fa, fb), cell in cells.items():
            cell.mapping_count = len(cell.pairs)
            in_a = {c for p in cell.pairs for c in (p.control_a, p.control_b) if fw_of[c] == fa}
            in_b = {c for p in cell.pairs for c in (p.control_a, p.control_b) if fw_of[c] == fb}
            cell.overlap_percent_a = round(len(in_a) / counts[fa] * 100, 1) if counts[fa] else None
            cell.overlap_percent_b = round(len(in_b) / counts[fb] * 100, 1) if counts[fb] else None
            participation[fa] += cell.mapping_count
            participation[fb] += cell.mapping_count
            overlaps.extend(v for v in (cell.overlap_percent_a, cell.overlap_percent_b) if v is not None)

        most_mapped = None
        if participation and max(participation.values()) > 0:
            most_mapped = max(sorted(participation), key=lambda f: participation[f])

        return MappingMatrix(
            tenant_id=tenant_id,
            frameworks=[MatrixFramework(id=fw.id, name=fw.name, control_count=counts[fw.id]) for fw in frameworks],
            cells=list(cells.values()),
            summary=MappingMatrixSummary(
                total_frameworks=len(frameworks),
                total_mappings=len(pairs),
                average_overlap=round(sum(overlaps) / len(overlaps), 1) if overlaps else 0.0,
                most_mapped_framework=most_mapped,
            ),
            generated_at=datetime.utcnow(),
        )

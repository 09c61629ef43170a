"""
Bounded in-process cache for equivalence resolution results.

Non-authoritative: any entry may be dropped at any time and the engine
recomputes from storage. Entries are keyed per (tenant_id, framework set);
the shared equivalence graph is stored under the ``None`` tenant.

Invalidation:
- any CrossReference write clears everything (edges are global),
- a tenant module-config change clears only that tenant's entries.

Every invalidation bumps ``generation``. Readers capture it before touching
storage and pass it to ``put``; a result computed before an invalidation is
dropped instead of cached. Writes go through ``PendingInvalidations`` so the
same invalidations are applied again once the transaction has committed.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Any, Hashable

logger = logging.getLogger(__name__)


class ResolutionCache:
    def __init__(self, max_entries: int = 64):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._entries: OrderedDict[tuple[str | None, Hashable], Any] = OrderedDict()
        self._lock = threading.Lock()
        self.generation = 0
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(tenant_id: str | None, scope: Hashable) -> tuple[str | None, Hashable]:
        return (tenant_id, scope)

    def get(self, tenant_id: str | None, scope: Hashable) -> Any | None:
        k = self.key(tenant_id, scope)
        with self._lock:
            value = self._entries.get(k)
            if value is None:
                self.misses += 1
                return None
            self._entries.move_to_end(k)
            self.hits += 1
            return value

    def put(self, tenant_id: str | None, scope: Hashable, value: Any, generation: int | None = None) -> bool:
        """Store ``value``; refused when it was computed before the last invalidation."""
        k = self.key(tenant_id, scope)
        with self._lock:
            if generation is not None and generation != self.generation:
                return False
            self._entries[k] = value
            self._entries.move_to_end(k)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return True

    def invalidate_tenant(self, tenant_id: str) -> int:
        with self._lock:
            self.generation += 1
            stale = [k for k in self._entries if k[0] == tenant_id]
            for k in stale:
                del self._entries[k]
        if stale:
            logger.debug("Invalidated %d cached resolutions for tenant %s", len(stale), tenant_id)
        return len(stale)

    def invalidate_all(self) -> int:
        with self._lock:
            self.generation += 1
            count = len(self._entries)
            self._entries.clear()
        if count:
            logger.debug("Invalidated %d cached resolutions", count)
        return count

    def __len__(self) -> int:
        return len(self._entries)


class PendingInvalidations:
    """Cache view for one unit of work.

    Invalidations hit the shared cache immediately and are remembered;
    ``apply`` repeats them after commit, ``discard`` forgets them after a
    rollback.
    """

    def __init__(self, cache: ResolutionCache):
        self.cache = cache
        self._all = False
        self._tenants: set[str] = set()

    @property
    def generation(self) -> int:
        return self.cache.generation

    def get(self, tenant_id: str | None, scope: Hashable) -> Any | None:
        return self.cache.get(tenant_id, scope)

    def put(self, tenant_id: str | None, scope: Hashable, value: Any, generation: int | None = None) -> bool:
        return self.cache.put(tenant_id, scope, value, generation)

    def invalidate_tenant(self, tenant_id: str) -> int:
        self._tenants.add(tenant_id)
        return self.cache.invalidate_tenant(tenant_id)

    def invalidate_all(self) -> int:
        self._all = True
        return self.cache.invalidate_all()

    @property
    def pending(self) -> bool:
        return self._all or bool(self._tenants)

    def apply(self) -> None:
        if self._all:
            self.cache.invalidate_all()
        else:
            for tenant_id in sorted(self._tenants):
                self.cache.invalidate_tenant(tenant_id)
        self.discard()

    def discard(self) -> None:
        self._all = False
        self._tenants.clear()

    def __len__(self) -> int:
        return len(self.cache)

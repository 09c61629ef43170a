"""Tests for tenant module configuration and resolution cache invalidation."""
import pytest

from conftest import TENANT, enable
from crossmap.errors import InvalidInput, NotFound
from crossmap.services.resolution_cache import PendingInvalidations, ResolutionCache


@pytest.mark.asyncio
async def test_frameworks_are_opt_in(engine, seed_catalog):
    config = await engine.get_tenant_config(TENANT)
    assert config.enabled_frameworks == []
    assert config.disabled_frameworks == []

    config = await engine.set_framework_enabled(TENANT, "GDPR", True)
    assert config.enabled_frameworks == ["GDPR"]

    config = await engine.set_framework_enabled(TENANT, "GDPR", False, updated_by="auditor")
    assert config.enabled_frameworks == []
    assert config.disabled_frameworks == ["GDPR"]


@pytest.mark.asyncio
async def test_tenants_are_isolated(engine, seed_catalog):
    await engine.set_framework_enabled(TENANT, "ISO27001", True)
    await engine.exclude_control(TENANT, "ISO27001-A.8.15")
    other = await engine.get_tenant_config("tenant-b")
    assert other.enabled_frameworks == []
    assert other.excluded_controls == []


@pytest.mark.asyncio
async def test_exclusions(engine, seed_catalog):
    config = await engine.exclude_control(TENANT, "ISO27001-A.8.15", reason="no logging infrastructure")
    assert config.excluded_controls == ["ISO27001-A.8.15"]
    # Excluding twice keeps a single row
    config = await engine.exclude_control(TENANT, "ISO27001-A.8.15")
    assert config.excluded_controls == ["ISO27001-A.8.15"]

    config = await engine.include_control(TENANT, "ISO27001-A.8.15")
    assert config.excluded_controls == []


@pytest.mark.asyncio
async def test_unknown_ids_rejected(engine, seed_catalog):
    with pytest.raises(NotFound):
        await engine.set_framework_enabled(TENANT, "NOPE", True)
    with pytest.raises(NotFound):
        await engine.exclude_control(TENANT, "NOPE-1")
    with pytest.raises(InvalidInput):
        await engine.set_framework_enabled("", "GDPR", True)


@pytest.mark.asyncio
async def test_config_write_clears_only_that_tenant(engine, seed_catalog, cache):
    cache.put(TENANT, "matrix", object())
    cache.put("tenant-b", "matrix", object())
    cache.put(None, "equivalence-graph", object())

    await engine.set_framework_enabled(TENANT, "GDPR", True)
    assert cache.get(TENANT, "matrix") is None
    assert cache.get("tenant-b", "matrix") is not None
    assert cache.get(None, "equivalence-graph") is not None


# ─── ResolutionCache ───

def test_cache_evicts_least_recently_used():
    cache = ResolutionCache(max_entries=2)
    cache.put("t", "a", 1)
    cache.put("t", "b", 2)
    assert cache.get("t", "a") == 1
    cache.put("t", "c", 3)
    assert cache.get("t", "b") is None
    assert cache.get("t", "a") == 1
    assert cache.get("t", "c") == 3
    assert cache.hits == 3
    assert cache.misses == 1


def test_cache_invalidation_counts():
    cache = ResolutionCache()
    cache.put("t1", "x", 1)
    cache.put("t1", "y", 1)
    cache.put("t2", "x", 1)
    assert cache.invalidate_tenant("t1") == 2
    assert len(cache) == 1
    assert cache.invalidate_all() == 1
    assert len(cache) == 0


def test_cache_rejects_zero_size():
    with pytest.raises(ValueError):
        ResolutionCache(0)


@pytest.mark.asyncio
async def test_failed_write_clears_cache(engine, seed_catalog, cache):
    cache.put(TENANT, "matrix", object())
    with pytest.raises(NotFound):
        await engine.create_cross_reference("ISO27001-A.5.1", "NOPE-1", "equivalent", 0.9)
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_matrix_cached_before_config_commit_is_cleared(engine, db, seed_catalog, cache, monkeypatch):
    await enable(engine, "ISO27001")
    stale = await engine.build_mapping_matrix(TENANT)
    commit = db.commit

    async def commit_after_concurrent_read():
        cache.put(TENANT, "matrix", stale)
        await commit()

    monkeypatch.setattr(db, "commit", commit_after_concurrent_read)
    await engine.set_framework_enabled(TENANT, "SOC2", True)
    monkeypatch.undo()

    assert cache.get(TENANT, "matrix") is None
    matrix = await engine.build_mapping_matrix(TENANT)
    assert {fw.id for fw in matrix.frameworks} == {"ISO27001", "SOC2"}


def test_pending_invalidations_replay_after_commit():
    cache = ResolutionCache()
    pending = PendingInvalidations(cache)
    cache.put("t1", "x", 1)
    cache.put("t2", "x", 1)

    pending.invalidate_tenant("t1")
    cache.put("t1", "x", "built before commit")
    pending.apply()
    assert cache.get("t1", "x") is None
    assert cache.get("t2", "x") == 1
    assert pending.pending is False


def test_put_refused_after_invalidation():
    cache = ResolutionCache()
    generation = cache.generation
    cache.invalidate_tenant("t1")
    assert cache.put("t2", "x", 1, generation) is False
    assert cache.put("t2", "x", 1, cache.generation) is True
    assert cache.get("t2", "x") == 1

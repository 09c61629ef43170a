"""Tests for directional framework overlap."""
import pytest

from conftest import add_framework
from crossmap.errors import NotFound


@pytest.mark.asyncio
async def test_overlap_directions_share_one_pair_set(engine, seed_catalog):
    await engine.create_cross_reference("ISO27001-A.5.1", "SOC2-CC1.1", "equivalent", 0.9)
    await engine.create_cross_reference("ISO27001-A.5.15", "SOC2-CC1.1", "equivalent", 0.8)

    overlap = await engine.framework_overlap("ISO27001", "SOC2")
    assert overlap.framework_a_name == "ISO/IEC 27001"

    # 2 of 3 ISO controls have a SOC 2 equivalent; 1 of 2 SOC 2 controls has an ISO one
    assert overlap.overlap_ratio_a_in_b == round(2 / 3, 4)
    assert overlap.overlap_ratio_b_in_a == 0.5
    assert overlap.a_in_b.overlapping_controls == 2
    assert overlap.b_in_a.overlapping_controls == 1

    shared = {(p.control_a, p.control_b) for p in overlap.shared_concepts}
    assert shared == {("ISO27001-A.5.1", "SOC2-CC1.1"), ("ISO27001-A.5.15", "SOC2-CC1.1")}
    from_a = {(c.control_id, e) for c in overlap.a_in_b.per_control for e in c.equivalents}
    from_b = {(e, c.control_id) for c in overlap.b_in_a.per_control for e in c.equivalents}
    assert from_a == from_b == shared


@pytest.mark.asyncio
async def test_overlap_counts_transitive_equivalents(engine, seed_catalog):
    await engine.create_cross_reference("ISO27001-A.5.15", "SOC2-CC6.1", "equivalent", 0.9)
    await engine.create_cross_reference("SOC2-CC6.1", "GDPR-ART32", "equivalent", 0.9)
    overlap = await engine.framework_overlap("GDPR", "ISO27001")
    assert overlap.overlap_ratio_a_in_b == 0.5
    assert overlap.shared_concepts[0].direct is False


@pytest.mark.asyncio
async def test_overlap_reports_direct_edges_of_every_kind(engine, seed_catalog):
    await engine.create_cross_reference("ISO27001-A.5.1", "SOC2-CC1.1", "equivalent", 0.9)
    await engine.create_cross_reference("ISO27001-A.8.15", "SOC2-CC6.1", "supports", 0.5)
    await engine.create_cross_reference("SOC2-CC6.1", "ISO27001-A.5.15", "conflicts", 0.4)
    overlap = await engine.framework_overlap("ISO27001", "SOC2")
    assert overlap.direct_edges_by_kind == {"conflicts": 1, "equivalent": 2, "supports": 1}
    # Only EQUIVALENT edges feed the ratios
    assert overlap.a_in_b.overlapping_controls == 1


@pytest.mark.asyncio
async def test_overlap_none_when_framework_has_no_controls(engine, db, seed_catalog):
    await add_framework(db, "EMPTY", [])
    await db.commit()
    assert await engine.framework_overlap("ISO27001", "EMPTY") is None
    assert await engine.framework_overlap("EMPTY", "ISO27001") is None


@pytest.mark.asyncio
async def test_overlap_unknown_framework(engine, seed_catalog):
    with pytest.raises(NotFound):
        await engine.framework_overlap("ISO27001", "NOPE")


@pytest.mark.asyncio
async def test_overlap_without_edges_is_zero(engine, seed_catalog):
    overlap = await engine.framework_overlap("ISO27001", "GDPR")
    assert overlap.overlap_ratio_a_in_b == 0.0
    assert overlap.overlap_ratio_b_in_a == 0.0
    assert overlap.shared_concepts == []

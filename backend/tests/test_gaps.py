"""
Tests for gap analysis and requirement coverage.

Covers:
- unmapped controls / requirements follow the tenant's enabled frameworks
- coverage edges only count between in-scope controls of different frameworks
- exclusions, coverage percentages, recommendations
- per-requirement coverage and aliases
"""
import pytest

from conftest import TENANT, add_framework, enable
from crossmap.errors import InvalidInput, NotFound
from crossmap.services.gap_analysis import priority_for


@pytest.mark.asyncio
async def test_requirement_gap_follows_enabled_frameworks(engine, seed_catalog):
    await engine.add_requirement_mapping("privacy", "GDPR-ART5", 0.9)
    await enable(engine, "ISO27001")

    gaps = await engine.identify_gaps(TENANT)
    unmapped = {r.requirement_id for r in gaps.unmapped_requirements}
    assert "privacy_data_governance" in unmapped
    assert len(unmapped) == 7

    await enable(engine, "GDPR")
    gaps = await engine.identify_gaps(TENANT)
    unmapped = {r.requirement_id for r in gaps.unmapped_requirements}
    assert "privacy_data_governance" not in unmapped
    assert len(unmapped) == 6


@pytest.mark.asyncio
async def test_disabling_framework_reopens_gap(engine, seed_catalog):
    await engine.add_requirement_mapping("privacy", "GDPR-ART5", 0.9)
    await enable(engine, "ISO27001", "GDPR")
    assert "privacy_data_governance" not in {
        r.requirement_id for r in await engine.find_unmapped_requirements(TENANT)
    }

    await engine.set_framework_enabled(TENANT, "GDPR", False)
    assert "privacy_data_governance" in {
        r.requirement_id for r in await engine.find_unmapped_requirements(TENANT)
    }


@pytest.mark.asyncio
async def test_unmapped_controls_and_coverage_edges(engine, seed_catalog):
    await engine.add_requirement_mapping("accountability", "ISO27001-A.5.1", 0.6)
    await engine.create_cross_reference("ISO27001-A.5.15", "SOC2-CC6.1", "supports", 0.7)
    await engine.create_cross_reference("ISO27001-A.8.15", "SOC2-CC1.1", "overlapping", 0.7)
    await enable(engine, "ISO27001", "SOC2")

    unmapped = {u.control_id for u in await engine.find_unmapped_controls(TENANT)}
    # SUPPORTS counts as coverage for both ends, OVERLAPPING does not
    assert unmapped == {"ISO27001-A.8.15", "SOC2-CC1.1"}


@pytest.mark.asyncio
async def test_coverage_edge_needs_both_ends_in_scope(engine, seed_catalog):
    await engine.create_cross_reference("ISO27001-A.5.15", "SOC2-CC6.1", "equivalent", 0.9)
    await enable(engine, "ISO27001")
    unmapped = {u.control_id for u in await engine.find_unmapped_controls(TENANT)}
    assert "ISO27001-A.5.15" in unmapped

    await enable(engine, "SOC2")
    await engine.exclude_control(TENANT, "SOC2-CC6.1")
    unmapped = {u.control_id for u in await engine.find_unmapped_controls(TENANT)}
    assert "ISO27001-A.5.15" in unmapped
    assert "SOC2-CC6.1" not in unmapped


@pytest.mark.asyncio
async def test_coverage_percentages(engine, seed_catalog):
    await engine.add_requirement_mapping("accountability", "ISO27001-A.5.1", 0.6)
    await engine.create_cross_reference("ISO27001-A.5.15", "SOC2-CC6.1", "equivalent", 0.9)
    await enable(engine, "ISO27001", "SOC2")

    gaps = await engine.identify_gaps(TENANT)
    assert gaps.enabled_frameworks == ["ISO27001", "SOC2"]
    assert gaps.coverage_percent_by_framework == {"ISO27001": 66.7, "SOC2": 50.0}
    assert gaps.overall_coverage_percent == 60.0


@pytest.mark.asyncio
async def test_no_enabled_frameworks(engine, seed_catalog):
    gaps = await engine.identify_gaps(TENANT)
    assert gaps.unmapped_controls == []
    assert gaps.coverage_percent_by_framework == {}
    assert gaps.overall_coverage_percent is None
    assert len(gaps.unmapped_requirements) == 7
    assert all(r.priority == "critical" for r in gaps.recommendations)


@pytest.mark.asyncio
async def test_excluded_control_neither_gap_nor_coverage(engine, seed_catalog):
    await engine.add_requirement_mapping("privacy", "GDPR-ART5", 0.9)
    await enable(engine, "GDPR")
    await engine.exclude_control(TENANT, "GDPR-ART5", reason="no personal data processed")

    gaps = await engine.identify_gaps(TENANT)
    assert "GDPR-ART5" not in {u.control_id for u in gaps.unmapped_controls}
    assert "privacy_data_governance" in {r.requirement_id for r in gaps.unmapped_requirements}

    await engine.include_control(TENANT, "GDPR-ART5")
    gaps = await engine.identify_gaps(TENANT)
    assert "privacy_data_governance" not in {r.requirement_id for r in gaps.unmapped_requirements}


@pytest.mark.asyncio
async def test_unmapped_control_priority_and_suggestions(engine, seed_catalog):
    await enable(engine, "ISO27001", "SOC2")
    unmapped = {u.control_id: u for u in await engine.find_unmapped_controls(TENANT)}

    access = unmapped["ISO27001-A.5.15"]
    assert access.priority == "high"
    assert access.suggested_mappings[0].target_control_id == "SOC2-CC6.1"
    assert unmapped["ISO27001-A.8.15"].priority == "medium"


def test_priority_for_category():
    assert priority_for("Organizational") == "high"
    assert priority_for("people") == "low"
    assert priority_for(None) == "medium"


@pytest.mark.asyncio
async def test_bulk_gap_recommendation(engine, db, seed_catalog):
    await add_framework(db, "BIG", [(f"R{i}", f"Requirement number {i}") for i in range(11)])
    await db.commit()
    await enable(engine, "BIG")
    gaps = await engine.identify_gaps(TENANT)
    bulk = [r for r in gaps.recommendations if r.type == "add_mapping"]
    assert len(bulk) == 1
    assert bulk[0].affected_frameworks == ["BIG"]


@pytest.mark.asyncio
async def test_gap_analysis_requires_tenant(engine, seed_catalog):
    with pytest.raises(InvalidInput):
        await engine.identify_gaps("")


@pytest.mark.asyncio
async def test_requirement_coverage(engine, seed_catalog):
    await engine.add_requirement_mapping("privacy", "GDPR-ART5", 0.9)
    await engine.add_requirement_mapping("privacy", "GDPR-ART32", 0.5)
    await engine.add_requirement_mapping("privacy", "ISO27001-A.5.15", 0.4)
    await enable(engine, "ISO27001", "GDPR")

    [coverage] = await engine.requirement_coverage(TENANT, ["privacy"])
    assert coverage.requirement_id == "privacy_data_governance"
    assert coverage.total_controls == 3
    by_fw = {d.framework_id: d for d in coverage.framework_coverage}
    assert by_fw["GDPR"].coverage_score == 0.7
    assert [c.control_id for c in by_fw["GDPR"].controls] == ["GDPR-ART5", "GDPR-ART32"]
    assert coverage.average_coverage == round((0.7 + 0.4) / 2, 4)

    all_reqs = await engine.requirement_coverage(TENANT)
    assert len(all_reqs) == 7


@pytest.mark.asyncio
async def test_controls_for_requirement(engine, seed_catalog):
    await engine.add_requirement_mapping("transparency", "ISO27001-A.8.15", 0.6)
    await enable(engine, "ISO27001")
    details = await engine.controls_for_requirement("transparency", TENANT)
    assert [d.framework_id for d in details] == ["ISO27001"]
    assert details[0].controls[0].control_id == "ISO27001-A.8.15"

    with pytest.raises(InvalidInput):
        await engine.controls_for_requirement("happiness", TENANT)


@pytest.mark.asyncio
async def test_requirement_mapping_validation(engine, seed_catalog):
    with pytest.raises(InvalidInput):
        await engine.add_requirement_mapping("privacy", "GDPR-ART5", 1.2)
    with pytest.raises(NotFound):
        await engine.add_requirement_mapping("privacy", "GDPR-ART99", 0.5)


@pytest.mark.asyncio
async def test_disabling_framework_drops_its_controls(engine, seed_catalog):
    await engine.add_requirement_mapping("privacy", "GDPR-ART5", 0.9)
    await enable(engine, "ISO27001", "GDPR")
    gaps = await engine.identify_gaps(TENANT)
    assert "GDPR" in gaps.coverage_percent_by_framework
    assert any(u.framework_id == "GDPR" for u in gaps.unmapped_controls)

    await engine.set_framework_enabled(TENANT, "GDPR", False)
    gaps = await engine.identify_gaps(TENANT)
    assert "GDPR" not in gaps.coverage_percent_by_framework
    assert not [u for u in gaps.unmapped_controls if u.control_id.startswith("GDPR-")]
    assert gaps.enabled_frameworks == ["ISO27001"]

"""Tests for the YAML catalog import and the bundled seed catalog."""
from pathlib import Path

import pytest

from crossmap.errors import InvalidInput

SEED_FILE = Path(__file__).resolve().parents[1] / "crossmap" / "data" / "catalog_seed.yaml"

SMALL_CATALOG = """
frameworks:
  - id: FW1
    name: Framework one
    controls:
      - ref_id: "1.1"
        title: Access policy
        category: organizational
        requirements: {accountability: 0.7, happiness: 0.3}
      - ref_id: "1.2"
        title: Logging
  - id: FW2
    name: Framework two
    controls:
      - id: FW2-ACCESS
        ref_id: A
        title: Access rules
      - ref_id: B
cross_references:
  - {source: FW1-1.1, target: FW2-ACCESS, kind: equivalent, confidence: 0.8}
  - {source: FW1-1.2, target: FW2-MISSING, kind: supports}
  - {source: FW1-1.2, target: FW2-ACCESS, kind: related}
"""


@pytest.mark.asyncio
async def test_seed_catalog_loads(engine):
    result = await engine.import_catalog(SEED_FILE.read_bytes())
    assert result.errors == []
    assert result.frameworks == 6
    assert result.controls == 60
    assert result.cross_references == 31
    assert result.requirement_mappings > 0

    counts = await engine.control_counts()
    assert counts["ISO27001"] == 20
    assert counts["SOC2"] == 9
    assert len(await engine.list_requirements()) == 7


@pytest.mark.asyncio
async def test_seed_catalog_equivalents(engine):
    await engine.import_catalog(SEED_FILE.read_bytes())
    result = await engine.resolve_equivalents("ISO27001-A.5.1")
    assert "SOC2-CC1.1" in result.control_ids
    soc2 = next(e for e in result.equivalents if e.control_id == "SOC2-CC1.1")
    assert soc2.confidence == 0.9
    assert soc2.hops == 1


@pytest.mark.asyncio
async def test_reimport_is_idempotent(engine):
    await engine.import_catalog(SEED_FILE.read_bytes())
    before = len(await engine.list_cross_references())
    second = await engine.import_catalog(SEED_FILE.read_bytes())
    assert second.errors == []
    assert len(await engine.list_cross_references()) == before
    assert (await engine.control_counts())["GDPR"] == 8


@pytest.mark.asyncio
async def test_import_collects_entry_errors(engine):
    result = await engine.import_catalog(SMALL_CATALOG)
    assert result.frameworks == 2
    assert result.controls == 3
    assert result.requirement_mappings == 1
    assert result.cross_references == 1
    assert result.skipped == 4
    assert any("FW2-MISSING" in e for e in result.errors)
    assert any("related" in e for e in result.errors)

    control = await engine.get_control("FW2-ACCESS")
    assert control.ref_id == "A"
    assert (await engine.get_control("FW1-1.1")).category == "organizational"


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "frameworks: [unclosed", "- just\n- a list\n"])
async def test_import_rejects_malformed_yaml(engine, content):
    with pytest.raises(InvalidInput):
        await engine.import_catalog(content)


@pytest.mark.asyncio
async def test_import_reports_requirements_given_as_list(engine):
    content = """
frameworks:
  - id: FW1
    name: Framework one
    controls:
      - ref_id: "1.1"
        title: Access policy
        requirements: [accountability, privacy]
"""
    result = await engine.import_catalog(content)
    assert result.controls == 1
    assert result.requirement_mappings == 0
    assert result.skipped == 1
    assert any("FW1-1.1" in e and "requirements" in e for e in result.errors)

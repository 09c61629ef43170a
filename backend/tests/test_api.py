"""
HTTP surface tests.

Covers:
- tenant header handling and error -> status code translation
- cross-reference, equivalence, matrix and overlap endpoints
- tenant config, gaps, requirements
- Z-Inspection report flow and saved queries
- catalog listing and YAML upload
"""
import pytest
from httpx import AsyncClient


async def _enable(client: AsyncClient, *framework_ids: str):
    for fw in framework_ids:
        r = await client.put("/api/v1/tenant-config/frameworks", json={"framework_id": fw, "enabled": True})
        assert r.status_code == 200


# ═══ Errors ═════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_missing_tenant_header_is_bad_request(client: AsyncClient, seed_catalog):
    r = await client.get("/api/v1/gaps", headers={"X-Tenant-Id": ""})
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_input"


@pytest.mark.asyncio
async def test_error_codes(client: AsyncClient, seed_catalog):
    r = await client.get("/api/v1/cross-framework/equivalents/NOPE-1")
    assert r.status_code == 404
    assert r.json() == {"detail": "Control 'NOPE-1' not found", "code": "not_found"}

    r = await client.post("/api/v1/cross-framework/references", json={
        "source_control_id": "ISO27001-A.5.1", "target_control_id": "SOC2-CC1.1",
        "relationship_kind": "equivalent", "confidence": 2,
    })
    assert r.status_code == 400

    r = await client.post("/api/v1/cross-framework/references", json={
        "source_control_id": "ISO27001-A.5.1", "target_control_id": "SOC2-CC1.1",
        "relationship_kind": "kinda-same",
    })
    assert r.status_code == 400


# ═══ Cross-framework ════════════════════════════════════════════

@pytest.mark.asyncio
async def test_cross_reference_lifecycle(client: AsyncClient, seed_catalog):
    r = await client.post("/api/v1/cross-framework/references", json={
        "source_control_id": "ISO27001-A.5.1", "target_control_id": "SOC2-CC1.1",
        "relationship_kind": "equivalent", "confidence": 0.9, "rationale": "Same policy intent",
    })
    assert r.status_code == 201
    edge = r.json()
    assert edge["source_framework_id"] == "ISO27001"
    assert edge["target_framework_id"] == "SOC2"
    assert edge["provenance"] == "manual"

    r = await client.get("/api/v1/cross-framework/references", params={"control_id": "SOC2-CC1.1"})
    assert len(r.json()) == 2

    r = await client.get(f"/api/v1/cross-framework/references/{edge['id']}")
    assert r.json()["rationale"] == "Same policy intent"

    r = await client.get("/api/v1/cross-framework/equivalents/ISO27001-A.5.1")
    data = r.json()
    assert [e["control_id"] for e in data["equivalents"]] == ["SOC2-CC1.1"]
    assert data["hop_limit"] == 6

    r = await client.post(f"/api/v1/cross-framework/references/{edge['id']}/supersede")
    assert r.status_code == 200
    assert r.json()["is_superseded"] is True

    r = await client.get("/api/v1/cross-framework/equivalents/ISO27001-A.5.1")
    assert r.json()["equivalents"] == []

    r = await client.get("/api/v1/cross-framework/references", params={"include_superseded": True})
    assert len(r.json()) == 2


@pytest.mark.asyncio
async def test_matrix_and_overlap(client: AsyncClient, seed_catalog):
    await client.post("/api/v1/cross-framework/references", json={
        "source_control_id": "ISO27001-A.5.15", "target_control_id": "SOC2-CC6.1",
        "relationship_kind": "equivalent", "confidence": 0.85,
    })
    await _enable(client, "ISO27001", "SOC2")

    r = await client.get("/api/v1/cross-framework/matrix")
    assert r.status_code == 200
    matrix = r.json()
    assert matrix["tenant_id"] == "tenant-a"
    assert matrix["summary"]["total_mappings"] == 1

    r = await client.get("/api/v1/cross-framework/matrix", headers={"X-Tenant-Id": "tenant-b"})
    assert r.json()["frameworks"] == []

    r = await client.get("/api/v1/cross-framework/overlap", params={"framework_a": "ISO27001", "framework_b": "SOC2"})
    overlap = r.json()
    assert overlap["overlap_ratio_b_in_a"] == 0.5
    assert overlap["direct_edges_by_kind"] == {"equivalent": 2}

    r = await client.get("/api/v1/cross-framework/overlap", params={"framework_a": "ISO27001", "framework_b": "NOPE"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_ai_analyze_degrades_without_provider(client: AsyncClient, seed_catalog):
    await _enable(client, "ISO27001")
    r = await client.post("/api/v1/cross-framework/ai/analyze", json={"query": "Where are my gaps?"})
    assert r.status_code == 200
    data = r.json()
    assert data["ai_used"] is False
    assert data["degraded_reason"] == "AI provider not configured"


# ═══ Tenant config, gaps, requirements ══════════════════════════

@pytest.mark.asyncio
async def test_gap_flow(client: AsyncClient, seed_catalog):
    await _enable(client, "ISO27001")
    r = await client.post("/api/v1/requirements/mappings", json={
        "requirement_id": "privacy", "control_id": "GDPR-ART5", "strength": 0.9,
    })
    assert r.status_code == 201
    assert r.json()["requirement_id"] == "privacy_data_governance"

    r = await client.get("/api/v1/gaps/unmapped-requirements")
    assert "privacy_data_governance" in {u["requirement_id"] for u in r.json()}

    await _enable(client, "GDPR")
    r = await client.get("/api/v1/gaps")
    gaps = r.json()
    assert "privacy_data_governance" not in {u["requirement_id"] for u in gaps["unmapped_requirements"]}
    assert gaps["coverage_percent_by_framework"]["GDPR"] == 50.0

    r = await client.post("/api/v1/tenant-config/exclusions", json={"control_id": "ISO27001-A.8.15"})
    assert r.status_code == 201
    r = await client.get("/api/v1/gaps/unmapped-controls")
    assert "ISO27001-A.8.15" not in {u["control_id"] for u in r.json()}

    r = await client.delete("/api/v1/tenant-config/exclusions/ISO27001-A.8.15")
    assert r.json()["excluded_controls"] == []

    r = await client.get("/api/v1/tenant-config")
    assert r.json()["enabled_frameworks"] == ["GDPR", "ISO27001"]


@pytest.mark.asyncio
async def test_requirement_endpoints(client: AsyncClient, seed_catalog):
    await _enable(client, "GDPR")
    await client.post("/api/v1/requirements/mappings", json={
        "requirement_id": "privacy", "control_id": "GDPR-ART5", "strength": 0.8,
    })

    r = await client.get("/api/v1/requirements")
    assert len(r.json()) == 7

    r = await client.get("/api/v1/requirements/coverage", params={"requirement_ids": ["privacy"]})
    [coverage] = r.json()
    assert coverage["total_controls"] == 1

    r = await client.get("/api/v1/requirements/privacy/controls")
    assert r.json()[0]["controls"][0]["control_id"] == "GDPR-ART5"

    r = await client.get("/api/v1/requirements/happiness/controls")
    assert r.status_code == 400


# ═══ Z-Inspection ═══════════════════════════════════════════════

@pytest.mark.asyncio
async def test_z_inspection_flow(client: AsyncClient, seed_catalog):
    await client.post("/api/v1/requirements/mappings", json={
        "requirement_id": "privacy", "control_id": "GDPR-ART5", "strength": 0.9,
    })
    await client.post("/api/v1/cross-framework/references", json={
        "source_control_id": "GDPR-ART5", "target_control_id": "ISO27001-A.5.15",
        "relationship_kind": "equivalent", "confidence": 0.8,
    })

    r = await client.post("/api/v1/z-inspection/reports", json={
        "id": "ZI-1", "title": "Credit scoring inspection",
        "findings": [{"id": "F1", "title": "Inspection finding", "requirement_id": "privacy",
                      "severity": "high", "finding_type": "weakness"}],
    })
    assert r.status_code == 201
    assert r.json()["finding_count"] == 1

    r = await client.get("/api/v1/z-inspection/reports/ZI-1")
    assert r.json()["finding_count"] == 1

    r = await client.get("/api/v1/z-inspection/reports/ZI-1", headers={"X-Tenant-Id": "tenant-b"})
    assert r.status_code == 404

    r = await client.post("/api/v1/z-inspection/map-finding", json={"finding_id": "F1"})
    assert "GDPR-ART5" in {link["control_id"] for link in r.json()}

    r = await client.post("/api/v1/z-inspection/adjust-weights", json={"report_id": "ZI-1"})
    assert r.status_code == 200
    assert {a["new_confidence"] for a in r.json()} == {0.71}

    r = await client.post("/api/v1/z-inspection/adjust-weights", json={"report_id": "ZI-1"})
    assert r.status_code == 200
    assert all(a["new_confidence"] == 0.71 for a in r.json())

    r = await client.get("/api/v1/z-inspection/findings/F1/links")
    assert r.json()[0]["link_type"] == "direct"


# ═══ Saved queries ══════════════════════════════════════════════

@pytest.mark.asyncio
async def test_saved_query_endpoints(client: AsyncClient, seed_catalog):
    await _enable(client, "ISO27001")
    r = await client.post("/api/v1/queries", json={
        "name": "Daily gaps", "query_type": "gap_analysis", "schedule_frequency": "daily",
    })
    assert r.status_code == 201
    query_id = r.json()["id"]

    r = await client.get("/api/v1/queries/scheduled")
    assert [q["id"] for q in r.json()] == [query_id]

    r = await client.post(f"/api/v1/queries/{query_id}/run")
    assert r.status_code == 200
    assert r.json()["result"]["enabled_frameworks"] == ["ISO27001"]

    r = await client.get(f"/api/v1/queries/{query_id}")
    assert r.json()["last_run_at"] is not None

    r = await client.post("/api/v1/queries", json={"name": "Bad", "query_type": "forecast"})
    assert r.status_code == 400

    r = await client.delete(f"/api/v1/queries/{query_id}")
    assert r.status_code == 204
    r = await client.get("/api/v1/queries")
    assert r.json() == []


# ═══ Catalog ════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_catalog_endpoints(client: AsyncClient, seed_catalog):
    r = await client.get("/api/v1/catalog/frameworks")
    counts = {fw["id"]: fw["control_count"] for fw in r.json()}
    assert counts == {"GDPR": 2, "ISO27001": 3, "SOC2": 2}

    r = await client.get("/api/v1/catalog/frameworks/SOC2/controls")
    assert [c["ref_id"] for c in r.json()] == ["CC1.1", "CC6.1"]

    r = await client.get("/api/v1/catalog/frameworks/NOPE/controls")
    assert r.status_code == 404

    r = await client.get("/api/v1/catalog/controls/GDPR-ART32")
    assert r.json()["title"] == "Security of processing"


@pytest.mark.asyncio
async def test_catalog_upload(client: AsyncClient):
    content = b"""
frameworks:
  - id: FW1
    name: Framework one
    controls:
      - {ref_id: "1", title: Access policy}
  - id: FW2
    name: Framework two
    controls:
      - {ref_id: "1", title: Access rules}
cross_references:
  - {source: FW1-1, target: FW2-1, kind: equivalent, confidence: 0.7}
"""
    r = await client.post(
        "/api/v1/catalog/import",
        files={"file": ("catalog.yaml", content, "application/x-yaml")},
    )
    assert r.status_code == 200
    assert r.json()["cross_references"] == 1

    r = await client.get("/api/v1/cross-framework/equivalents/FW2-1")
    assert r.json()["equivalents"][0]["control_id"] == "FW1-1"

    r = await client.post(
        "/api/v1/catalog/import",
        files={"file": ("broken.yaml", b"frameworks: [oops", "application/x-yaml")},
    )
    assert r.status_code == 400

"""
Catalog Import Service — loads frameworks, controls, requirement mappings and
cross-references from a YAML catalog file.

Format:
  frameworks:
    - id: ISO27001
      name: ISO/IEC 27001
      version: "2022"
      category: security
      controls:
        - ref_id: A.5.1                  # id defaults to "<framework id>-<ref_id>"
          title: Policies for information security
          description: ...
          category: organizational
          requirements:                  # optional requirement -> strength
            accountability: 0.6
  cross_references:
    - source: ISO27001-A.5.1
      target: SOC2-CC1.1
      kind: equivalent
      confidence: 0.9
      provenance: manual
      rationale: ...

Re-importing a file is safe: frameworks and controls are updated in place,
requirement mappings are upserted, and existing cross-references only get
their confidence refreshed.
"""
from __future__ import annotations

import logging
from typing import Any

import yaml
from sqlalchemy.ext.asyncio import AsyncSession

from crossmap.errors import CrossMapError, InvalidInput
from crossmap.models.catalog import Control, Framework
from crossmap.schemas.catalog import CatalogImportResult
from crossmap.services.catalog import ControlCatalog, seed_requirements
from crossmap.services.cross_reference import CrossReferenceStore
from crossmap.services.resolution_cache import PendingInvalidations, ResolutionCache

log = logging.getLogger(__name__)


def parse_catalog_yaml(content: bytes | str) -> dict[str, Any]:
    if isinstance(content, bytes):
        content = content.decode("utf-8")
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise InvalidInput(f"Invalid YAML: {exc}") from exc
    if not data:
        raise InvalidInput("Empty YAML file")
    if not isinstance(data, dict) or not isinstance(data.get("frameworks", []), list):
        raise InvalidInput("Expected a mapping with a 'frameworks' list")
    return data


async def _upsert_framework(s: AsyncSession, fw_data: dict) -> Framework:
    fw_id = str(fw_data["id"]).strip()
    fw = await s.get(Framework, fw_id)
    if fw is None:
        fw = Framework(id=fw_id, name=fw_data.get("name") or fw_id)
        s.add(fw)
    fw.name = fw_data.get("name") or fw.name
    fw.version = str(fw_data["version"]) if fw_data.get("version") is not None else fw.version
    fw.category = fw_data.get("category", fw.category)
    fw.description = fw_data.get("description", fw.description)
    fw.is_active = bool(fw_data.get("is_active", True))
    return fw


async def _upsert_control(s: AsyncSession, fw: Framework, c_data: dict) -> Control:
    ref_id = str(c_data["ref_id"]).strip()
    control_id = str(c_data.get("id") or f"{fw.id}-{ref_id}").strip()
    control = await s.get(Control, control_id)
    if control is None:
        control = Control(id=control_id, framework_id=fw.id, ref_id=ref_id, title=c_data["title"])
        s.add(control)
    control.ref_id = ref_id
    control.title = c_data["title"]
    control.description = c_data.get("description")
    control.category = c_data.get("category")
    control.is_active = bool(c_data.get("is_active", True))
    return control


async def import_catalog_yaml(
    s: AsyncSession,
    content: bytes | str,
    cache: ResolutionCache | PendingInvalidations | None = None,
    imported_by: str = "yaml-import",
) -> CatalogImportResult:
    data = parse_catalog_yaml(content)
    result = CatalogImportResult()
    catalog = ControlCatalog(s)
    store = CrossReferenceStore(s, cache)

    await seed_requirements(s)

    for fw_data in data.get("frameworks") or []:
        if not isinstance(fw_data, dict) or not fw_data.get("id"):
            result.skipped += 1
            result.errors.append("Framework entry without id")
            continue
        fw = await _upsert_framework(s, fw_data)
        await s.flush()
        result.frameworks += 1

        for c_data in fw_data.get("controls") or []:
            if not isinstance(c_data, dict) or not c_data.get("ref_id") or not c_data.get("title"):
                result.skipped += 1
                result.errors.append(f"{fw.id}: control entry needs ref_id and title")
                continue
            control = await _upsert_control(s, fw, c_data)
            await s.flush()
            result.controls += 1

            requirements = c_data.get("requirements") or {}
            if not isinstance(requirements, dict):
                result.skipped += 1
                result.errors.append(f"{control.id}: requirements must map requirement ids to strengths")
                continue
            for req_id, strength in requirements.items():
                try:
                    await catalog.add_requirement_mapping(req_id, control.id, strength)
                    result.requirement_mappings += 1
                except CrossMapError as exc:
                    result.skipped += 1
                    result.errors.append(f"{control.id}: {exc.message}")

    for ref in data.get("cross_references") or []:
        if not isinstance(ref, dict):
            result.skipped += 1
            continue
        try:
            await store.create(
                source_control_id=str(ref.get("source", "")),
                target_control_id=str(ref.get("target", "")),
                relationship_kind=ref.get("kind", "equivalent"),
                confidence=ref.get("confidence", 0.8),
                provenance=ref.get("provenance", "manual"),
                rationale=ref.get("rationale"),
                created_by=imported_by,
            )
            result.cross_references += 1
        except CrossMapError as exc:
            result.skipped += 1
            result.errors.append(f"{ref.get('source')} -> {ref.get('target')}: {exc.message}")

    if cache is not None:
        cache.invalidate_all()

    log.info(
        "Catalog import: %d frameworks, %d controls, %d requirement mappings, %d cross-references (%d skipped)",
        result.frameworks, result.controls, result.requirement_mappings,
        result.cross_references, result.skipped,
    )
    return result

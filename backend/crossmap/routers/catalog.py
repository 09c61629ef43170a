"""
Catalog module — /api/v1/catalog
Frameworks and controls (read-only) plus YAML catalog import.
"""
from fastapi import APIRouter, Depends, File, UploadFile

from crossmap.dependencies import get_engine
from crossmap.schemas.catalog import CatalogImportResult, ControlOut, FrameworkOut
from crossmap.services.engine import MappingEngine

router = APIRouter(prefix="/api/v1/catalog", tags=["Catalog"])


@router.get("/frameworks", response_model=list[FrameworkOut])
async def list_frameworks(engine: MappingEngine = Depends(get_engine)):
    counts = await engine.control_counts()
    result = []
    for fw in await engine.list_frameworks():
        out = FrameworkOut.model_validate(fw)
        out.control_count = counts.get(fw.id, 0)
        result.append(out)
    return result


@router.get("/frameworks/{framework_id}/controls", response_model=list[ControlOut])
async def list_framework_controls(framework_id: str, engine: MappingEngine = Depends(get_engine)):
    return await engine.list_controls(framework_id)


@router.get("/controls/{control_id}", response_model=ControlOut)
async def get_control(control_id: str, engine: MappingEngine = Depends(get_engine)):
    return await engine.get_control(control_id)


@router.post("/import", response_model=CatalogImportResult)
async def import_catalog(file: UploadFile = File(...), engine: MappingEngine = Depends(get_engine)):
    """Import frameworks, controls, requirement mappings and cross-references from YAML."""
    return await engine.import_catalog(await file.read(), imported_by=file.filename or "yaml-import")

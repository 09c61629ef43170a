"""
Seed script: loads the bundled control catalog (frameworks, controls,
requirement mappings, cross-references) into the configured database.

Run: python scripts/seed_catalog.py [--file path/to/catalog.yaml] [--create-tables]
"""
import argparse
import asyncio
from pathlib import Path

from crossmap.database import async_session, engine
from crossmap.models import Base
from crossmap.services.engine import MappingEngine

DEFAULT_CATALOG = Path(__file__).resolve().parent.parent / "backend" / "crossmap" / "data" / "catalog_seed.yaml"


async def seed(path: Path, create_tables: bool):
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async with async_session() as s:
        result = await MappingEngine(s).import_catalog(path.read_bytes(), imported_by="seed")

    print(f"Seeded {result.frameworks} frameworks, {result.controls} controls")
    print(f"Seeded {result.requirement_mappings} requirement mappings, {result.cross_references} cross-references")
    for err in result.errors:
        print(f"  skipped: {err}")
    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--file", type=Path, default=DEFAULT_CATALOG, help="catalog YAML file")
    parser.add_argument("--create-tables", action="store_true", help="create tables without running migrations")
    args = parser.parse_args()
    asyncio.run(seed(args.file, args.create_tables))

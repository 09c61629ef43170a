"""
Control Catalog — read access to frameworks, controls, the seven
trustworthy-AI requirements, and requirement→control mappings.

The catalog is reference data: the engine reads it on every call and only
the import path and the requirement-mapping endpoint ever write to it.
"""
from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crossmap.errors import InvalidInput, NotFound, require_unit_interval
from crossmap.models.catalog import (
    REQUIREMENT_ALIASES,
    REQUIREMENT_DEFINITIONS,
    Control,
    Framework,
    Requirement,
    RequirementControlMapping,
    TrustworthyRequirement,
)

logger = logging.getLogger(__name__)


def normalize_requirement_id(value: str) -> TrustworthyRequirement:
    """Map a requirement id or short alias onto the closed set of seven."""
    if isinstance(value, TrustworthyRequirement):
        return value
    key = (value or "").strip().lower()
    try:
        return TrustworthyRequirement(key)
    except ValueError:
        pass
    if key in REQUIREMENT_ALIASES:
        return REQUIREMENT_ALIASES[key]
    valid = ", ".join(r.value for r in TrustworthyRequirement)
    raise InvalidInput(f"Unknown requirement '{value}'. Must be one of: {valid}")


async def seed_requirements(session: AsyncSession) -> int:
    """Insert any of the seven requirements that are missing. Returns inserted count."""
    existing = set((await session.execute(select(Requirement.id))).scalars().all())
    created = 0
    for order, (req, name, short_name, keywords) in enumerate(REQUIREMENT_DEFINITIONS, 1):
        if req.value in existing:
            continue
        session.add(Requirement(
            id=req.value, name=name, short_name=short_name,
            keywords=keywords, display_order=order,
        ))
        created += 1
    if created:
        await session.flush()
    return created


class ControlCatalog:
    """Request-scoped reader over the catalog tables."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ─── Frameworks ───

    async def get_framework(self, framework_id: str) -> Framework:
        fw = await self.session.get(Framework, framework_id)
        if not fw:
            raise NotFound("Framework", framework_id)
        return fw

    async def list_frameworks(self, active_only: bool = True) -> list[Framework]:
        q = select(Framework).order_by(Framework.id)
        if active_only:
            q = q.where(Framework.is_active.is_(True))
        return list((await self.session.execute(q)).scalars().all())

    async def control_counts(self) -> dict[str, int]:
        q = (
            select(Control.framework_id, func.count(Control.id))
            .where(Control.is_active.is_(True))
            .group_by(Control.framework_id)
        )
        return {fw: count for fw, count in (await self.session.execute(q)).all()}

    # ─── Controls ───

    async def get_control(self, control_id: str) -> Control:
        control = await self.session.get(Control, control_id)
        if not control:
            raise NotFound("Control", control_id)
        return control

    async def list_controls(
        self,
        framework_ids: list[str] | set[str] | None = None,
        active_only: bool = True,
    ) -> list[Control]:
        q = select(Control).order_by(Control.framework_id, Control.id)
        if framework_ids is not None:
            if not framework_ids:
                return []
            q = q.where(Control.framework_id.in_(list(framework_ids)))
        if active_only:
            q = q.where(Control.is_active.is_(True))
        return list((await self.session.execute(q)).scalars().all())

    async def control_framework_index(self) -> dict[str, str]:
        """control id -> framework id for every control in the catalog."""
        rows = (await self.session.execute(select(Control.id, Control.framework_id))).all()
        return {cid: fw for cid, fw in rows}

    # ─── Requirements ───

    async def list_requirements(self) -> list[Requirement]:
        q = select(Requirement).order_by(Requirement.display_order)
        return list((await self.session.execute(q)).scalars().all())

    async def get_requirement(self, requirement_id: str) -> Requirement:
        req_id = normalize_requirement_id(requirement_id)
        req = await self.session.get(Requirement, req_id.value)
        if not req:
            raise NotFound("Requirement", req_id.value)
        return req

    async def requirement_mappings(
        self,
        requirement_id: str | None = None,
        control_ids: list[str] | set[str] | None = None,
    ) -> list[RequirementControlMapping]:
        q = select(RequirementControlMapping)
        if requirement_id is not None:
            q = q.where(RequirementControlMapping.requirement_id == normalize_requirement_id(requirement_id).value)
        if control_ids is not None:
            if not control_ids:
                return []
            q = q.where(RequirementControlMapping.control_id.in_(list(control_ids)))
        return list((await self.session.execute(q)).scalars().all())

    async def add_requirement_mapping(
        self,
        requirement_id: str,
        control_id: str,
        strength: float,
        rationale: str | None = None,
    ) -> RequirementControlMapping:
        req = normalize_requirement_id(requirement_id)
        strength = require_unit_interval("strength", strength)
        await self.get_control(control_id)

        q = select(RequirementControlMapping).where(
            RequirementControlMapping.requirement_id == req.value,
            RequirementControlMapping.control_id == control_id,
        )
        mapping = (await self.session.execute(q)).scalar_one_or_none()
        if mapping:
            mapping.strength = strength
            if rationale is not None:
                mapping.rationale = rationale
        else:
            mapping = RequirementControlMapping(
                requirement_id=req.value, control_id=control_id,
                strength=strength, rationale=rationale,
            )
            self.session.add(mapping)
        await self.session.flush()
        logger.info("Mapped requirement %s -> control %s (strength %.2f)", req.value, control_id, strength)
        return mapping

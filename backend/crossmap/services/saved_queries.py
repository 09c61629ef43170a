"""
Saved Query Engine — tenant-scoped analysis requests re-executed on demand.

The engine itself never schedules anything: ``schedule_frequency`` is read by
an external scheduler, which calls ``run`` at that cadence.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crossmap.errors import InvalidInput, NotFound
from crossmap.models.saved_query import SCHEDULE_FREQUENCIES, QueryType, SavedQuery
from crossmap.schemas.saved_query import QueryRunResult
from crossmap.services.tenant_config import require_tenant

logger = logging.getLogger(__name__)

# (tenant_id, parameters) -> result
QueryHandler = Callable[[str, dict[str, Any]], Awaitable[Any]]


def parse_query_type(value: str | QueryType) -> QueryType:
    if isinstance(value, QueryType):
        return value
    try:
        return QueryType((value or "").strip().lower())
    except ValueError:
        valid = ", ".join(t.value for t in QueryType)
        raise InvalidInput(f"Unknown query_type '{value}'. Must be one of: {valid}")


def snapshot(value: Any) -> Any:
    """JSON-ready copy of a handler result."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [snapshot(v) for v in value]
    if isinstance(value, dict):
        return {k: snapshot(v) for k, v in value.items()}
    return value


class SavedQueryService:
    def __init__(self, session: AsyncSession, handlers: dict[QueryType, QueryHandler] | None = None):
        self.session = session
        self.handlers = handlers or {}

    async def save(
        self,
        tenant_id: str,
        name: str,
        query_type: str | QueryType,
        parameters: dict[str, Any] | None = None,
        schedule: str | None = None,
        description: str | None = None,
        created_by: str | None = None,
    ) -> SavedQuery:
        tenant_id = require_tenant(tenant_id)
        qtype = parse_query_type(query_type)
        if not (name or "").strip():
            raise InvalidInput("name is required")
        if schedule is not None and schedule not in SCHEDULE_FREQUENCIES:
            raise InvalidInput(
                f"Invalid schedule_frequency '{schedule}'. Must be one of: {', '.join(SCHEDULE_FREQUENCIES)}"
            )
        if parameters is not None and not isinstance(parameters, dict):
            raise InvalidInput("parameters must be an object")

        query = SavedQuery(
            tenant_id=tenant_id,
            name=name.strip(),
            description=description,
            query_type=qtype.value,
            parameters=dict(parameters or {}),
            is_scheduled=schedule is not None,
            schedule_frequency=schedule,
            created_by=created_by,
        )
        self.session.add(query)
        await self.session.flush()
        logger.info("Saved query %d (%s) for tenant %s", query.id, qtype.value, tenant_id)
        return query

    async def get(self, query_id: int, tenant_id: str | None = None) -> SavedQuery:
        query = await self.session.get(SavedQuery, query_id)
        if not query or (tenant_id is not None and query.tenant_id != tenant_id):
            raise NotFound("SavedQuery", query_id)
        return query

    async def list_queries(self, tenant_id: str) -> list[SavedQuery]:
        q = select(SavedQuery).where(SavedQuery.tenant_id == tenant_id).order_by(SavedQuery.created_at.desc(), SavedQuery.id.desc())
        return list((await self.session.execute(q)).scalars().all())

    async def list_scheduled(self, tenant_id: str | None = None) -> list[SavedQuery]:
        q = select(SavedQuery).where(SavedQuery.is_scheduled.is_(True))
        if tenant_id is not None:
            q = q.where(SavedQuery.tenant_id == tenant_id)
        return list((await self.session.execute(q.order_by(SavedQuery.id))).scalars().all())

    async def delete(self, query_id: int, tenant_id: str | None = None) -> None:
        query = await self.get(query_id, tenant_id)
        await self.session.delete(query)
        await self.session.flush()
        logger.info("Deleted saved query %d", query_id)

    async def run(self, query_id: int, tenant_id: str | None = None) -> QueryRunResult:
        query = await self.get(query_id, tenant_id)
        qtype = parse_query_type(query.query_type)
        handler = self.handlers.get(qtype)
        if handler is None:
            raise InvalidInput(f"No handler registered for query_type '{qtype.value}'")

        result = snapshot(await handler(query.tenant_id, dict(query.parameters or {})))
        ran_at = datetime.utcnow()
        query.last_result = result
        query.last_run_at = ran_at
        await self.session.flush()
        logger.info("Ran saved query %d (%s)", query.id, qtype.value)
        return QueryRunResult(query_id=query.id, query_type=qtype.value, ran_at=ran_at, result=result)

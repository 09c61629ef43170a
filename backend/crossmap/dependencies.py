"""FastAPI dependencies shared by the routers."""
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from crossmap.database import get_session
from crossmap.errors import InvalidInput
from crossmap.services.engine import MappingEngine


async def get_engine(request: Request, s: AsyncSession = Depends(get_session)) -> MappingEngine:
    """Request-scoped engine sharing the application's resolution cache."""
    return MappingEngine(s, cache=getattr(request.app.state, "resolution_cache", None))


async def get_tenant_id(x_tenant_id: str | None = Header(None)) -> str:
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise InvalidInput("X-Tenant-Id header is required")
    return tenant_id

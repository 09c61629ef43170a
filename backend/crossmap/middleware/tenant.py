"""
Per-request tenant context.

The tenant id comes from the ``X-Tenant-Id`` header. It is stored in a
context variable so log records emitted anywhere during the request can
carry it (see ``TenantLogFilter``).

Usage:
    # At application startup:
    app.add_middleware(TenantContextMiddleware)
    handler.addFilter(TenantLogFilter())
"""
from __future__ import annotations

import contextvars
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

TENANT_HEADER = "X-Tenant-Id"

_ctx_tenant_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "tenant_id", default=None,
)


def set_tenant_context(tenant_id: str | None) -> contextvars.Token:
    return _ctx_tenant_id.set(tenant_id.strip() if tenant_id and tenant_id.strip() else None)


def current_tenant() -> str | None:
    return _ctx_tenant_id.get()


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Set the per-request tenant context from the X-Tenant-Id header."""

    async def dispatch(self, request: Request, call_next):
        token = set_tenant_context(request.headers.get(TENANT_HEADER))
        try:
            return await call_next(request)
        finally:
            _ctx_tenant_id.reset(token)


class TenantLogFilter(logging.Filter):
    """Adds ``tenant_id`` to every record ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.tenant_id = current_tenant() or "-"
        return True

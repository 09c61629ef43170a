import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from crossmap.config import settings
from crossmap.database import check_db_connection
from crossmap.errors import CrossMapError
from crossmap.middleware.tenant import TenantContextMiddleware, TenantLogFilter
from crossmap.routers.catalog import router as catalog_router
from crossmap.routers.cross_framework import router as cross_framework_router
from crossmap.routers.gaps import router as gaps_router
from crossmap.routers.requirements import router as requirements_router
from crossmap.routers.saved_queries import router as saved_queries_router
from crossmap.routers.tenant_config import router as tenant_config_router
from crossmap.routers.z_inspection import router as z_inspection_router
from crossmap.services.resolution_cache import ResolutionCache

logger = logging.getLogger("crossmap")


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] tenant=%(tenant_id)s %(message)s"
    ))
    handler.addFilter(TenantLogFilter())
    logger.handlers[:] = [handler]
    logger.setLevel(settings.LOG_LEVEL.upper())
    logger.propagate = False


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("%s %s starting", settings.APP_NAME, settings.APP_VERSION)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Per-instance resolution cache (shared by all requests of this app) ──
app.state.resolution_cache = ResolutionCache(settings.RESOLUTION_CACHE_SIZE)


@app.exception_handler(CrossMapError)
async def crossmap_error_handler(request: Request, exc: CrossMapError):
    if exc.status_code >= 500:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


app.add_middleware(TenantContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(catalog_router)
app.include_router(cross_framework_router)
app.include_router(gaps_router)
app.include_router(requirements_router)
app.include_router(z_inspection_router)
app.include_router(saved_queries_router)
app.include_router(tenant_config_router)


@app.get("/health")
async def health():
    """Verifies the API is running and the database is reachable."""
    try:
        await check_db_connection()
        db_status = "connected"
    except Exception as exc:
        db_status = f"error: {exc}"

    cache = app.state.resolution_cache
    return {
        "status": "ok" if db_status == "connected" else "degraded",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "database": db_status,
        "resolution_cache": {"entries": len(cache), "hits": cache.hits, "misses": cache.misses},
    }

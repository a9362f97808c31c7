"""
FastAPI application entry point.

Run with:
    python -m migun.app.main            # binds HOST:PORT from settings

Or with reload during development:
    uvicorn migun.app.main:app --reload --port 3001
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from migun.app.core.config import settings
from migun.app.core.logging_config import setup_logging, get_logger
from migun.app.core.errors import register_error_handlers
from migun.app.core.middleware import RequestLoggingMiddleware
from migun.app.core.health import HealthStatus, run_health_check

# ── Domain ──
from migun.app.alerts.store import AlertStore
from migun.app.areas.catalog import AreaCatalog, load_geo_reference
from migun.app.ingestion.poller import FeedPoller

# ── API routers ──
from migun.app.api.v1.alerts import router as alerts_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


# ── Application lifespan (startup / shutdown) ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load reference data, build the store and start the feed poller once."""
    logger.info(
        "Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    catalog = AreaCatalog.load(settings.AREAS_PATH, default_migun_time=settings.DEFAULT_MIGUN_TIME)
    store = AlertStore(catalog)
    app.state.catalog = catalog
    app.state.store = store
    app.state.cities_geo = load_geo_reference(settings.CITIES_GEO_PATH)
    app.state.poller = None

    if settings.FEED_POLLING_ENABLED:
        app.state.poller = FeedPoller(store)
        app.state.poller.start()
    else:
        logger.warning("Feed polling disabled; only injected alerts will appear")

    yield

    if app.state.poller is not None:
        await app.state.poller.stop()
    store.close()
    logger.info("Shutting down %s", settings.APP_NAME)


# ── Create application ──

app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Shelter countdown service. Polls the civil-defense live and "
        "history alert feeds, keeps a per-area alert table with a grace "
        "window against feed gaps, and serves a clock-stamped snapshot "
        "for countdown clients."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware stack (last added runs outermost) ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# ── Error handlers ──
register_error_handlers(app)

# ── Register routers ──
app.include_router(alerts_router)


# ── Root & health endpoints ──

async def _health(request: Request):
    state = request.app.state
    return await run_health_check(
        getattr(state, "store", None),
        getattr(state, "catalog", None),
        getattr(state, "poller", None),
    )


@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "endpoints": ["/api/alerts", "/api/areas", "/api/cities-geo"],
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Deep health probe across catalog, feeds and store."""
    report = await _health(request)
    return report.to_dict()


@app.get("/health/live", tags=["health"])
async def liveness():
    """Liveness probe."""
    return {"status": "alive"}


@app.get("/health/ready", tags=["health"])
async def readiness(request: Request):
    """Readiness probe; 503 when any component is unhealthy."""
    report = await _health(request)
    if report.status == HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)

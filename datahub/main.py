import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import Request as FastAPIRequest
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from datahub.api import api_router
from datahub.core.config import get_settings
from datahub.core.errors import DataHubError, RateLimited, UpstreamFetchFailed
from datahub.core.rate_limit import limiter, rate_limit_exceeded_handler
from datahub.services.engine import DataHub

settings = get_settings()

# Module loggers (gateway, indexer, ...) emit INFO diagnostics
logging.getLogger("datahub").setLevel(logging.INFO)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A hub may be pre-installed (tests); otherwise build one from settings
    hub = getattr(app.state, "hub", None) or DataHub.from_settings(settings)
    hub.startup()
    app.state.hub = hub
    try:
        yield
    finally:
        hub.shutdown()


app = FastAPI(
    title="OpenGov DataHub API",
    description="Cached UK open-data APIs with full-text search",
    version="1.0.0",
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url=None if settings.is_production else "/openapi.json",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(DataHubError)
async def datahub_error_handler(request: FastAPIRequest, exc: DataHubError) -> JSONResponse:
    """Render engine errors as structured JSON with a machine-readable kind."""
    headers = None
    if isinstance(exc, RateLimited):
        status_code = 429
        headers = {"Retry-After": str(exc.details["retry_after"])}
    elif isinstance(exc, UpstreamFetchFailed):
        status_code = 502
    else:
        status_code = 500
    logger.warning("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(Exception)
async def global_exception_handler(request: FastAPIRequest, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a generic 500 response."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    content = {"error": "internal_error", "message": "Internal server error"}
    if not settings.is_production:
        content["debug"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# CORS
if settings.cors_origins.strip() == "*":
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    origins = [origin.strip() for origin in settings.cors_origins.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Admin-Api-Key"],
    )

# Include API router
app.include_router(api_router, prefix="/api")


@app.get("/health")
def health_check():
    return {"status": "ok"}

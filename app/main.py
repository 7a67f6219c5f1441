"""
FastAPI application main module.

Wires settings, logging, request tracing, the error envelope, health checks
and the v1 router. Every error response has the shape
``{"success": false, "message": ..., "request_id": ...}``.
"""
from typing import Any, Dict, List, Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
import time
from contextlib import asynccontextmanager
from app.api.v1 import api_router
from app.config import load_settings
import app.database as database
from app.utils import setup_logging, get_logger
from app.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER
from app.utils.observability import REQUEST_ID_HEADER, ensure_request_id
import app.models.db  # noqa: F401  (register tables on Base.metadata)

settings = load_settings()

# Setup logging before creating the app
setup_logging(
    log_level=settings.log_level,
    log_file=settings.log_file,
    enable_console=True
)

logger = get_logger(__name__)

SERVICE_NAME = "reel-ingestion-service"
SERVICE_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup and report which provider settings are present."""
    logger.info("Application startup initiated")
    try:
        database.Base.metadata.create_all(bind=database.engine)
        logger.info(
            "Application startup completed",
            apify_configured=bool(settings.apify_token),
            webhook_secret_configured=bool(settings.webhook_secret),
            public_base_url=settings.public_base_url,
        )
        yield
    except Exception as e:  # pragma: no cover
        logger.error("Application startup failed", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("Application shutdown completed")

app = FastAPI(
    title="Reel Ingestion Service",
    description="""
    Webhook ingestion and reconciliation backend for Instagram reel analytics.

    ## Features
    * **Model lifecycle** - register, enable (with backfill run) and disable creator accounts
    * **Webhook inbox** - idempotent intake of scrape-completion notifications
    * **Inbox processing** - dataset fetch, reel upserts and daily metric snapshots
    * **Daily scheduling** - chunked incremental scrapes for enabled models
    * **Run health** - job heartbeats and an audit event log
    """,
    version=SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)
app.state.settings = settings

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _error_response(
    request: Request,
    status_code: int,
    message: Any,
    details: Optional[List[Dict[str, Any]]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "message": message, "request_id": _request_id(request)}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Assign a request id, time the request and log both ends of it."""
    request_id = ensure_request_id(request.headers)
    request.state.request_id = request_id
    started = time.perf_counter()

    # The webhook query string carries the shared secret: only the path is logged.
    logger.info(
        "Request started",
        method=request.method,
        path=request.url.path,
        remote_addr=request.client.host if request.client else "unknown",
        request_id=request_id,
    )

    response = await call_next(request)

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers[REQUEST_ID_HEADER] = request_id
    response.headers["X-Process-Time"] = str(elapsed_ms)
    logger.info(
        "Request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        process_time_ms=elapsed_ms,
        request_id=request_id,
    )
    return response

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    logger.warning("Request validation failed", errors=len(details), path=request.url.path, request_id=_request_id(request))
    return _error_response(request, 422, "Request validation failed", details)

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        request_id=_request_id(request),
    )
    return _error_response(request, exc.status_code, exc.detail)

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        request_id=_request_id(request),
        exc_info=True,
    )
    return _error_response(request, 500, "Internal server error")


def _database_check() -> str:
    db = database.SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    finally:
        db.close()
    return "healthy"


@app.get("/health", tags=["health"], summary="Basic health check")
async def health_check():
    """Liveness probe for load balancers."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": time.time(),
    }

@app.get("/health/detailed", tags=["health"], summary="Detailed health check")
async def detailed_health_check():
    """Database reachability, provider circuit breakers and configuration presence."""
    checks: Dict[str, Any] = {}
    degraded = False

    try:
        checks["database"] = _database_check()
    except Exception as e:
        checks["database"] = f"unhealthy: {e}"
        degraded = True

    breakers = GLOBAL_CIRCUIT_BREAKER.snapshot()
    checks["provider_circuit_breakers"] = breakers
    degraded = degraded or any(b["state"] != "CLOSED" for b in breakers.values())

    current = app.state.settings
    checks["configuration"] = {
        "apify_token": bool(current.apify_token),
        "webhook_secret": bool(current.webhook_secret),
    }
    return {
        "status": "degraded" if degraded else "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": time.time(),
        "checks": checks,
    }

@app.get("/", tags=["root"])
async def root():
    return {
        "message": "Reel Ingestion Service API",
        "version": SERVICE_VERSION,
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": "/api/v1",
    }

app.include_router(api_router, prefix="/api/v1")

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_dirs=["app"],
        log_level=settings.log_level.lower(),
    )

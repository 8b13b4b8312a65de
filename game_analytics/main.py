from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import structlog
import time

from game_analytics.core.config import settings
from game_analytics.core.errors import AnalyticsError, AuthError, UpstreamQueryError
from game_analytics.core.warehouse import connect_warehouse
from game_analytics.api import auth, reports
from game_analytics.middleware.auth import auth_error_handler
from game_analytics.middleware.rate_limit import build_rate_limiter, rate_limit_middleware
from game_analytics.services.sessions import AuthConfig, GoogleTokenVerifier

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ]
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events"""
    app.state.auth_config = AuthConfig.from_settings(settings)
    app.state.token_verifier = GoogleTokenVerifier(settings.google_client_id)
    app.state.warehouse = connect_warehouse()
    app.state.rate_limiter = build_rate_limiter() if settings.rate_limit_enabled else None

    logger.info(
        "application_startup",
        app_name=settings.app_name,
        warehouse=settings.warehouse_path,
        allowed_emails=len(app.state.auth_config.allowed_emails)
    )
    yield

    app.state.warehouse.close()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan
)

app.middleware("http")(rate_limit_middleware)


# Middleware for logging requests
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration * 1000, 2)
    )

    return response


# Added last so it wraps everything, 429s included
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AuthError, auth_error_handler)


@app.exception_handler(UpstreamQueryError)
async def upstream_query_error_handler(request: Request, exc: UpstreamQueryError):
    # Query text was logged where the call failed; callers get nothing of it
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.exception_handler(AnalyticsError)
async def analytics_error_handler(request: Request, exc: AnalyticsError):
    logger.info("request_rejected", path=request.url.path, status_code=exc.status_code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# Include routers
app.include_router(auth.router)
app.include_router(reports.router)


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}

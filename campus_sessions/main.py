import logging
import sys
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from campus_sessions.core.config import settings
from campus_sessions.core.exceptions import SessionError
from campus_sessions.core.limiter import limiter
from campus_sessions.core.security import SecurityHeadersMiddleware, sanitize_error_message
from campus_sessions.core.utils.logging_config import (
    init_application_logging,
    log_security_event,
    set_correlation_id,
)
from campus_sessions.core.utils.time_helpers import isoformat_z, utcnow
from campus_sessions.db.init_db import init_database

# Initialize structured logging
init_application_logging()

logger = logging.getLogger("campus_sessions.main")

# Create database tables
init_database()

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Session lifecycle service for campus accounts",
    version=settings.VERSION,
)

# Attach limiter to app.state for access in route decorators
app.state.limiter = limiter


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """429 with a Retry-After of the limit's window in seconds."""
    response = _rate_limit_exceeded_handler(request, exc)
    response.headers["Retry-After"] = str(exc.limit.limit.get_expiry())
    log_security_event(
        "rate_limit_exceeded",
        f"Rate limit exceeded on {request.url.path}",
        level=logging.WARNING,
        ip_address=request.client.host if request.client else None,
    )
    return response


app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

logger.info(
    "Rate limiting initialized with configuration: session=%s, admin=%s",
    settings.rate_limit_session_endpoints,
    settings.rate_limit_admin_endpoints,
)


@app.exception_handler(SessionError)
async def session_error_handler(request: Request, exc: SessionError):
    """Render every session failure with its kind; never as an anonymous success."""
    payload = exc.to_dict()
    payload["message"] = sanitize_error_message(exc.message)
    headers = {}
    if exc.retryable:
        headers["Retry-After"] = "1"
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"

    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{exc.kind} on {request.method} {request.url.path}",
        extra={"error_kind": exc.kind, "status_code": exc.status_code},
    )
    return JSONResponse(status_code=exc.status_code, content=payload, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = sorted({
        ".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
        for error in exc.errors()
    })
    return JSONResponse(
        status_code=400,
        content={
            "error": "validation_error",
            "message": "Malformed request",
            "invalidFields": fields,
        },
    )


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    correlation_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    set_correlation_id(correlation_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


# Configure CORS (restrict origins; credentials require explicit origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)

app.add_middleware(SecurityHeadersMiddleware)

# Import and include API routers
from campus_sessions.api import admin_sessions, sessions  # noqa: E402

app.include_router(sessions.router, prefix="/api/sessions", tags=["Sessions"])
app.include_router(admin_sessions.router, prefix="/api/admin/sessions", tags=["Session Administration"])


def _check_storage_health() -> dict:
    """
    Check the health of the rate limiting storage backend.

    Returns dict with storage health status and details.
    """
    if not settings.redis_url:
        return {
            "type": "memory",
            "healthy": True,
            "message": "In-memory storage active",
        }

    import redis

    try:
        client = redis.from_url(settings.redis_url, socket_timeout=2)
        client.ping()
        return {
            "type": "redis",
            "healthy": True,
            "message": "Redis connection successful",
        }
    except redis.RedisError as e:
        logger.warning("Redis health check failed: %s", type(e).__name__)
        return {
            "type": "redis",
            "healthy": False,
            "message": f"Redis connection failed: {type(e).__name__}",
        }


# Health check endpoints
@app.get("/health")
def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@app.get("/api/health")
def api_health_check():
    """
    Health check with session store connectivity and rate limiting status.

    Responds 503 when the session store is unreachable.
    """
    from campus_sessions.core.utils.database_helpers import check_database_health

    health_status = {
        "status": "healthy",
        "timestamp": isoformat_z(utcnow()),
        "version": settings.VERSION,
        "environment": {
            "dev_mode": settings.DEV_MODE,
            "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        },
        "services": {},
    }

    db_health = check_database_health()
    health_status["services"]["database"] = {
        "status": db_health["status"],
        "type": db_health["database_type"],
        "connected": db_health["connected"],
        "table_count": db_health["table_count"],
        "last_error": db_health.get("last_error"),
    }
    if db_health["status"] == "unhealthy":
        health_status["status"] = "unhealthy"
    elif db_health["status"] != "healthy":
        health_status["status"] = "degraded"

    storage_health = _check_storage_health()
    rate_limit_status = "enabled" if storage_health["healthy"] else "degraded"
    if not storage_health["healthy"] and health_status["status"] == "healthy":
        health_status["status"] = "degraded"

    health_status["services"]["rate_limiting"] = {
        "status": rate_limit_status,
        "storage": storage_health,
        "configuration": {
            "session_endpoints": settings.rate_limit_session_endpoints,
            "admin_endpoints": settings.rate_limit_admin_endpoints,
        },
    }

    status_code = 503 if health_status["status"] == "unhealthy" else 200
    return JSONResponse(status_code=status_code, content=health_status)

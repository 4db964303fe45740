"""
api/main.py -- FastAPI application entry point for the portal.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the engine, makes sure the schema exists and puts the Gateway
on app.state; shutdown disposes of the connection pool.

Route handlers are plain `def`: FastAPI runs them in its worker thread pool,
which gives request-parallel handling against the bounded connection pool
without any in-process locking.

Every error leaves as the same envelope, {"error": {"code", "message"[, "detail"]}}.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.accounts import router as accounts_router
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.expenses import router as expenses_router
from api.routes.v1.gym import router as gym_router
from api.routes.v1.permissions import router as permissions_router
from api.routes.v1.sessions import router as sessions_router
from api.routes.v1.time_management import router as time_management_router
from core.config import get_settings
from db.engine import build_engine, create_schema, ping
from db.gateway import Gateway

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.DEBUG if get_settings().debug else logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("portal.api")

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the engine for the server lifetime. Shutdown runs even after errors."""
    logger.info("Portal API %s starting up", VERSION)
    engine = build_engine()
    create_schema(engine)
    app.state.gateway = Gateway(engine)

    yield

    app.state.gateway.dispose()
    logger.info("Portal API shutdown complete")


app = FastAPI(
    title="Portal API",
    description="Identity, session and permission gateway for the portal apps.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack (registration order = order a request meets them)
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=get_settings().trusted_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    # The access token travels as a cookie for browser clients.
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)
app.state.limiter = limiter  # SlowAPI looks it up here


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """One access-log line per request.

    Only method and path are logged. Tokens travel in headers and cookies,
    account creation codes in bodies; none of those are touched here.
    """
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    level = logging.WARNING if response.status_code >= 500 else logging.INFO
    logger.log(
        level,
        "%s %s -> %d in %.1fms",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(accounts_router, prefix="/api/v1", tags=["Accounts"])
app.include_router(sessions_router, prefix="/api/v1", tags=["Sessions"])
app.include_router(permissions_router, prefix="/api/v1", tags=["Permissions"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])
app.include_router(gym_router, prefix="/api/v1", tags=["Gym"])
app.include_router(expenses_router, prefix="/api/v1", tags=["Expenses"])
app.include_router(time_management_router, prefix="/api/v1", tags=["Time management"])


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error_response(
    status_code: int,
    code: str,
    message: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    envelope = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(exclude_none=True),
        headers=headers,
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s", request.url.path)
    return _error_response(
        429,
        "rate_limited",
        "Too many attempts. Please wait and try again.",
        detail=str(exc.detail),
        headers={"Retry-After": "60"},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 listing which fields failed and why.

    The offending input values are dropped: a rejected login or sign-up body
    would otherwise echo the password back.
    """
    problems = "; ".join(
        f"{'.'.join(str(part) for part in e.get('loc', ()))}: {e.get('msg')}" for e in exc.errors()
    )
    return _error_response(422, "validation_error", "Request validation failed.", detail=problems)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Pass api.dependencies.unwrap() errors through; wrap anything else.

    unwrap() puts an ErrorDetail dict in exc.detail and may attach headers
    (WWW-Authenticate, Cache-Control), which are kept.
    """
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. The exception goes to the log, never into the body."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health
#
# Lives here rather than in a router: no auth, no rate limit, and it should
# answer even if a router fails to register.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Liveness plus a database ping. A failed ping degrades, never 500s."""
    database = "ok"
    try:
        ping(request.app.state.gateway.engine)
    except SQLAlchemyError:
        logger.exception("Health check: database ping failed")
        database = "error"
    status = "healthy" if database == "ok" else "degraded"
    return HealthResponse(status=status, version=VERSION, components={"app": "ok", "database": database})

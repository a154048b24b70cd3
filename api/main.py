"""
api/main.py -- FastAPI application entry point for the game auth API.

Exposes the launcher authentication flow (authenticate / verify / logout)
over HTTP for game launchers and game servers.

Run with:      uvicorn asgi:app --reload

Middleware stack:
  log_requests -- one access-log line per request with latency and client IP

Lifespan opens the user store and builds the AuthenticationService on
startup, and closes the store on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.models import ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.auth import status_for
from auth.dependencies import get_auth_service
from auth.errors import AuthError, FeatureDisabled
from auth.service import AuthenticationService
from auth.store import UserStore
from core.config import get_settings

API_VERSION = "1.0.0"
AUTH_PREFIX = "/api/auth/"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gameauth.api")

# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown.
    """
    settings = get_settings()
    logger.info("Game auth API starting up")
    app.state.user_store = UserStore(settings.database_url)
    app.state.auth_service = AuthenticationService.from_settings(app.state.user_store, settings)
    logger.info("Auth initialized (auth_api_enabled=%s)", settings.auth_api_enabled)

    yield

    app.state.user_store.close()
    logger.info("Game auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Game Auth API",
    description="Token authentication for game launchers: login, token verification and logout.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Wall-clock time before and after call_next gives the latency.
# Bodies are never logged -- they carry passwords and tokens.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {status, reason, message} envelope so launcher
# clients can branch on "reason" without inspecting status codes.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an expected auth failure verbatim."""
    return JSONResponse(
        status_code=status_for(exc),
        content=exc.payload(),
        headers={"Cache-Control": "no-store"},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with the offending fields when the request body fails validation.

    A body that is not even JSON fails before the router-level feature gate
    runs, so the gate is applied again here: with the auth API off the answer
    is always feature_disabled.
    """
    if request.url.path.startswith(AUTH_PREFIX) and not get_auth_service(request).enabled:
        return await auth_error_handler(request, FeatureDisabled())

    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        errors.setdefault(".".join(loc) or "body", []).append(err.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            reason="validation_error",
            message="The given data was invalid.",
            errors=errors,
        ).body(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    Covers store failures and TokenIssueError. The raw exception goes to the
    log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            reason="internal_error",
            message="An unexpected error occurred.",
        ).body(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py and outside the auth router, so it answers even
# while the auth API feature flag is off.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    try:
        database = "ok" if request.app.state.user_store.ping() else "error"
    except SQLAlchemyError:
        logger.exception("Health check database ping failed")
        database = "error"
    return HealthResponse(status="ok" if database == "ok" else "degraded", version=API_VERSION, database=database)

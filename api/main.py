"""
api/main.py -- FastAPI application entry point for the user directory.

Run with:      python main.py
               uvicorn api.main:app --reload

Middleware stack:
  1. CORSMiddleware -- adds CORS headers for allowed browser origins
  2. log_requests   -- one log line per request with status and latency

Lifespan builds the store and the two services once and hangs them on
app.state; route handlers read them from there. Shutdown disposes the
store's connection pool.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorEnvelope, HealthResponse
from api.routes.v1.users import router as users_router
from auth.service import AuthService
from auth.store import UserStore
from core.config import get_settings
from core.errors import DirectoryError, ErrorCode
from directory.service import DirectoryService

VERSION = "0.1.0"
_KNOWN_CODES = {code.value for code in ErrorCode}

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("userdir.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the store and services on startup; dispose the store on shutdown.

    Services are plain instances wired by hand: AuthService needs the store,
    DirectoryService needs both.
    """
    logger.info("User directory API starting up")
    user_store = UserStore(_settings.database_url) if _settings.database_url else UserStore()
    auth_service = AuthService(user_store)
    app.state.user_store = user_store
    app.state.auth_service = auth_service
    app.state.directory = DirectoryService(user_store, auth_service)
    logger.info("User store initialized")

    yield

    app.state.user_store.close()
    logger.info("User directory API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="User Directory API",
    description="Multi-tenant user directory with token authentication.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


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

app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the same {ok: false, code, error} envelope. error is a
# fixed message chosen here, never str(exc) of a storage or library exception.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: ErrorCode, message: str | None = None) -> JSONResponse:
    response = JSONResponse(
        status_code=status_code,
        content=ErrorEnvelope(code=code, error=message).model_dump(mode="json"),
    )
    if status_code == 401:
        response.headers["Cache-Control"] = "no-store"  # [M5]
    return response


@app.exception_handler(DirectoryError)
async def directory_error_handler(request: Request, exc: DirectoryError) -> JSONResponse:
    """Render a domain error raised by AuthService or DirectoryService."""
    if exc.status_code >= 500:
        return _error_response(exc.status_code, exc.code, "An unexpected error occurred.")
    return _error_response(exc.status_code, exc.code, str(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 INVALID_PAYLOAD when the body, path or query fails schema validation."""
    fields = ", ".join(".".join(str(part) for part in err.get("loc", ())) for err in exc.errors())
    return _error_response(400, ErrorCode.INVALID_PAYLOAD, f"Invalid fields: {fields}" if fields else None)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPException (401 from the auth dependency, 404/405 from routing).

    When detail is a structured dict with a known code, keep that code;
    otherwise fall back to SERVER_ERROR for 5xx and the status text for 4xx.
    """
    if isinstance(exc.detail, dict) and exc.detail.get("code") in _KNOWN_CODES:
        return _error_response(exc.status_code, ErrorCode(exc.detail["code"]), exc.detail.get("message"))
    if exc.status_code == 401:
        return _error_response(401, ErrorCode.UNAUTHORIZED, "Authentication required.")
    if exc.status_code >= 500:
        return _error_response(exc.status_code, ErrorCode.SERVER_ERROR, "An unexpected error occurred.")
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": str(exc.detail)},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The exception and traceback go to the log only; the client gets
    SERVER_ERROR and a fixed message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, ErrorCode.SERVER_ERROR, "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and whether the user store answers queries."""
    database = "ok" if request.app.state.user_store.ping() else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=VERSION,
        components={"app": "ok", "database": database},
    )

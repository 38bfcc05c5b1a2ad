"""
api/main.py -- FastAPI application entry point for AccessGate.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan reads Settings once, builds the AuthServices bundle (identity store,
hasher, validator, token service, user service, authorization engine) and
stores it on app.state.auth. Shutdown closes the identity store.

Error translation lives here, not in the routes. The auth core raises typed
errors; the handlers below collapse each security-sensitive group into one
generic response so clients cannot tell the members apart:
  AuthenticationFailedError  -> 401 bad_credentials
  TokenError                 -> 401 unauthorized
  AccessDeniedError          -> 403 forbidden
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.errors import (
    AccessDeniedError,
    AuthenticationFailedError,
    DuplicateLoginIdError,
    IdentityStoreUnavailableError,
    InvalidCredentialsFormatError,
    InvalidInputError,
    TokenError,
)
from auth.services import build_auth_services
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("accessgate.api")


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth services on startup and release the store on shutdown.

    Settings are read exactly once here. Everything built from them is
    immutable for the life of the process.
    """
    settings = get_settings()
    logger.info("AccessGate API starting up")
    app.state.auth = build_auth_services(settings)
    logger.info(
        "Auth initialized (bcrypt_rounds=%d, token_ttl=%ds, users=%d)",
        settings.bcrypt_rounds,
        settings.token_expire_seconds,
        app.state.auth.store.count(),
    )

    yield

    app.state.auth.store.close()
    logger.info("AccessGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AccessGate API",
    description="Credential verification, stateless access tokens and role/voter authorization.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver"],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST", "PUT", "PATCH"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Logs method, path, status and latency. Never logs headers or bodies --
# they carry passwords and bearer tokens.
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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AuthenticationFailedError)
async def authentication_failed_handler(request: Request, exc: AuthenticationFailedError) -> JSONResponse:
    """Unknown login id and wrong password produce byte-identical responses [C1]."""
    logger.info("Authentication failed on %s (%s)", request.url.path, type(exc).__name__)
    response = _error(401, "bad_credentials", "Invalid login id or password.")
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return response


@app.exception_handler(TokenError)
async def token_error_handler(request: Request, exc: TokenError) -> JSONResponse:
    """Missing, malformed, forged and expired tokens all look the same to the client."""
    logger.info("Token rejected on %s (%s)", request.url.path, type(exc).__name__)
    response = _error(401, "unauthorized", "Authentication required.")
    response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError) -> JSONResponse:
    return _error(403, "forbidden", "You do not have access to this resource.")


@app.exception_handler(DuplicateLoginIdError)
async def duplicate_login_id_handler(request: Request, exc: DuplicateLoginIdError) -> JSONResponse:
    return _error(409, "conflict", "A user with that login id already exists.")


@app.exception_handler(InvalidCredentialsFormatError)
async def credentials_format_handler(request: Request, exc: InvalidCredentialsFormatError) -> JSONResponse:
    """Policy messages are written to be client-safe; the field name helps form UIs."""
    return _error(422, "invalid_credentials_format", exc.message, detail=exc.field)


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    return _error(422, "invalid_input", "Request contains an invalid value.")


@app.exception_handler(IdentityStoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: IdentityStoreUnavailableError) -> JSONResponse:
    """Upstream dependency failure: retryable, so say so."""
    logger.error("Identity store unavailable on %s %s", request.method, request.url.path, exc_info=exc)
    response = _error(503, "service_unavailable", "Service temporarily unavailable.")
    response.headers["Retry-After"] = "5"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", detail=str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return _error(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail={"code": ..., "message": ...}.
    When detail is already a structured dict, use it directly as the error field.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors (SigningError, MalformedHashError, ...).

    Security note: the raw exception is written to the log only, never to the
    response body -- hash formats and signer internals stay server-side.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. No rate limit -- health checks must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=__version__)

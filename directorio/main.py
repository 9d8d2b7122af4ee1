"""
directorio/main.py — FastAPI application entry point
Includes: lifespan management (Firebase, Redis, Identity Toolkit client),
          per-route token-bucket rate limiting, CORS, security headers,
          domain error rendering, ping keep-alive endpoint.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from directorio.clients.firebase import init_firebase
from directorio.clients.firestore_client import FirestoreDocumentStore
from directorio.clients.identity_client import FirebaseIdentityProvider
from directorio.clients.kv_client import build_kv_store
from directorio.clients.storage_client import FirebaseImageStorage
from directorio.config import get_settings
from directorio.core.errors import (
    DirectoryError,
    RateLimitedError,
    ValidationError,
    field_errors,
)
from directorio.core.logging import log_error, setup_logging
from directorio.core.rate_limiter import (
    DENIAL_MESSAGES,
    TokenBucketLimiter,
    client_identifier,
    route_for_path,
)
from directorio.routers import auth, business, review, search, subscription

settings = get_settings()

VERSION = "1.0.0"


# ──────────────────────────────────────────────────────────────────────────────
# Application Lifespan
# ──────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    FastAPI lifespan: startup → yield → shutdown.
    Startup: logging, Firebase Admin app, then the collaborators route
    handlers read from app.state.
    """
    setup_logging(settings.log_level)
    logger.info(f"{settings.app_name} starting up ({settings.environment})...")

    init_firebase()
    kv_store = build_kv_store()
    identity = FirebaseIdentityProvider()

    app.state.store = FirestoreDocumentStore()
    app.state.storage = FirebaseImageStorage()
    app.state.identity = identity
    app.state.limiter = TokenBucketLimiter(kv_store, settings.rate_limits)

    if not await kv_store.ping():
        logger.warning("Redis unreachable at startup; rate limiting will fail open.")
    if not settings.firebase_web_api_key:
        logger.warning("FIREBASE_WEB_API_KEY not set; password and provider sign-in will fail.")

    logger.info("Startup complete.")
    yield
    logger.info(f"Shutting down {settings.app_name}.")
    await identity.close()
    await kv_store.close()


# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Directorio de Negocios",
    description=(
        "Directorio de negocios locales de Ecuador: listados, búsqueda "
        "por categoría y ubicación, y reseñas."
    ),
    version=VERSION,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url=None,
    lifespan=lifespan,
)


# ── Error rendering ───────────────────────────────────────────────────────────
@app.exception_handler(DirectoryError)
async def directory_error_handler(request: Request, exc: DirectoryError) -> JSONResponse:
    if exc.status_code >= 500:
        log_error("api", f"{request.method} {request.url.path}", exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationError(errors=field_errors(exc.errors()))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# ── Rate limiting: token bucket per (client, route category) ─────────────────
@app.middleware("http")
async def enforce_rate_limits(request: Request, call_next) -> Response:
    route = route_for_path(request.url.path)
    limiter = getattr(request.app.state, "limiter", None)
    if route is None or limiter is None:
        return await call_next(request)

    if not await limiter.check(client_identifier(request), route):
        error = RateLimitedError(DENIAL_MESSAGES[route])
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
    return await call_next(request)


# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)


# ── Security headers middleware ───────────────────────────────────────────────
@app.middleware("http")
async def add_security_headers(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
    return response


# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(search.router, prefix="/api", tags=["search"])
app.include_router(business.router, prefix="/api/business", tags=["business"])
app.include_router(review.router, prefix="/api/review", tags=["review"])
app.include_router(subscription.router, prefix="/api", tags=["subscription"])


# ── Ping keep-alive endpoint ──────────────────────────────────────────────────
@app.get("/api/ping", tags=["health"])
async def ping():
    """Does NOT call any external services."""
    return {"status": "ok", "version": VERSION}

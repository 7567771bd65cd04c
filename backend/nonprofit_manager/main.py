"""FastAPI application entrypoint.

Controllers live in `routers/` and stay thin: they accept requests,
delegate to services and return JSON. This module wires them together
with the cross-cutting pieces:

- request id + JSON request log per request
- per-client rate limiting (a tighter bucket for CSV imports)
- security headers
- mapping of domain exceptions to HTTP status codes
- the recurring-transaction scheduler started with the app

Endpoints implemented here:
- GET /health
- POST /auth/register
- POST /auth/login
"""

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session

from . import services
from .auth import client_ip
from .config import settings
from .database import create_db_and_tables, engine, get_session
from .errors import ConcurrencyConflictError, InvalidOperationError, NotFoundError
from .recurring import RecurringScheduler
from .routers import (audit, categories, categorization, data_io, donors, funds, grants, inventory, maintenance,
                      recurring, reports, transactions)
from .schemas import RegisterIn, TokenOut
from .seed import seed_defaults
from .utils.rate_limit import InMemoryRateLimiter

logger = logging.getLogger("nonprofit_manager.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)
rate_limiter = InMemoryRateLimiter()

RATE_LIMIT_EXEMPT = ("/health", "/docs", "/redoc", "/openapi.json")
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": "default-src 'self'; frame-ancestors 'none'",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    if settings.SEED_DEFAULTS:
        with Session(engine) as session:
            seed_defaults(session)
    app.state.scheduler = None
    if settings.RECURRING_SCHEDULER_ENABLED:
        app.state.scheduler = RecurringScheduler()
        app.state.scheduler.start()
    try:
        yield
    finally:
        if app.state.scheduler is not None:
            app.state.scheduler.stop()


app = FastAPI(title="Nonprofit Manager API", lifespan=lifespan)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    path = request.url.path
    if path in RATE_LIMIT_EXEMPT:
        return await call_next(request)
    if path.startswith("/api/import/") and request.method == "POST":
        bucket, limit = "import", settings.IMPORT_RATE_LIMIT_PER_MIN
    else:
        bucket, limit = "api", settings.RATE_LIMIT_PER_MIN
    client = client_ip(request) or "unknown"
    allowed, retry_after, remaining = rate_limiter.allow(f"{client}:{bucket}", limit,
                                                         settings.RATE_LIMIT_WINDOW_SECONDS)
    if not allowed:
        return JSONResponse(
            status_code=429,
            content={"detail": "rate limit exceeded"},
            headers={"Retry-After": str(retry_after), "X-RateLimit-Limit": str(limit),
                     "X-RateLimit-Remaining": "0"},
        )
    response = await call_next(request)
    response.headers["X-RateLimit-Limit"] = str(limit)
    response.headers["X-RateLimit-Remaining"] = str(remaining)
    return response


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        if name == "Content-Security-Policy" and request.url.path in ("/docs", "/redoc"):
            # the interactive docs load their assets from a CDN
            continue
        response.headers.setdefault(name, value)
    return response


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    level = logging.WARNING if response.status_code >= 400 else logging.INFO
    logger.log(
        level,
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
                "client": request.client.host if request.client else "unknown",
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(ConcurrencyConflictError)
async def concurrency_conflict_handler(request: Request, exc: ConcurrencyConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(LookupError)
async def lookup_error_handler(request: Request, exc: LookupError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidOperationError)
async def invalid_operation_handler(request: Request, exc: InvalidOperationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    req_id = getattr(request.state, "request_id", None)
    logger.exception("unhandled error (request %s): %s", req_id, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred", "request_id": req_id},
        headers={"X-Request-ID": req_id} if req_id else None,
    )


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


@app.post('/auth/register')
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a new user.

    A username that is already taken is rejected with 400.
    """
    user = services.AuthService(db).register(payload.username, payload.password)
    logger.info("registered user %s", user.username)
    return {'id': user.id, 'username': user.username}


@app.post('/auth/login', response_model=TokenOut)
def login(payload: RegisterIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a short-lived JWT token.

    The returned token contains `user_id` and `username` and is signed
    using the configured JWT secret.
    """
    token = services.AuthService(db).authenticate(payload.username, payload.password)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    return {'access_token': token}


for module in (funds, categories, categorization, donors, grants, transactions, recurring, audit, inventory,
               maintenance, reports, data_io):
    app.include_router(module.router, prefix="/api")

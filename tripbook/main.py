from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded
import logging
import uuid

from .config import settings
from .database import create_tables
from .errors import BookingPipelineError, ErrorCategory
from .utils.logging_config import setup_logging, set_request_context, clear_request_context
from .utils.rate_limiter import limiter
from .services.draft_expiry import start_draft_expiry_scheduler, stop_draft_expiry_scheduler

from .routers import drafts, bookings, public, payments, travelers, health

setup_logging(level=settings.log_level, json_format=settings.log_json)
logger = logging.getLogger("tripbook")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting tripbook ({settings.environment})")
    logger.info(f"CORS origins: {settings.cors_origins}")

    create_tables()

    if settings.draft_expiry_sweep_enabled:
        start_draft_expiry_scheduler()

    yield

    logger.info("Shutting down tripbook")
    if settings.draft_expiry_sweep_enabled:
        stop_draft_expiry_scheduler()


app = FastAPI(
    title="Tripbook Booking API",
    description="Flight booking drafts, bookings, guest links and confirmations",
    version="1.0.0",
    lifespan=lifespan
)

# Rate limiter state
app.state.limiter = limiter

# CORS first
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if request.url.path.startswith("/api/public/"):
            # Guest pages carry a bearer-like token in the URL
            response.headers["Cache-Control"] = "no-store"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        set_request_context(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestIdMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests, try again later", "code": "rate_limited"}
    )


@app.exception_handler(BookingPipelineError)
async def booking_pipeline_error_handler(request: Request, exc: BookingPipelineError):
    if exc.category == ErrorCategory.INTERNAL:
        logger.error(f"{exc.code}: {exc.message} {exc.context}")
    else:
        logger.info(f"{exc.code}: {exc.message}")
    headers = {"Retry-After": "5"} if exc.retryable else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


app.include_router(drafts.router)
app.include_router(bookings.router)
app.include_router(public.router)
app.include_router(payments.router)
app.include_router(travelers.router)
app.include_router(health.router)


@app.get("")
@app.get("/")
async def root():
    return {
        "message": "Tripbook Booking API",
        "version": "1.0.0",
        "docs": "/docs",
        "status": "running",
    }

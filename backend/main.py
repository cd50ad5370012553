import asyncio
import logging
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from api.routes import auth, history, transform, usage
from config import AppMode, get_settings
from db.database import AsyncSessionLocal, init_db, ping_db
from middleware.gatekeeper import GatekeeperMiddleware
from middleware.rate_limit import RateLimitMiddleware
from middleware.security import SecurityHeadersMiddleware
from services.error_sanitizer import sanitize_public_error_message
from services.errors import AppError, RateLimitError
from services.sessions import start_sweep_task, stop_sweep_task

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Quiet noisy loggers
logging.getLogger("aiosqlite").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

SERVICE_NAME = "TextMorph AI API"
SERVICE_VERSION = "1.0.0"
_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown."""
    logger.info(f"Starting TextMorph in {settings.APP_MODE.value} mode...")

    await init_db()
    logger.info("Database initialized")

    # Expired refresh sessions are pruned in the background (skip during pytest).
    if "pytest" not in sys.modules:
        start_sweep_task(app.state.session_factory)

    yield

    if "pytest" not in sys.modules:
        stop_sweep_task()
    logger.info("Shutting down TextMorph...")


app = FastAPI(
    title="TextMorph AI",
    description="Text transformation service with cookie-based JWT sessions",
    version=SERVICE_VERSION,
    lifespan=lifespan,
    debug=(settings.APP_MODE == AppMode.DEV),
)

# The gatekeeper opens its own database sessions for inline refreshes
app.state.session_factory = AsyncSessionLocal

MAX_ERROR_STRING_CHARS = 400
MAX_ERROR_CONTAINER_ITEMS = 50
MAX_ERROR_DEPTH = 8


def _truncate_string(value: str, max_chars: int = MAX_ERROR_STRING_CHARS) -> str:
    if len(value) <= max_chars:
        return value
    return f"{value[:max_chars]}...(truncated)"


def _sanitize_for_json(value: Any, *, _depth: int = 0) -> Any:
    """
    Make sure error payloads are always UTF-8 encodable.

    Validation details reflect user input. Unpaired surrogates would crash the
    JSON encoder, and large invalid fields would be echoed back in full, so
    strings are re-encoded and truncated.
    """
    if _depth > MAX_ERROR_DEPTH:
        return "<max depth reached>"
    if value is None:
        return None
    if isinstance(value, (int, float, bool)):
        return value
    if isinstance(value, str):
        safe = value.encode("utf-8", errors="replace").decode("utf-8", errors="replace")
        return _truncate_string(safe)
    if isinstance(value, bytes):
        return _truncate_string(value.decode("utf-8", errors="replace"))
    if isinstance(value, (list, tuple, set)):
        items = list(value)
        out = [_sanitize_for_json(v, _depth=_depth + 1) for v in items[:MAX_ERROR_CONTAINER_ITEMS]]
        if len(items) > MAX_ERROR_CONTAINER_ITEMS:
            out.append(f"... ({len(items) - MAX_ERROR_CONTAINER_ITEMS} more items truncated)")
        return out
    if isinstance(value, dict):
        items = list(value.items())
        out: dict[str, Any] = {}
        for k, v in items[:MAX_ERROR_CONTAINER_ITEMS]:
            out[str(_sanitize_for_json(k, _depth=_depth + 1))] = _sanitize_for_json(v, _depth=_depth + 1)
        if len(items) > MAX_ERROR_CONTAINER_ITEMS:
            out["__truncated__"] = f"{len(items) - MAX_ERROR_CONTAINER_ITEMS} more keys truncated"
        return out
    # Validation contexts can hold exception instances and other objects
    try:
        return _sanitize_for_json(str(value), _depth=_depth + 1)
    except Exception:
        return "<unserializable>"


def _validation_summary(errors: list) -> str:
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg", "Invalid value"))
    # pydantic prefixes messages from custom validators with "Value error, "
    message = message.removeprefix("Value error, ")
    return f"{location}: {message}" if location else message


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    content: dict[str, Any] = {"error": exc.message}
    if exc.details is not None:
        content["details"] = _sanitize_for_json(exc.details)

    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}

    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": _truncate_string(_validation_summary(errors)),
            "details": _sanitize_for_json(errors),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    content: dict[str, Any] = {"error": "Internal server error"}
    if settings.DEBUG:
        content["details"] = sanitize_public_error_message(str(exc))
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


# Middlewares (first added = innermost, last added = first to see the request)
# 1. Authentication gate; refreshes expired access tokens inline
app.add_middleware(GatekeeperMiddleware)

# 2. Per-IP limit on the transform endpoints, checked before authentication
app.add_middleware(RateLimitMiddleware)

# 3. Security headers on every response, including gatekeeper and limiter rejections
app.add_middleware(SecurityHeadersMiddleware)

# 3.5. Serialize requests during pytest to avoid shared-session flush races
if "pytest" in sys.modules:
    class TestRequestLockMiddleware(BaseHTTPMiddleware):
        _lock = asyncio.Lock()

        async def dispatch(self, request, call_next):
            async with self._lock:
                return await call_next(request)

    app.add_middleware(TestRequestLockMiddleware)

# 4. Request logging (development only)
if settings.APP_MODE == AppMode.DEV:
    from middleware.logging import RequestLoggingMiddleware, configure_request_logging
    configure_request_logging(settings.LOG_LEVEL)
    app.add_middleware(RequestLoggingMiddleware)

# 5. CORS middleware - must be last (first to process incoming requests)
allow_credentials = "*" not in settings.CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
)

api_router = APIRouter(prefix="/api")
api_router.include_router(auth.router)
api_router.include_router(transform.router)
api_router.include_router(usage.router)
api_router.include_router(history.router)
app.include_router(api_router)


@app.get("/")
async def root():
    return {
        "name": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health")
@app.get("/api/health")
async def health_check():
    """Liveness probe; does not touch the database."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": SERVICE_VERSION,
        "service": SERVICE_NAME,
        "uptime": round(time.monotonic() - _started_at, 3),
        "environment": settings.APP_MODE.value,
    }


@app.get("/api/db-test")
async def db_test():
    """Round-trip a trivial query (dev only)."""
    if settings.APP_MODE != AppMode.DEV:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    try:
        async with app.state.session_factory() as session:
            await ping_db(session)
    except Exception as e:
        logger.error(f"Database check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": sanitize_public_error_message(str(e), fallback="Database error"),
            },
        )
    return {"success": True, "message": "Database connection successful"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=(settings.APP_MODE == AppMode.DEV),
    )

"""Request logging for development.

One line per request with a short correlation id that is echoed back as
``X-Request-ID``. Enabled from ``main.py`` only when APP_MODE is dev.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger("api.requests")

# Noisy endpoints
EXCLUDED_PATHS = {
    "/health",
    "/api/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
}

SENSITIVE_PARAMS = {"token", "password", "key", "accesstoken", "refreshtoken"}


def mask_query_params(params: dict) -> dict:
    return {k: ("***" if k.lower() in SENSITIVE_PARAMS else v) for k, v in params.items()}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, masked query, client, status and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        log_parts = [f"[{request_id}]", f"{request.method} {request.url.path}"]
        if request.query_params:
            log_parts.append(f"params={mask_query_params(dict(request.query_params))}")
        log_parts.append(f"client={request.client.host if request.client else 'unknown'}")
        request_desc = " ".join(log_parts)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"{request_desc} - ERROR ({time.time() - start_time:.3f}s): {e}")
            raise

        duration = time.time() - start_time
        status_class = response.status_code // 100
        if status_class == 5:
            log_func = logger.error
        elif status_class == 4:
            log_func = logger.warning
        elif request.method == "GET":
            log_func = logger.debug
        else:
            log_func = logger.info

        log_func(f"{request_desc} - {response.status_code} ({duration:.3f}s)")

        response.headers["X-Request-ID"] = request_id
        return response


def configure_request_logging(log_level: str = "INFO") -> None:
    """Give the request logger its own handler and level."""
    request_logger = logging.getLogger("api.requests")
    request_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    # Prevent duplicate emission via root logger handlers.
    request_logger.propagate = False

    if not request_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        request_logger.addHandler(handler)

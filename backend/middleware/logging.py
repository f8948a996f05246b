"""Request logging middleware (development only).

Logs one line per request once the response is ready, tagged with a short
request id that is also returned in the ``X-Request-ID`` header so a client
report can be matched to the server log.
"""

import logging
import time
import uuid
from typing import Callable, Dict

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

REQUEST_LOGGER_NAME = "api.requests"

logger = logging.getLogger(REQUEST_LOGGER_NAME)

# Paths to exclude from logging (noisy endpoints)
EXCLUDED_PATHS = {
    "/health",
    "/",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
}

SENSITIVE_PARAMS = ("token", "access_token", "password", "key", "secret")


def sanitize_query_params(params: Dict[str, str]) -> Dict[str, str]:
    return {
        k: ("***" if k.lower() in SENSITIVE_PARAMS else v) for k, v in params.items()
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log method, path, query params, status and duration of each request.

    4xx responses are logged at WARNING, 5xx at ERROR, successful GETs at
    DEBUG and other successful requests at INFO.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        request_id = uuid.uuid4().hex[:8]
        start_time = time.perf_counter()

        method = request.method
        log_parts = [f"[{request_id}]", f"{method} {request.url.path}"]

        query_params = dict(request.query_params)
        if query_params:
            log_parts.append(f"params={sanitize_query_params(query_params)}")

        client_ip = request.client.host if request.client else "unknown"
        log_parts.append(f"client={client_ip}")
        request_desc = " ".join(log_parts)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(f"{request_desc} - ERROR ({duration:.3f}s): {e}")
            raise

        duration = time.perf_counter() - start_time
        status_class = response.status_code // 100

        if status_class == 5:
            log_func = logger.error
        elif status_class == 4:
            log_func = logger.warning
        elif method == "GET":
            log_func = logger.debug
        else:
            log_func = logger.info

        log_func(f"{request_desc} - {response.status_code} ({duration:.3f}s)")

        response.headers["X-Request-ID"] = request_id
        return response


def configure_request_logging(log_level: str = "INFO") -> None:
    """Give the request logger its own handler and level."""
    request_logger = logging.getLogger(REQUEST_LOGGER_NAME)
    request_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    # Prevent duplicate emission via root logger handlers.
    request_logger.propagate = False

    if not request_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        request_logger.addHandler(handler)

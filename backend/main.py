import logging
from contextlib import asynccontextmanager
from typing import Any

from api.routes import categories
from config import AppMode, get_settings
from db.database import init_db
from fastapi import APIRouter, FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from services.category_errors import CategoryError
from starlette.requests import Request

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Quiet noisy loggers
logging.getLogger("aiosqlite").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

APP_NAME = "Finance Tracker Categories"
APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown."""
    logger.info(f"Starting {APP_NAME} in {settings.APP_MODE.value} mode...")

    await init_db()
    logger.info("Database initialized")

    yield

    logger.info(f"Shutting down {APP_NAME}...")


app = FastAPI(
    title=f"{APP_NAME} API",
    description="Hierarchical spending/income categories for the finance tracker",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=(settings.APP_MODE == AppMode.DEV),
)

MAX_ERROR_STRING_CHARS = 400
MAX_ERROR_CONTAINER_ITEMS = 50
MAX_ERROR_DEPTH = 8


def _truncate_string(value: str, max_chars: int = MAX_ERROR_STRING_CHARS) -> str:
    if len(value) <= max_chars:
        return value
    return f"{value[:max_chars]}…(truncated)"


def _sanitize_for_json(value: Any, *, _depth: int = 0) -> Any:
    """
    Make validation error payloads safe to echo back.

    Error details can contain user input: unpaired surrogates would crash the
    JSON encoder (turning a 422 into a 500), and long values are truncated so
    a huge invalid field does not produce a huge error body.
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
        seq = list(value)
        out = [_sanitize_for_json(v, _depth=_depth + 1) for v in seq[:MAX_ERROR_CONTAINER_ITEMS]]
        if len(seq) > MAX_ERROR_CONTAINER_ITEMS:
            out.append(f"... ({len(seq) - MAX_ERROR_CONTAINER_ITEMS} more items truncated)")
        return out
    if isinstance(value, dict):
        items = list(value.items())
        out_dict: dict = {}
        for k, v in items[:MAX_ERROR_CONTAINER_ITEMS]:
            out_dict[str(_sanitize_for_json(k, _depth=_depth + 1))] = _sanitize_for_json(
                v, _depth=_depth + 1
            )
        if len(items) > MAX_ERROR_CONTAINER_ITEMS:
            out_dict["__truncated__"] = f"{len(items) - MAX_ERROR_CONTAINER_ITEMS} more keys truncated"
        return out_dict
    # Validation contexts can hold exception instances; stringify anything else.
    return _sanitize_for_json(str(value), _depth=_depth + 1)


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    safe_errors = _sanitize_for_json(exc.errors())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": safe_errors},
    )


@app.exception_handler(CategoryError)
async def category_error_handler(request: Request, exc: CategoryError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# Request logging (development only)
if settings.APP_MODE == AppMode.DEV:
    from middleware.logging import RequestLoggingMiddleware, configure_request_logging

    configure_request_logging(settings.LOG_LEVEL)
    app.add_middleware(RequestLoggingMiddleware)

# CORS middleware - must be last (first to process incoming requests)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# API Routes - versioned under /api/v1/
api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(categories.router)
app.include_router(api_v1_router)

# Backward compatibility: also mounted at /api/ (deprecated)
api_compat_router = APIRouter(prefix="/api", deprecated=True)
api_compat_router.include_router(categories.router)
app.include_router(api_compat_router)


@app.get("/")
async def root():
    return {
        "name": f"{APP_NAME} API",
        "version": APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "mode": settings.APP_MODE.value,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=(settings.APP_MODE == AppMode.DEV),
    )

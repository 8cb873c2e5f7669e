"""FastAPI application entry point."""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from uuid import uuid4

# Configure logging to output to stdout
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from kilo import __version__
from kilo.config import get_settings
from kilo.services.utils.rate_limiter import QueryRateLimiter, run_sweep_loop

logger = logging.getLogger(__name__)
from kilo.routers import auth, chat, files, health, knowledge_bases, ratings, usage

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the rate limiter and run its sweep for the life of the app."""
    app.state.rate_limiter = QueryRateLimiter(limit=settings.daily_query_limit)

    sweep_task = asyncio.create_task(
        run_sweep_loop(app.state.rate_limiter, settings.rate_limit_sweep_interval_seconds)
    )
    logger.info("Rate limiter sweep launched")

    yield

    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        logger.info("Rate limiter sweep stopped")


app = FastAPI(
    title="Kilo Knowledge Base API",
    description="Document knowledge bases with grounded chat",
    version=__version__,
    redirect_slashes=False,  # Prevent 307 redirects that break HTTPS through proxies
    lifespan=lifespan,
)

# CORS for frontend
origins = [
    "http://localhost:3000",
    "http://localhost:3001",
    "http://localhost:5173",
]

# Add production frontend URL if configured (handle www and non-www)
if settings.frontend_url:
    origins.append(settings.frontend_url)
    if "://www." in settings.frontend_url:
        origins.append(settings.frontend_url.replace("://www.", "://"))
    elif "://" in settings.frontend_url:
        origins.append(settings.frontend_url.replace("://", "://www."))

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "X-Chat-Session-Id",
    ],
)

# Include routers
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(knowledge_bases.router)
app.include_router(files.router)
app.include_router(chat.router)
app.include_router(ratings.router)
app.include_router(usage.router)


def _error_type(status_code: int) -> str:
    if status_code == 429:
        return "rate_limit"
    if status_code == 404:
        return "not_found"
    if status_code == 400:
        return "validation"
    if status_code == 401:
        return "auth"
    if status_code == 403:
        return "quota"
    return "server_error"


# Global exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with consistent format."""
    error_id = str(uuid4())
    content = {"error_type": _error_type(exc.status_code), "error_id": error_id}

    # Rate limit and quota errors carry structured detail
    if isinstance(exc.detail, dict):
        content = {**exc.detail, **content}
    else:
        content["error"] = str(exc.detail)

    logger.warning(
        f"HTTP {exc.status_code} [{error_id}]: {exc.detail} - {request.method} {request.url.path}"
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with field details."""
    error_id = str(uuid4())

    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        message = error["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({"field": field, "message": message})

    content = {
        "error": errors[0]["message"] if errors else "Validation error",
        "error_type": "validation",
        "error_id": error_id,
        "errors": errors,
    }

    logger.warning(
        f"Validation error [{error_id}]: {errors} - {request.method} {request.url.path}"
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=content,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unhandled exceptions."""
    error_id = str(uuid4())

    logger.error(
        f"Unhandled exception [{error_id}]: {type(exc).__name__}: {exc} - "
        f"{request.method} {request.url.path}",
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "error_type": "server_error",
            "error_id": error_id,
        },
    )

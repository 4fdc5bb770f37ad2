"""Global exception handlers for FastAPI."""

import logging

from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return the HTTP error detail and nothing else."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report which fields were rejected without echoing input or internals."""
    fields = sorted(
        {
            ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query"))
            or "unknown"
            for error in exc.errors()
        }
    )
    logger.warning(f"Rejected {request.method} {request.url.path}: invalid {fields}")
    return JSONResponse(
        status_code=422,
        content={"detail": "Invalid request", "fields": fields},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected exceptions; clients only get a generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )

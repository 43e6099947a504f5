"""Centralized FastAPI error handlers."""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.exceptions import RateLimitExceeded, StreamCinemaError

logger = logging.getLogger("errors")


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(RateLimitExceeded)
    async def handle_rate_limited(_request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={
                "error": "Too many requests",
                "kind": exc.error_kind,
                "retryAfter": exc.retry_after,
            },
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(StreamCinemaError)
    async def handle_streamcinema_error(_request: Request, exc: StreamCinemaError):
        if exc.status_code >= 500:
            logger.warning(f"{exc.error_kind}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "kind": exc.error_kind},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid request parameters",
                "kind": "invalid_input",
                "details": jsonable_errors(exc),
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception(f"Unhandled error: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "kind": "internal"},
        )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Reduce pydantic error entries to location + message."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]

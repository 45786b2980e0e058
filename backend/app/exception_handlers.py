"""
Exception handlers for the charging API.

Register these on a FastAPI app instance via `register_exception_handlers(app)`.
Every error response has the shape {"error": <message>, "kind": <kind>}.
"""
import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import is_local_env
from app.core.errors import ChargingError, ErrorKind, GENERIC_MESSAGES

logger = logging.getLogger("plogo")


def _error_response(status_code: int, message: str, kind: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "kind": kind})


async def charging_error_handler(request: Request, exc: ChargingError):
    """Log with operation context, answer with one message per error kind."""
    status_code = exc.http_status
    where = f"{request.method} {request.url.path}"
    if exc.kind in (ErrorKind.EXTERNAL_API, ErrorKind.EXTERNAL_AUTH):
        body = exc.body if isinstance(exc.body, str) else repr(exc.body)
        logger.error(
            f"{exc.kind.value} error on {where}: context={exc.context} "
            f"status={exc.status_hint} message={exc.message} body={body[:1000]}"
        )
    elif exc.kind == ErrorKind.INTERNAL:
        logger.error(f"Internal error on {where}: {exc.message}", exc_info=exc.cause)
    else:
        logger.info(f"{exc.kind.value} error on {where}: {exc.message}")
    return _error_response(status_code, exc.public_message, exc.kind.value)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing input is a 400 validation error."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid request: {field} {first.get('msg', '')}".strip() if field else "Invalid request data"
    logger.info(f"Validation error on {request.method} {request.url.path}: {errors}")
    return _error_response(400, message, ErrorKind.VALIDATION.value)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    kind = {
        401: ErrorKind.AUTHENTICATION,
        403: ErrorKind.AUTHORIZATION,
        404: ErrorKind.NOT_FOUND,
    }.get(exc.status_code, ErrorKind.VALIDATION if exc.status_code < 500 else ErrorKind.INTERNAL)
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error_response(exc.status_code, detail, kind.value)


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)

    # In production, don't leak internal error details to clients
    if is_local_env():
        message = f"Internal server error: {exc}"
    else:
        message = GENERIC_MESSAGES[ErrorKind.INTERNAL]
    return _error_response(500, message, ErrorKind.INTERNAL.value)


def register_exception_handlers(app):
    """Register all exception handlers on the given FastAPI app."""
    app.add_exception_handler(ChargingError, charging_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

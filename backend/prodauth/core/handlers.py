"""Exception handlers translating errors into the JSON error envelope"""

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from prodauth.core.exceptions import BaseAPIException
from prodauth.schemas.response import ErrorResponse

logger = logging.getLogger(__name__)

# Client-side failures are expected traffic; log them below error level.
_EXPECTED_STATUSES = {401, 403, 404, 429}


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    details: Any = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body = ErrorResponse(error=message, details=details, path=request.url.path)
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def retry_after_header(exc: BaseAPIException) -> Optional[Dict[str, str]]:
    """Retry-After for lockouts, in seconds"""
    if exc.status_code != status.HTTP_429_TOO_MANY_REQUESTS:
        return None
    minutes = exc.details.get("remaining_minutes")
    if not minutes:
        return None
    return {"Retry-After": str(int(minutes) * 60)}


async def api_exception_handler(request: Request, exc: BaseAPIException):
    log = logger.warning if exc.status_code in _EXPECTED_STATUSES else logger.error
    log(
        "API Exception: %s",
        exc.message,
        extra={"status_code": exc.status_code, "path": request.url.path, "method": request.method},
    )
    return _error_response(request, exc.status_code, exc.message, exc.details, retry_after_header(exc))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning("Validation error on %s: %s", request.url.path, errors)
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation failed",
        {"errors": errors},
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(
        "Database error: %s",
        exc,
        extra={"path": request.url.path, "traceback": traceback.format_exc()},
    )
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "A database error occurred. Please try again later.",
    )


async def general_exception_handler(request: Request, exc: Exception):
    logger.critical(
        "Unhandled exception: %s",
        exc,
        extra={"path": request.url.path, "traceback": traceback.format_exc()},
    )
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred.")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseAPIException, api_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

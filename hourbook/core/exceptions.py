"""
Global exception handlers.

Routes and services raise ``HTTPException`` for expected failures; these
handlers make the remaining cases consistent: body validation errors become
400s and anything unexpected becomes a generic 500 with the traceback logged
server-side only.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


logger = logging.getLogger(__name__)


def _first_error_message(errors: list) -> str:
    if not errors:
        return "Invalid request"
    err = errors[0]
    loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query"))
    msg = str(err.get("msg", "Invalid value"))
    return f"{loc}: {msg}" if loc else msg


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = _first_error_message(exc.errors())
    logger.warning("Validation error on %s: %s", request.url.path, message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": message})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal Server Error"},
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers with the FastAPI app."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

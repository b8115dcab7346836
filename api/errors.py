"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.exceptions import PermissionDeniedError
from core.errors import (
    AlreadyConvertedError,
    ConfigurationError,
    ConversionError,
    PersistenceError,
)

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return JSONResponse(
                status_code=404,
                content=error_response(
                    ErrorCodes.NOT_FOUND, message, request_id=_request_id(request)
                ).model_dump(mode="json"),
            )
        return JSONResponse(
            status_code=400,
            content=error_response(
                ErrorCodes.INVALID_REQUEST, message, request_id=_request_id(request)
            ).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                str(exc.errors()),
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(PermissionDeniedError)
    async def permission_error_handler(request: Request, exc: PermissionDeniedError):
        return JSONResponse(
            status_code=403,
            content=error_response(
                ErrorCodes.FORBIDDEN, str(exc), request_id=_request_id(request)
            ).model_dump(mode="json"),
        )

    @app.exception_handler(ConversionError)
    async def conversion_error_handler(request: Request, exc: ConversionError):
        if isinstance(exc, AlreadyConvertedError):
            status_code, code = 409, ErrorCodes.ALREADY_CONVERTED
        elif isinstance(exc, ConfigurationError):
            status_code, code = 422, ErrorCodes.CONFIGURATION_ERROR
        elif isinstance(exc, PersistenceError):
            status_code, code = 500, ErrorCodes.PERSISTENCE_ERROR
        else:
            status_code, code = 500, ErrorCodes.CONVERSION_FAILED

        if status_code >= 500:
            logger.error("Conversion error: %s", exc)

        return JSONResponse(
            status_code=status_code,
            content=error_response(code, str(exc), request_id=_request_id(request)).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )

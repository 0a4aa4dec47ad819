"""
Error taxonomy and response envelope handlers
Every failure leaves the API as {"success": false, "message": ...}
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AcademyError(Exception):
    """Base exception for all workflow failures"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthenticationError(AcademyError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class NotFoundError(AcademyError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")


class AccessDeniedError(AcademyError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class LimitExceededError(AcademyError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "Limit exceeded"):
        super().__init__(message)


class ValidationError(AcademyError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Validation failed"):
        super().__init__(message)


class ConflictError(AcademyError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message)


class IntegrityFailure(AcademyError):
    """Payment or webhook integrity check did not hold"""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Integrity check failed"):
        super().__init__(message)


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, **extra},
    )


async def academy_exception_handler(request: Request, exc: AcademyError) -> JSONResponse:
    logger.info(
        "%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message
    )
    return error_response(exc.status_code, exc.message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "Request validation failed", errors=errors
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred")


def register_exception_handlers(app):
    """Register all envelope handlers on the FastAPI app"""
    app.add_exception_handler(AcademyError, academy_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

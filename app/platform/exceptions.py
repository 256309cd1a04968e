import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.platform.response import api_response

logger = logging.getLogger(__name__)


class AuditError(Exception):
    """Base class for audit engine errors."""


class ValidationError(AuditError):
    """Bad input on an audit request (surfaced as 400)."""


class NotFoundError(AuditError):
    """Unknown scan id (surfaced as 404)."""


class SubAuditFailure(AuditError):
    """A single sub-audit failed; recorded as a section placeholder, never surfaced."""


class JobFailure(AuditError):
    """The background job failed outside of any sub-audit."""


class EnrichmentFailure(AuditError):
    """The suggestion generator produced no usable text for a section."""


def add_exception_handlers(app):
    @app.exception_handler(ValidationError)
    async def audit_validation_handler(request: Request, exc: ValidationError):
        return api_response(message=str(exc) or "Invalid request", status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return api_response(message=str(exc) or "Not found", status_code=status.HTTP_404_NOT_FOUND)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

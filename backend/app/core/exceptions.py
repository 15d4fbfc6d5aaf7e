# backend/app/core/exceptions.py
"""
Domain exceptions for the Eventa search API.

Only input validation raises across component boundaries; the search
pipeline itself reports failures as typed error codes inside its results.
Routes turn a DomainException into an HTTPException with
``to_http_exception()`` and the problem+json handlers render it.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception carrying a message, a machine-readable code and details."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "An error occurred processing your request"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={"message": self.message, "code": self.code, "details": self.details},
        )


class ValidationException(DomainException):
    """Bad request input (400)."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class NotFoundException(DomainException):
    """Requested event does not exist (404)."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ServiceException(DomainException):
    """A service operation failed in a way the caller cannot recover from (500)."""


class EmptyQueryException(ValidationException):
    default_message = "Search query cannot be empty"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message, code="ERR_EMPTY_QUERY")


class ProviderNotAllowedException(ValidationException):
    """A caller named an external provider outside the whitelist."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            f"External provider '{provider}' is not allowed",
            code="ERR_EXT_PROVIDER_UNKNOWN",
            details={"provider": provider},
        )


class CoordinatesException(ValidationException):
    def __init__(self) -> None:
        super().__init__("Both lat and lng must be provided together", code="ERR_BAD_COORDINATES")


class RepositoryException(Exception):
    """Data access failed (connection loss, bad query, constraint violation)."""

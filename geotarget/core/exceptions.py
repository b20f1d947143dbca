# geotarget/core/exceptions.py
"""
Domain-specific exceptions for the geotarget engine.

Public resolution and targeting operations catch these internally and degrade
to a documented fallback; they surface only from low-level collaborators
(API client, hierarchy fetches, geolocation sources).
"""

from typing import Any, Dict, Optional


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""


class ServiceException(DomainException):
    """Raised when a service operation fails."""


class ExternalServiceException(ServiceException):
    """Raised when a call to an external HTTP service fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self.status_code = status_code


class DirectoryApiError(ExternalServiceException):
    """Raised when the directory REST API responds with an error or is unreachable."""


class DirectoryNotFoundError(DirectoryApiError, NotFoundException):
    """Raised when the directory API answers 404 for a lookup."""


class GeolocationError(DomainException):
    """Base class for failures acquiring a position fix."""


class GeolocationPermissionDenied(GeolocationError):
    """The user (or platform) refused to share a position."""


class GeolocationUnavailable(GeolocationError):
    """No position source is available or it could not produce a fix."""

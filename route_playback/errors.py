"""
Error Types for Vehicle Route Playback

Validation problems are raised before any request is attempted; service and
data-quality problems are raised by the Route Data Service client and turned
into a user-facing message by the route store.
"""

from typing import Optional


class RouteError(Exception):
    """Base class for all route playback errors."""


class ValidationError(RouteError):
    """Required inputs (trip/car id, date range) are missing."""


class ServiceError(RouteError):
    """Network failure or non-success response from the Route Data Service."""

    def __init__(self, message: str, server_error: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.server_error = server_error
        self.status_code = status_code


class DataQualityError(RouteError):
    """A successful response that carried zero usable coordinates."""

    def __init__(self, message: str, server_error: Optional[str] = None):
        super().__init__(message)
        self.server_error = server_error

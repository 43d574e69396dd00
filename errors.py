"""
Error taxonomy shared by the services and the HTTP layer.

Every error knows its HTTP status and renders to the same JSON body:
``{"error": <message>}`` plus ``"details"`` when there is something to add.
"""

from typing import Any, Dict, Optional


class CountryApiError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    error: str = "Internal server error"

    def __init__(self, error: Optional[str] = None, details: Any = None):
        self.error = error or self.error
        self.details = details
        super().__init__(self.error)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class UpstreamUnavailable(CountryApiError):
    """An external data source failed, timed out or sent an unusable body."""

    status_code = 503
    error = "External data source unavailable"

    def __init__(self, upstream: str):
        self.upstream = upstream
        super().__init__(details=f"Could not fetch data from {upstream}")


class ValidationFailed(CountryApiError):
    status_code = 400
    error = "Validation failed"

    def __init__(self, details: Dict[str, str]):
        super().__init__(details=details)


class NotFound(CountryApiError):
    status_code = 404
    error = "Country not found"


class InternalError(CountryApiError):
    status_code = 500
    error = "Internal server error"

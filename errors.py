"""Error types shared by the sync and search endpoints."""

from __future__ import annotations

from typing import Any, Dict, Optional


class SearchServiceError(Exception):
    """Base error carrying the HTTP status the API should answer with."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigError(SearchServiceError):
    """A required credential or connection setting is missing."""

    status_code = 500


class AuthError(SearchServiceError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class UpstreamError(SearchServiceError):
    """The CMS API answered with a non-success status or could not be reached."""

    status_code = 500

    def __init__(self, message: str, status: Optional[int] = None, details: Optional[str] = None):
        super().__init__(message, details=details)
        self.status = status


class ValidationError(SearchServiceError):
    status_code = 400


class NotFoundError(SearchServiceError):
    status_code = 404

"""Error taxonomy shared by the ask pipeline and the HTTP surface."""

from __future__ import annotations

from typing import Any, Dict, Optional

class CampusDeskError(Exception):
    """Base class for errors that map onto an HTTP status and JSON body."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        details: Optional[str] = None,
        suggestion: Optional[str] = None,
        status_code: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.suggestion = suggestion
        if status_code is not None:
            self.status_code = status_code
        self.extra = dict(extra or {})

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        if self.suggestion is not None:
            payload["suggestion"] = self.suggestion
        payload.update(self.extra)
        return payload

class ValidationError(CampusDeskError):
    """Raised when a required input is missing."""

    status_code = 400

class NotFoundError(CampusDeskError):
    """Raised when a user or session does not exist."""

    status_code = 404

class ConfigurationError(CampusDeskError):
    """Raised when no usable API key is configured."""

    status_code = 400

class UpstreamUnavailable(CampusDeskError):
    """Raised when no candidate Gemini model could be initialised."""

    status_code = 400

class GeminiCallError(CampusDeskError):
    """A classified Gemini failure; ``status_code`` comes from the taxonomy."""

    def __init__(self, message: str, *, category: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.category = category


__all__ = [
    "CampusDeskError",
    "ConfigurationError",
    "GeminiCallError",
    "NotFoundError",
    "UpstreamUnavailable",
    "ValidationError",
]

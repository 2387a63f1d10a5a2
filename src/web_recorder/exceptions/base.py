"""
Base exceptions for Web Recorder.

Every error carries a message for people and a ``details`` map for tools;
the server turns both into the ``{"success": false, ...}`` body the page
script and API clients read.
"""

from typing import Any, Dict


def jsonable(value: Any) -> Any:
    """Reduce error details to JSON-safe values, stringifying the rest."""
    if isinstance(value, dict):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class WebRecorderError(Exception):
    """
    Root of the recorder's error hierarchy.

    Attributes:
        message: What went wrong, in words
        details: Ids and values involved (session id, field, browser kind...)
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message

    def to_response(self) -> Dict[str, Any]:
        """Body of the HTTP error response."""
        return {"success": False, "error": self.message, "details": jsonable(self.details)}


class ConfigurationError(WebRecorderError):
    """
    Settings could not be loaded.

    Raised for a missing or malformed YAML file and for values that fail
    validation after the file, environment and CLI layers are merged.
    """
    pass

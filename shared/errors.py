"""
Shared error handling for the Recipe Access Layer.
"""

from typing import Dict, Any, Optional


class AccessLayerException(Exception):
    """Base exception for the Recipe Access Layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(AccessLayerException):
    """Missing or invalid client configuration. Fatal at startup."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class ValidationError(AccessLayerException):
    """Request body rejected before it was sent."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class CredentialResolutionError(AccessLayerException):
    """The credential provider failed. Recovered locally, never propagated past resolution."""

    def __init__(self, message: str = "Credential resolution failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("CREDENTIAL_RESOLUTION_ERROR", message, details)


class NetworkError(AccessLayerException):
    """Transport failure or timeout before a response was received."""

    def __init__(self, message: str = "Network error", details: Optional[Dict[str, Any]] = None):
        super().__init__("NETWORK_ERROR", message, details)


class HttpError(AccessLayerException):
    """Non-2xx response from the API."""

    def __init__(self, status: int, message: Optional[str] = None, body: Any = None,
                 details: Optional[Dict[str, Any]] = None):
        self.status = status
        self.body = body
        merged = {"status_code": status}
        merged.update(details or {})
        super().__init__("HTTP_ERROR", message or f"HTTP {status}", merged)


class DecodeError(AccessLayerException):
    """Response payload could not be decoded into the expected shape."""

    def __init__(self, message: str = "Malformed response payload", details: Optional[Dict[str, Any]] = None):
        super().__init__("DECODE_ERROR", message, details)

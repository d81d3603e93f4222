"""
Custom exceptions for RecordLens.

Provides a hierarchy of exceptions for better error handling and debugging.
"""

from typing import Any, Dict, Optional


class RecordLensError(Exception):
    """Base exception for all RecordLens errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(RecordLensError):
    """Raised when there are configuration issues."""

    pass


class DecodeError(RecordLensError):
    """An envelope is malformed or does not decrypt to usable text."""

    pass


class DataAccessError(RecordLensError):
    """Base class for data access errors."""

    pass


class ApiError(DataAccessError):
    """Backend REST API related errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        path: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.path = path
        if status_code is not None:
            self.details.setdefault("status_code", status_code)
        if path is not None:
            self.details.setdefault("path", path)


class CircuitBreakerError(DataAccessError):
    """Circuit breaker is open, preventing calls."""

    pass

"""
Custom exceptions for the Markbook engine.
"""

from typing import Optional, Any, Dict


class MarkbookException(Exception):
    """Base exception for all Markbook-related errors."""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ValidationError(MarkbookException):
    """Raised when a mark, absence count or coordinate is rejected."""
    pass


class NotFoundError(MarkbookException):
    """Raised when a student, class, term, sequence or subject is unknown."""
    pass


class ConcurrencyError(MarkbookException):
    """Raised when a rank batch is already running for the same coordinate."""
    pass


class PersistenceError(MarkbookException):
    """Raised when the durable ledger cannot be written or read."""
    pass


class ConfigurationError(MarkbookException):
    """Raised when configuration is invalid."""
    pass

"""
Error taxonomy for the ingestion pipeline.

Every failure the pipeline can recover from (by logging and moving on)
derives from CatalogError. Row conflicts are not errors and never appear here.
"""

from typing import Any, Dict, Optional


class CatalogError(Exception):
    """Base class for pipeline failures."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Args:
            message: Human readable description
            details: Structured context attached to log lines
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)


class TransportError(CatalogError):
    """Connection, timeout or HTTP status failure talking to the remote API."""
    pass


class DecodeError(CatalogError):
    """Response body does not match the expected envelope."""
    pass


class ApiError(DecodeError):
    """Remote API answered with an error envelope instead of a result."""

    def __init__(self, message: str, code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        self.code = code
        super().__init__(message, details)


class StoreError(CatalogError):
    """Any storage failure other than a natural-key conflict."""
    pass


class DeadlineExceeded(CatalogError):
    """The run was cancelled or ran past its deadline."""
    pass


class NoConsumersError(CatalogError):
    """Every worker has exited; a handoff can never be accepted."""
    pass

"""
Exception hierarchy for the DEX analytics engine.

Expected failures (missing token, empty pool, no TWAP data) are returned
as Result values, not raised. These exceptions cover faults: bad
configuration, corrupt snapshots, collaborator outages, and unwrapping a
failed result.
"""

from typing import Any, Dict, Optional


class AnalyticsError(Exception):
    """Base exception for all DEX analytics errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(AnalyticsError):
    """Raised when there are configuration-related issues."""

    pass


class DataError(AnalyticsError):
    """Raised when pool, token or price-history data is malformed."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.source = source
        self.address = address


class NetworkError(AnalyticsError):
    """Raised when a collaborator (RPC, store, cache backend) is unreachable."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class ResultError(AnalyticsError):
    """Raised when the value of a failed Result is requested."""

    def __init__(self, code: str, message: str):
        super().__init__(f"{code}: {message}", {"code": code})
        self.code = code

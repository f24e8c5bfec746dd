"""
Error taxonomy for the ingestion pipeline.

Fetchers capture these on result objects rather than letting them escape a
batch; only the financial query API raises DataUnavailable to its caller.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Kind of failure attached to fetch and scrape results."""
    NETWORK = "network"
    PARSE = "parse"
    POLICY_DENIED = "policy_denied"
    NOT_FOUND = "not_found"
    DATA_UNAVAILABLE = "data_unavailable"


class IngestionError(Exception):
    """Base exception for ingestion operations."""

    kind = ErrorKind.NETWORK

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NetworkError(IngestionError):
    """Timeout, refused connection or a retryable HTTP status."""
    kind = ErrorKind.NETWORK


class ParseError(IngestionError):
    """Malformed XML/HTML or a document without the expected fields."""
    kind = ErrorKind.PARSE


class PolicyDenied(IngestionError):
    """robots.txt disallows the URL for our user agent."""
    kind = ErrorKind.POLICY_DENIED


class NotFound(IngestionError):
    """404 or an empty result where content was expected."""
    kind = ErrorKind.NOT_FOUND


class DataUnavailable(IngestionError):
    """No fresh, cached or persisted financial data for the query."""
    kind = ErrorKind.DATA_UNAVAILABLE

"""
Services module for logging, ingestion, financial data and scheduling.
"""

from .logging_service import setup_logging, get_logger

__all__ = [
    "setup_logging",
    "get_logger",
]

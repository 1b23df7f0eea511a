"""
Core utilities and configuration for the product insights ETL system.

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import get_session
    from core.exceptions import CSVExtractionError, LoadError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "get_session",
    "setup_logging",
    # Exceptions
    "ETLException",
    "ExtractionError",
    "CSVExtractionError",
    "EmptyInputError",
    "TransformationError",
    "ValidationError",
    "LoadError",
    "DatabaseError",
    "UpsertError",
    "DuplicateKeyError",
    "JobTrackingError",
    "JobNotFoundError",
    "InvalidJobTransitionError",
]

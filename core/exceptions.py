"""
Custom exceptions for the product ETL pipeline with structured error context.

This module provides the exception hierarchy used throughout the pipeline.
Each exception carries context information for debugging and for the
bounded error samples returned to callers.

Exception Hierarchy:
    ETLException (base)
    ├── ExtractionError
    │   ├── CSVExtractionError
    │   └── EmptyInputError
    ├── TransformationError
    │   └── ValidationError
    ├── LoadError
    │   ├── DatabaseError
    │   ├── UpsertError
    │   └── DuplicateKeyError
    └── JobTrackingError
        ├── JobNotFoundError
        └── InvalidJobTransitionError

Row-level problems (a bad price, a missing product name) are never raised
out of the pipeline; they are collected as messages. Only run-level
failures surface as exceptions.
"""

from typing import Optional, Dict, Any
from datetime import datetime


class ETLException(Exception):
    """
    Base exception for all ETL-related errors.
    
    Attributes:
        message: Human-readable error message
        context: Additional context information (file name, job id, etc.)
        original_exception: The original exception that was caught (if any)
    """
    
    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()
        
        self.context["error_timestamp"] = self.timestamp.isoformat()
        
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception
    
    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"
        
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"
        
        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"
        
        return base_msg
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for data extraction failures."""
    pass


class CSVExtractionError(ExtractionError):
    """
    Raised when delimited input cannot be read at all.
    
    Context should include:
        - file_name: Name of the uploaded file or path
        - encoding: Encoding used to decode the input
        - delimiter: Delimiter in use (if detected)
    """
    pass


class EmptyInputError(ExtractionError):
    """Raised when an upload parses cleanly but contains no data rows."""
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(ETLException):
    """Base exception for transformation failures that abort the whole call."""
    pass


class ValidationError(TransformationError):
    """
    Raised when a single record fails validation.
    
    Caught per row by the transformer and turned into an error message.
    
    Context should include:
        - row: 1-based row number
        - field_name: Name of the field that failed validation
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for data loading failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when database operations fail.
    
    Context should include:
        - operation: Type of database operation (INSERT, UPDATE, UPSERT, DELETE)
        - table_name: Name of the table
    """
    pass


class UpsertError(LoadError):
    """
    Exception raised when an upsert operation fails.
    
    Context should include:
        - product_id: Key of the record being upserted
        - batch_index: Index of the batch
    """
    pass


class DuplicateKeyError(LoadError):
    """Raised by a repository when a plain insert hits the unique product_id."""
    pass


# ============================================================================
# Job Tracking Errors
# ============================================================================

class JobTrackingError(ETLException):
    """
    Exception raised when the job log cannot be created or updated.
    
    Context should include:
        - job_id: Identifier of the ETL job
        - operation: Operation that failed (create, update, read)
    """
    pass


class JobNotFoundError(JobTrackingError):
    """Raised when a job id does not exist in the job log."""
    pass


class InvalidJobTransitionError(JobTrackingError):
    """Raised when a status change would leave a terminal state or skip the lifecycle."""
    pass

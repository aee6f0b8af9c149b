"""
Data Management Operations Exceptions

Granular exception hierarchy for data management operations,
providing clear error reporting and enabling precise error handling
in external projects.

Document-level errors shared with the rest of the package (not found,
version conflicts, exhausted retries) live in index_dao_exceptions and are
re-exported here so data operation callers need a single import.
"""

from typing import List, Any, Optional, Dict

from index_dao_exceptions import (
    IndexDAOError,
    DocumentError,
    DocumentNotFoundError,
    VersionConflictError,
    ConcurrencyExhaustedError
)


class DataOperationError(IndexDAOError):
    """
    Base exception for all data management operation errors.

    This serves as the parent class for all data operation-specific
    exceptions, allowing external projects to catch all data operation
    errors with a single except clause if desired.
    """
    pass


class BatchPartialFailureError(DataOperationError):
    """
    Raised on demand when a bulk batch partially succeeds.

    Bulk submissions never raise for per-item failures; they return a
    BulkResult. Calling ``BulkResult.raise_for_failures()`` converts a result
    with failed items into this exception.

    Attributes:
        message: Human-readable error message
        successful_count: Number of items that succeeded
        failed_count: Number of items that failed
        failed_ids: List of ids for items that failed (None for server-generated ids)
        error_details: Dictionary mapping item positions to error messages

    Example:
        ```python
        try:
            dao.bulk(build).raise_for_failures()
        except BatchPartialFailureError as e:
            logger.error(
                f"Partial failure: {e.successful_count} succeeded, "
                f"{e.failed_count} failed"
            )
            for position, error in e.error_details.items():
                logger.error(f"Item {position} failed: {error}")
        ```
    """

    def __init__(
        self,
        message: str,
        successful_count: int,
        failed_count: int,
        failed_ids: List[Any],
        error_details: Optional[Dict[Any, str]] = None
    ):
        """
        Initialize partial failure exception.

        Args:
            message: Human-readable error message
            successful_count: Number of items that succeeded
            failed_count: Number of items that failed
            failed_ids: List of ids for failed items
            error_details: Optional mapping of item positions to error messages
        """
        super().__init__(message)
        self.successful_count = successful_count
        self.failed_count = failed_count
        self.failed_ids = failed_ids
        self.error_details = error_details or {}

    @property
    def total_count(self) -> int:
        """Total number of items in the batch."""
        return self.successful_count + self.failed_count

    @property
    def success_rate(self) -> float:
        """Success rate as a percentage (0-100)."""
        if self.total_count == 0:
            return 0.0
        return (self.successful_count / self.total_count) * 100.0


class BulkBufferConsumedError(DataOperationError):
    """
    Raised when a bulk buffer is used after it was submitted.

    Each buffer represents exactly one bulk request; build a new buffer
    for the next batch.
    """
    pass


class DocumentSerializationError(DataOperationError):
    """
    Raised when a codec cannot encode a value or decode a stored payload.

    Attributes:
        doc_id: Id of the document being encoded or decoded, if known
    """

    def __init__(self, message: str, doc_id: Optional[str] = None):
        super().__init__(message)
        self.doc_id = doc_id


__all__ = [
    'DataOperationError',
    'BatchPartialFailureError',
    'BulkBufferConsumedError',
    'DocumentSerializationError',
    'DocumentError',
    'DocumentNotFoundError',
    'VersionConflictError',
    'ConcurrencyExhaustedError',
]

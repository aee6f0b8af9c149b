"""
Index DAO Exceptions

This module defines custom exceptions for the Index DAO package
to provide clear error handling and reporting.

Document-level errors (not found, version conflicts) are recoverable and
expected; callers branch on them. Transport failures and exhausted retry
budgets are hard failures of the call.
"""

from typing import Optional


class IndexDAOError(Exception):
    """Base exception for all Index DAO errors"""
    pass


class ConfigurationError(IndexDAOError):
    """Raised when configuration is invalid or missing"""
    pass


class IndexNotFoundError(IndexDAOError):
    """Raised when the target index does not exist"""
    pass


class QueryError(IndexDAOError):
    """Raised when a query operation fails"""
    pass


class DocumentError(IndexDAOError):
    """
    Base exception for errors tied to a single document identity.

    Attributes:
        index: Name of the index holding the document
        doc_id: Id of the document, if known
    """

    def __init__(self, message: str, index: Optional[str] = None, doc_id: Optional[str] = None):
        super().__init__(message)
        self.index = index
        self.doc_id = doc_id


class DocumentNotFoundError(DocumentError):
    """Raised when an identity has no current document"""
    pass


class VersionConflictError(DocumentError):
    """
    Raised when a conditional single-document write is rejected.

    This covers both a stale expected version (seq_no/primary_term mismatch)
    and create semantics rejecting an id that already exists.
    """
    pass


class ConcurrencyExhaustedError(DocumentError):
    """
    Raised when an optimistic update ran out of retries while conflicts persisted.

    Attributes:
        attempts: Number of read-transform-write attempts that were made
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        index: Optional[str] = None,
        doc_id: Optional[str] = None
    ):
        super().__init__(message, index=index, doc_id=doc_id)
        self.attempts = attempts


class TransportFailureError(IndexDAOError):
    """
    Raised for network, timeout, or protocol-level failures reported by the engine.

    Attributes:
        status_code: HTTP status reported by the engine, if any
        error_type: Engine error type (e.g. "search_phase_execution_exception"), if any
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type



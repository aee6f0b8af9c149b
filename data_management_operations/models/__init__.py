"""
Data Models

Contains the models for document identities, versions and operation results.
"""

from .entities import (
    OperationStatus,
    BulkOperationType,
    DocumentIdentity,
    DocumentVersion,
    TypedRecord,
    IndexResult,
    DeleteResult,
    BulkItem,
    BulkItemError,
    BulkOutcome,
    BulkResult
)

__all__ = [
    'OperationStatus',
    'BulkOperationType',
    'DocumentIdentity',
    'DocumentVersion',
    'TypedRecord',
    'IndexResult',
    'DeleteResult',
    'BulkItem',
    'BulkItemError',
    'BulkOutcome',
    'BulkResult'
]

"""
Data Management Operations Module

Provides the document-level building blocks of the Index DAO:
- Pluggable codecs between domain values and stored JSON
- Optimistic-concurrency updates with bounded retry on version conflicts
- Bulk batching with per-item outcomes in submission order
- Argument validation (index names, document ids, version tokens)
- Configurable operation parameters (retries, refresh, batch limits)
- Performance timing and monitoring

Typical usage from external projects:

    from data_management_operations import (
        DataOperationConfig,
        PydanticModelCodec,
        BatchPartialFailureError
    )

    config = DataOperationConfig(default_max_update_retries=5, refresh="wait_for")
    dao = client.crud_dao("things", PydanticModelCodec(Thing), config=config)

    try:
        dao.bulk(lambda b: [b.index(t.name, t) for t in things]).raise_for_failures()
    except BatchPartialFailureError as e:
        print(f"Partial failure: {e.successful_count} succeeded, {e.failed_count} failed")
        for doc_id in e.failed_ids:
            print(f"Failed document: {doc_id}")
"""

# Configuration
from .data_ops_config import DataOperationConfig

# Data models
from .models.entities import (
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

# Core components
from .core.codec import ModelCodec, PydanticModelCodec, JsonDictCodec
from .core.validator import DataValidator, InvalidIndexNameError, InvalidDocumentIdError
from .core.optimistic import OptimisticUpdateExecutor
from .core.bulk import BulkOperationBuffer

# Timing utilities
from .utils.timing import (
    PerformanceTimer,
    TimingResult,
    BatchTimingResult
)

# Exceptions
from .data_ops_exceptions import (
    DataOperationError,
    BatchPartialFailureError,
    BulkBufferConsumedError,
    DocumentSerializationError,
    DocumentError,
    DocumentNotFoundError,
    VersionConflictError,
    ConcurrencyExhaustedError
)

__all__ = [
    # Configuration
    'DataOperationConfig',
    # Models
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
    'BulkResult',
    # Core components
    'ModelCodec',
    'PydanticModelCodec',
    'JsonDictCodec',
    'DataValidator',
    'InvalidIndexNameError',
    'InvalidDocumentIdError',
    'OptimisticUpdateExecutor',
    'BulkOperationBuffer',
    # Utilities
    'PerformanceTimer',
    'TimingResult',
    'BatchTimingResult',
    # Exceptions
    'DataOperationError',
    'BatchPartialFailureError',
    'BulkBufferConsumedError',
    'DocumentSerializationError',
    'DocumentError',
    'DocumentNotFoundError',
    'VersionConflictError',
    'ConcurrencyExhaustedError'
]

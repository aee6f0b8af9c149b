"""
Core Data Management Components

Contains the core classes for document operations in Elasticsearch:
codecs, validation, optimistic updates and bulk batching.
"""

from .codec import ModelCodec, PydanticModelCodec, JsonDictCodec
from .validator import DataValidator, InvalidIndexNameError, InvalidDocumentIdError
from .optimistic import OptimisticUpdateExecutor
from .bulk import BulkOperationBuffer

__all__ = [
    'ModelCodec',
    'PydanticModelCodec',
    'JsonDictCodec',
    'DataValidator',
    'InvalidIndexNameError',
    'InvalidDocumentIdError',
    'OptimisticUpdateExecutor',
    'BulkOperationBuffer'
]

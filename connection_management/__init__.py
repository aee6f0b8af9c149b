"""
Connection Management Module

This module provides connection management for Elasticsearch, shared by all
IndexDAO instances in a process.

Key capabilities:
- Process-wide, reference-counted sharing of the sync and async clients
- A single translation point from client exceptions to the package taxonomy
- Both synchronous and asynchronous operation support
- A background worker pool for fire-and-forget requests (scroll cleanup)
- Proper resource cleanup to prevent connection leaks
"""

from .connection_manager import ConnectionManager, response_body, translate_transport_error
from .connection_pool import ElasticsearchClientPool
from .connection_exceptions import (
    ConnectionError,
    ConnectionTimeoutError,
    ConnectionClosedError,
    ConnectionInitializationError,
    ServerUnavailableError
)

__all__ = [
    'ConnectionManager',
    'ElasticsearchClientPool',
    'translate_transport_error',
    'response_body',
    'ConnectionError',
    'ConnectionTimeoutError',
    'ConnectionClosedError',
    'ConnectionInitializationError',
    'ServerUnavailableError',
]

"""
Index DAO - Typed Elasticsearch Document Access

A production-ready access layer for storing, retrieving, searching and
updating typed domain objects in Elasticsearch indices. It hides the
request/response protocol, optimistic concurrency bookkeeping, bulk
batching and scroll pagination behind one object per index, with blocking
and asyncio variants of every operation.
"""

from .dao import IndexDAO
from .client import IndexDAOClient

__version__ = "0.1.0"

__all__ = ['IndexDAO', 'IndexDAOClient', '__version__']

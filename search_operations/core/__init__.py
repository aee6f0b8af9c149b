"""
Core Search Components

This module provides the result cursors and exceptions for search operations.
"""

from .search_ops_exceptions import (
    SearchError,
    InvalidSearchParametersError,
    SearchCursorClosedError
)
from .cursor import SearchHit, SearchResults, AsyncSearchResults

__all__ = [
    'SearchHit',
    'SearchResults',
    'AsyncSearchResults',
    'SearchError',
    'InvalidSearchParametersError',
    'SearchCursorClosedError',
]

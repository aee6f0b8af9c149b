"""
Search Operations Exceptions

This module defines custom exceptions for search operations in Elasticsearch,
providing clear error handling and reporting for search-related issues.
"""

from index_dao_exceptions import QueryError


class SearchError(QueryError):
    """Base exception for all search-related errors"""
    pass


class InvalidSearchParametersError(SearchError, ValueError):
    """Raised when search parameters are invalid"""
    pass


class SearchCursorClosedError(SearchError):
    """Raised when a scrolled result set is iterated a second time"""
    pass

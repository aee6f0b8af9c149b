"""
Search Operations Module

This module provides search over one index with typed, lazily decoded results:
- Structured queries, complete bodies, or raw JSON pasted from a console
- Single-page searches that can be iterated repeatedly
- Scrolled searches streamed page by page as the consumer advances
- Automatic release of scroll contexts on exhaustion or early abandonment
- Blocking and asyncio variants with identical semantics
"""

# Core exports
from .core import (
    SearchHit,
    SearchResults,
    AsyncSearchResults,
    SearchError,
    InvalidSearchParametersError,
    SearchCursorClosedError,
)

# Configuration exports
from .config import SearchOptions

__all__ = [
    # Core
    'SearchHit',
    'SearchResults',
    'AsyncSearchResults',
    # Configuration
    'SearchOptions',
    # Exceptions
    'SearchError',
    'InvalidSearchParametersError',
    'SearchCursorClosedError',
]

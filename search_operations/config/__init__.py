"""
Search Configuration Module

This module provides the option struct for search requests.
"""

from .options import SearchOptions

__all__ = ['SearchOptions']

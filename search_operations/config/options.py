"""
Search Options

This module defines the option struct that describes one search request:
the query payload (structured, full body or raw JSON text), paging,
scrolling, sorting and what each hit carries.
"""

import json
import re
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Optional, Union

from search_operations.core.search_ops_exceptions import InvalidSearchParametersError

# Elasticsearch time units accepted for scroll keep-alive values
_TIME_VALUE = re.compile(r"^\d+(d|h|m|s|ms|micros|nanos)$")


@dataclass
class SearchOptions:
    """
    Options for a single search.

    At most one of ``query``, ``body`` and ``raw_source`` may be given. With
    none of them the search matches all documents.

    Attributes:
        query: Query clause, e.g. {"match": {"name": "emu"}}
        body: Complete search body, passed through unchanged
        raw_source: Search body as JSON text, e.g. pasted from a developer console
        size: Hits per page (per scroll page when scrolling)
        scroll: Keep-alive for a scrolled search, e.g. "1m". None disables scrolling
        sort: Sort clauses
        seq_no_primary_term: Include version tokens in hits (needed for conditional writes)
        track_total_hits: Passed through; True counts all matches exactly
        source: _source filtering (False, a field list, or an includes/excludes dict)
    """
    query: Optional[Dict[str, Any]] = None
    body: Optional[Dict[str, Any]] = None
    raw_source: Optional[str] = None
    size: Optional[int] = None
    scroll: Optional[str] = None
    sort: Optional[List[Any]] = None
    seq_no_primary_term: bool = True
    track_total_hits: Optional[Union[bool, int]] = True
    source: Optional[Union[bool, List[str], Dict[str, Any]]] = None

    def __post_init__(self):
        """Validate configuration after initialization"""
        given = [name for name in ("query", "body", "raw_source") if getattr(self, name) is not None]
        if len(given) > 1:
            raise InvalidSearchParametersError(
                f"Only one of query, body and raw_source may be set, got {given}"
            )
        if self.size is not None and self.size < 0:
            raise InvalidSearchParametersError("size must be non-negative")
        if self.scroll is not None and not _TIME_VALUE.match(self.scroll):
            raise InvalidSearchParametersError(f"scroll must be a time value like '1m', got '{self.scroll}'")
        if self.raw_source is not None:
            self._parse_raw_source()

    @property
    def scrolling(self) -> bool:
        return self.scroll is not None

    def _parse_raw_source(self) -> Dict[str, Any]:
        try:
            parsed = json.loads(self.raw_source)
        except ValueError as e:
            raise InvalidSearchParametersError(f"raw_source is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise InvalidSearchParametersError("raw_source must be a JSON object")
        return parsed

    def with_overrides(self, **overrides: Any) -> "SearchOptions":
        """Copy with some fields replaced; unknown names raise InvalidSearchParametersError."""
        unknown = set(overrides) - {f.name for f in fields(self)}
        if unknown:
            raise InvalidSearchParametersError(f"Unknown search options: {sorted(unknown)}")
        return replace(self, **overrides)

    def to_body(self, default_page_size: Optional[int] = None) -> Dict[str, Any]:
        """
        Build the request body.

        Explicit options override the same keys in ``body``/``raw_source``;
        ``default_page_size`` only applies when neither sets a size.
        """
        if self.raw_source is not None:
            request = self._parse_raw_source()
        elif self.body is not None:
            request = dict(self.body)
        elif self.query is not None:
            request = {"query": self.query}
        else:
            request = {"query": {"match_all": {}}}

        if self.size is not None:
            request["size"] = self.size
        elif default_page_size is not None:
            request.setdefault("size", default_page_size)
        if self.sort is not None:
            request["sort"] = self.sort
        if self.source is not None:
            request["_source"] = self.source
        if self.seq_no_primary_term:
            request["seq_no_primary_term"] = True
        if self.track_total_hits is not None:
            request.setdefault("track_total_hits", self.track_total_hits)
        return request

"""
Data Validator

Provides validation utilities for the arguments of DAO operations.
Catches malformed index names, document ids and retry bounds before any
request is sent, so callers get a precise error instead of an engine
response.

Typical usage from external projects:

    from data_management_operations import DataValidator

    DataValidator.validate_index_name("orders-2024")
    DataValidator.validate_doc_id("order-1")
"""

import logging
import re
from typing import Any, Optional

from index_dao_exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Elasticsearch index naming rules
_MAX_INDEX_NAME_BYTES = 255
_INVALID_INDEX_CHARS = set('\\/*?"<>| ,#:')
_INVALID_INDEX_PREFIXES = ("-", "_", "+")

# Document ids are limited to 512 bytes by the engine
_MAX_DOC_ID_BYTES = 512

_WHITESPACE = re.compile(r"\s")


class InvalidIndexNameError(ConfigurationError, ValueError):
    """Raised when an index name breaks the engine's naming rules"""
    pass


class InvalidDocumentIdError(ValueError):
    """Raised when a document id is empty, not a string, or too long"""
    pass


class DataValidator:
    """
    Validates arguments before they are sent to Elasticsearch.

    All checks are class methods without state, so the validator can be
    used directly without instantiation.
    """

    @classmethod
    def validate_index_name(cls, index_name: Any) -> str:
        """
        Validate an index name against Elasticsearch naming rules.

        Rules:
        - Non-empty string, lowercase only
        - No whitespace and none of the characters \\ / * ? " < > | , # :
        - Must not start with -, _ or +
        - Must not be "." or ".."
        - At most 255 bytes when UTF-8 encoded

        Args:
            index_name: The name to validate

        Returns:
            The validated name

        Raises:
            InvalidIndexNameError: If any rule is broken
        """
        if not isinstance(index_name, str) or not index_name:
            raise InvalidIndexNameError("Index name must be a non-empty string")

        problems = []
        if index_name != index_name.lower():
            problems.append("must be lowercase")
        if index_name in (".", ".."):
            problems.append("cannot be '.' or '..'")
        if index_name.startswith(_INVALID_INDEX_PREFIXES):
            problems.append(f"cannot start with any of {list(_INVALID_INDEX_PREFIXES)}")
        bad_chars = sorted(set(index_name) & _INVALID_INDEX_CHARS)
        if bad_chars:
            problems.append(f"contains invalid characters {bad_chars}")
        if _WHITESPACE.search(index_name):
            problems.append("contains whitespace")
        if len(index_name.encode("utf-8")) > _MAX_INDEX_NAME_BYTES:
            problems.append(f"is longer than {_MAX_INDEX_NAME_BYTES} bytes")

        if problems:
            message = f"Invalid index name '{index_name}': " + "; ".join(problems)
            logger.warning(message)
            raise InvalidIndexNameError(message)

        return index_name

    @classmethod
    def validate_doc_id(cls, doc_id: Any, allow_none: bool = False) -> Optional[str]:
        """
        Validate a document id.

        Args:
            doc_id: The id to validate
            allow_none: Accept None, meaning the server generates the id

        Returns:
            The validated id (or None when allowed)

        Raises:
            InvalidDocumentIdError: If the id is missing, empty, not a string or too long
        """
        if doc_id is None:
            if allow_none:
                return None
            raise InvalidDocumentIdError("Document id is required")

        if not isinstance(doc_id, str):
            raise InvalidDocumentIdError(f"Document id must be a string, got {type(doc_id).__name__}")

        if not doc_id:
            raise InvalidDocumentIdError("Document id must not be empty")

        if len(doc_id.encode("utf-8")) > _MAX_DOC_ID_BYTES:
            raise InvalidDocumentIdError(f"Document id is longer than {_MAX_DOC_ID_BYTES} bytes")

        return doc_id

    @classmethod
    def validate_version(cls, seq_no: Optional[int], primary_term: Optional[int]) -> None:
        """
        Check that a version precondition is either fully given or absent.

        Raises:
            ValueError: If only one half of the (seq_no, primary_term) pair is set,
                        or a value is negative
        """
        if (seq_no is None) != (primary_term is None):
            raise ValueError("seq_no and primary_term must be given together")
        if seq_no is not None and (seq_no < 0 or primary_term < 1):
            raise ValueError(f"Invalid version token seq_no={seq_no}, primary_term={primary_term}")

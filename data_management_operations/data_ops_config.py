"""
Data Management Operations Configuration

Centralized configuration for DAO operations, providing a single source of
truth for the tunable parameters of optimistic updates, bulk batching,
refresh behaviour and timing.

This configuration can be customized by external projects to match their
specific requirements and deployment environments.
"""

from dataclasses import dataclass, fields
from typing import Dict, Any, Optional
import logging

from config import IndexDAOSettings, RefreshPolicy

logger = logging.getLogger(__name__)


@dataclass
class DataOperationConfig:
    """
    Configuration for DAO operations against a single index.

    Attributes:
        default_max_update_retries: Additional attempts an optimistic update makes
                                    after a version conflict when the caller does
                                    not pass max_retries. 0 means a single attempt.
        conflict_retry_delay: Seconds to wait between optimistic update attempts.
        refresh: Default refresh policy sent with writes ("true", "false", "wait_for").
        max_bulk_items: Maximum number of items accepted in one bulk submission.
        default_page_size: Search page size used when a search does not set one.
                           None leaves the engine default in place.
        enable_timing: Whether to record timing results for operations.
        timing_history_size: Number of timing results kept in memory.

    Example:
        ```python
        config = DataOperationConfig(
            default_max_update_retries=10,
            refresh="wait_for"
        )
        dao = IndexDAO("things", codec, conn_mgr, config=config)
        ```
    """

    # Optimistic concurrency
    default_max_update_retries: int = 2
    conflict_retry_delay: float = 0.0

    # Writes
    refresh: str = RefreshPolicy.FALSE.value
    max_bulk_items: int = 10000

    # Search
    default_page_size: Optional[int] = None

    # Performance monitoring
    enable_timing: bool = True
    timing_history_size: int = 1000

    def __post_init__(self):
        """Validate configuration parameters after initialization."""
        if isinstance(self.refresh, RefreshPolicy):
            self.refresh = self.refresh.value
        elif isinstance(self.refresh, bool):
            self.refresh = "true" if self.refresh else "false"

        valid_policies = {p.value for p in RefreshPolicy}
        if self.refresh not in valid_policies:
            raise ValueError(
                f"refresh must be one of {sorted(valid_policies)}, got '{self.refresh}'"
            )

        if self.default_max_update_retries < 0:
            raise ValueError("default_max_update_retries must be non-negative")

        if self.conflict_retry_delay < 0:
            raise ValueError("conflict_retry_delay must be non-negative")

        if self.max_bulk_items < 1:
            raise ValueError("max_bulk_items must be at least 1")

        if self.default_page_size is not None and self.default_page_size < 0:
            raise ValueError("default_page_size must be non-negative")

        if self.timing_history_size < 1:
            logger.warning(
                f"timing_history_size ({self.timing_history_size}) is less than 1. Setting to 1."
            )
            self.timing_history_size = 1

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'DataOperationConfig':
        """
        Create configuration from a dictionary.

        Unknown keys are ignored, so a whole YAML section can be passed in.

        Args:
            config_dict: Dictionary containing configuration parameters.
                        Keys should match the dataclass field names.

        Returns:
            DataOperationConfig instance with specified parameters.
        """
        valid_fields = {f.name for f in fields(cls)}
        filtered_dict = {k: v for k, v in config_dict.items() if k in valid_fields}

        return cls(**filtered_dict)

    @classmethod
    def from_settings(cls, settings: IndexDAOSettings) -> 'DataOperationConfig':
        """Build the per-DAO configuration from application settings."""
        return cls(
            default_max_update_retries=settings.dao.default_max_update_retries,
            conflict_retry_delay=settings.dao.conflict_retry_delay,
            refresh=settings.dao.refresh,
            max_bulk_items=settings.dao.max_bulk_items,
            default_page_size=settings.dao.default_page_size,
            enable_timing=settings.monitoring.enable_timing,
            timing_history_size=settings.monitoring.timing_history_size
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary.

        Returns:
            Dictionary representation of configuration.
        """
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def validate_max_retries(self, max_retries: Optional[int]) -> int:
        """
        Validate and normalize a max_retries parameter.

        Args:
            max_retries: Requested number of additional attempts, or None to use default.

        Returns:
            Validated retry bound.

        Raises:
            ValueError: If max_retries is negative.
        """
        if max_retries is None:
            return self.default_max_update_retries

        if max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {max_retries}")

        return max_retries

    def resolve_refresh(self, refresh: Optional[Any]) -> str:
        """
        Normalize a per-call refresh argument, falling back to the configured default.

        Accepts RefreshPolicy members, booleans, or their string values.
        """
        if refresh is None:
            return self.refresh
        if isinstance(refresh, RefreshPolicy):
            return refresh.value
        if isinstance(refresh, bool):
            return "true" if refresh else "false"
        value = str(refresh)
        if value not in {p.value for p in RefreshPolicy}:
            raise ValueError(f"Unsupported refresh policy '{refresh}'")
        return value

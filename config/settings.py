"""
Pydantic Settings for Index DAO Operations

This module provides strongly-typed configuration settings using Pydantic,
with support for environment variables and YAML configuration files.
"""

from typing import Dict, Any, Optional, List, Union, Tuple
from enum import Enum
from pathlib import Path
import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_yaml import to_yaml_str


class RefreshPolicy(str, Enum):
    """
    Elasticsearch refresh options applied to write operations.

    The refresh policy controls when a write becomes visible to search:
    - TRUE forces an immediate refresh of the affected shards (expensive)
    - WAIT_FOR blocks the request until the next scheduled refresh makes the write visible
    - FALSE returns as soon as the write is durable; visibility follows the index refresh interval
    """
    TRUE = "true"
    FALSE = "false"
    WAIT_FOR = "wait_for"


class ConnectionSettings(BaseSettings):
    """
    Connection settings for the Elasticsearch client.

    These settings control how the shared client connects to the cluster:
    - Node addresses and authentication
    - TLS verification
    - Request timeout and transport-level retry behaviour
    - Size of the HTTP connection pool and of the background worker pool
    """
    model_config = SettingsConfigDict(env_prefix="ES_", case_sensitive=False, extra="ignore")

    hosts: List[str] = Field(default_factory=lambda: ["http://localhost:9200"],
                             description="Elasticsearch node URLs")
    username: Optional[str] = Field(None, description="Username for HTTP basic auth")
    password: Optional[str] = Field(None, description="Password for HTTP basic auth")
    api_key: Optional[str] = Field(None, description="Encoded API key (takes precedence over basic auth)")
    verify_certs: bool = Field(True, description="Whether to verify TLS certificates")
    ca_certs: Optional[str] = Field(None, description="Path to a CA bundle for TLS verification")
    request_timeout: float = Field(30.0, description="Per-request timeout in seconds, enforced by the transport")
    max_retries: int = Field(0, description="Transport-level retries; 0 surfaces failures to the caller unchanged")
    retry_on_timeout: bool = Field(False, description="Whether the transport retries requests that timed out")
    connections_per_node: int = Field(10, description="HTTP connections kept per node")
    background_workers: int = Field(4, description="Threads used for fire-and-forget cleanup requests")

    def pool_key(self) -> Tuple[Any, ...]:
        """Key identifying clients that can be shared between connection managers."""
        return (
            tuple(self.hosts),
            self.username,
            self.api_key,
            self.verify_certs,
            self.ca_certs,
            self.request_timeout,
            self.max_retries,
            self.retry_on_timeout,
            self.connections_per_node,
        )


class DAOSettings(BaseSettings):
    """
    Defaults applied by every IndexDAO created from these settings.

    These can be overridden per DAO through DataOperationConfig and per call
    through method arguments.
    """
    model_config = SettingsConfigDict(env_prefix="ES_DAO_", case_sensitive=False, extra="ignore")

    default_max_update_retries: int = Field(2, description="Additional attempts an optimistic update makes after a version conflict")
    conflict_retry_delay: float = Field(0.0, description="Seconds to wait between optimistic update attempts")
    refresh: RefreshPolicy = Field(RefreshPolicy.FALSE, description="Default refresh policy for writes")
    max_bulk_items: int = Field(10000, description="Upper bound on items submitted in a single bulk request")
    default_page_size: Optional[int] = Field(None, description="Search page size used when a search does not set one")


class MonitoringSettings(BaseSettings):
    """
    Monitoring settings for tracking DAO operations.

    - Controls logging verbosity of the package loggers
    - Enables per-operation timing collection
    """
    model_config = SettingsConfigDict(env_prefix="ES_MONITORING_", case_sensitive=False, extra="ignore")

    log_level: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    enable_timing: bool = Field(True, description="Whether to record timing for DAO operations")
    timing_history_size: int = Field(1000, description="Number of timing results kept in memory")


class IndexDAOSettings(BaseSettings):
    """
    Main settings class that consolidates all configuration categories.

    Usage:
        # Load from environment variables and defaults
        settings = IndexDAOSettings()

        # Load from YAML file
        settings = IndexDAOSettings.from_yaml('config.yaml')

        # Access nested settings
        hosts = settings.connection.hosts
        retries = settings.dao.default_max_update_retries
    """
    model_config = SettingsConfigDict(case_sensitive=False, env_nested_delimiter="__", extra="ignore")

    connection: ConnectionSettings = Field(default_factory=ConnectionSettings,
                                           description="Connection settings for the Elasticsearch client")
    dao: DAOSettings = Field(default_factory=DAOSettings,
                             description="Defaults for DAO operations")
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings,
                                           description="Logging and timing settings")

    @classmethod
    def from_yaml(cls, yaml_file: Union[str, Path]) -> "IndexDAOSettings":
        """Load settings from YAML file"""
        import yaml
        with open(yaml_file, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self) -> str:
        """Render settings as YAML, e.g. to bootstrap a config file."""
        return to_yaml_str(self)


def load_settings(config_path: Optional[str] = None) -> IndexDAOSettings:
    """
    Load settings from file and/or environment variables.

    Args:
        config_path: Path to YAML configuration file. If None or file doesn't exist,
                    falls back to environment variables and default values.

    Returns:
        IndexDAOSettings object with loaded configuration

    Example:
        # Load from specific config file
        settings = load_settings("/path/to/config.yaml")

        # Load from environment variables and defaults
        settings = load_settings()
    """
    if config_path and os.path.exists(config_path):
        return IndexDAOSettings.from_yaml(config_path)
    return IndexDAOSettings()

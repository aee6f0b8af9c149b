"""
Configuration Module

This module provides centralized configuration management for Index DAO operations:
- Elasticsearch connection configuration
- DAO defaults (retry bounds, refresh policy, bulk limits)
- Monitoring settings (log level, timing)
- Configuration validation and loading from environment or YAML

Implements a flexible, environment-aware configuration system
with sensible defaults and validation using Pydantic.
"""

from .settings import (
    IndexDAOSettings,
    ConnectionSettings,
    DAOSettings,
    MonitoringSettings,
    RefreshPolicy,
    load_settings
)

__all__ = [
    'IndexDAOSettings',
    'ConnectionSettings',
    'DAOSettings',
    'MonitoringSettings',
    'RefreshPolicy',
    'load_settings'
]

"""
Index DAO Client

This module provides the main client interface for Index DAO operations,
wiring configuration, the shared connection manager and per-index DAOs
together.
"""

from pathlib import Path
from typing import Optional, Union
import logging

from elasticsearch import AsyncElasticsearch, Elasticsearch

from config import IndexDAOSettings, load_settings
from connection_management import ConnectionManager
from data_management_operations.core.codec import ModelCodec
from data_management_operations.data_ops_config import DataOperationConfig
from index_dao.dao import IndexDAO
from index_dao_exceptions import ConfigurationError

# Logger setup
logger = logging.getLogger(__name__)

# Packages whose loggers follow monitoring.log_level
_PACKAGE_LOGGERS = (
    "index_dao",
    "config",
    "connection_management",
    "data_management_operations",
    "search_operations",
)


class IndexDAOClient:
    """
    Main client interface for Index DAO operations.

    The client owns one ConnectionManager and hands out IndexDAO instances
    that share it. Closing the client releases the connection manager;
    DAOs created from it must not be used afterwards.

    Example:
        ```python
        with IndexDAOClient("config.yaml") as client:
            things = client.crud_dao("things", PydanticModelCodec(Thing))
            things.index("a", Thing(name="a"))
        ```
    """

    def __init__(
        self,
        config: Optional[Union[IndexDAOSettings, str, Path]] = None,
        client: Optional[Elasticsearch] = None,
        async_client: Optional[AsyncElasticsearch] = None
    ):
        """
        Initialize the Index DAO client.

        Args:
            config: Either an IndexDAOSettings object or a path to a config YAML file.
                   If None, settings are read from the environment.
            client: Optional pre-built sync Elasticsearch client
            async_client: Optional pre-built async Elasticsearch client

        Raises:
            ConfigurationError: If config has an unsupported type
        """
        if config is None:
            self.config = load_settings()
        elif isinstance(config, (str, Path)):
            self.config = load_settings(str(config))
        elif isinstance(config, IndexDAOSettings):
            self.config = config
        else:
            raise ConfigurationError("Invalid configuration type. Expected IndexDAOSettings, str, Path, or None.")

        self._configure_logging()

        self.connection_manager = ConnectionManager(self.config, client=client, async_client=async_client)
        self._dao_config = DataOperationConfig.from_settings(self.config)

        logger.info("IndexDAOClient initialized successfully")

    def _configure_logging(self):
        level = logging.getLevelName(self.config.monitoring.log_level.upper())
        if not isinstance(level, int):
            raise ConfigurationError(f"Unknown log level '{self.config.monitoring.log_level}'")
        for name in _PACKAGE_LOGGERS:
            logging.getLogger(name).setLevel(level)

    @property
    def dao_config(self) -> DataOperationConfig:
        """The DataOperationConfig applied to DAOs created without their own."""
        return self._dao_config

    def crud_dao(
        self,
        index_name: str,
        codec: ModelCodec,
        config: Optional[DataOperationConfig] = None
    ) -> IndexDAO:
        """
        Create a DAO for one index.

        Args:
            index_name: Name of the index
            codec: Codec for the index's domain type
            config: Optional per-DAO configuration overriding the client defaults

        Returns:
            IndexDAO bound to this client's connection manager
        """
        return IndexDAO(index_name, codec, self.connection_manager, config=config or self._dao_config)

    def ping(self) -> bool:
        """Check whether the cluster is reachable."""
        return self.connection_manager.check_server_status()

    async def ping_async(self) -> bool:
        """Async variant of ping."""
        return await self.connection_manager.check_server_status_async()

    def close(self):
        """Close the client and release all resources"""
        self.connection_manager.close()
        logger.info("IndexDAOClient closed")

    async def aclose(self):
        """Async variant of close."""
        await self.connection_manager.aclose()
        logger.info("IndexDAOClient closed")

    def __enter__(self) -> "IndexDAOClient":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    async def __aenter__(self) -> "IndexDAOClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

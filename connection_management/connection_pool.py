"""
Elasticsearch Client Pool

This module provides the process-wide, reference-counted home of the
Elasticsearch clients. The HTTP connection pool itself lives inside the
client's transport; this pool makes sure every ConnectionManager built from
the same connection settings shares one sync client and one async client.
"""

import asyncio
import logging
import threading
from typing import Any, Dict, Optional, Set, Tuple

from elasticsearch import AsyncElasticsearch, Elasticsearch

from config import IndexDAOSettings
from .connection_exceptions import (
    ConnectionClosedError,
    ConnectionInitializationError
)

# Logger setup
logger = logging.getLogger(__name__)

# Strong references to async client closes scheduled from sync code
_background_tasks: Set["asyncio.Task[Any]"] = set()


class ElasticsearchClientPool:
    """
    Shared holder of Elasticsearch clients, one instance per connection settings.

    The pool follows a keyed singleton pattern: constructing it twice with
    equivalent connection settings returns the same instance, so all DAOs in
    a process talk through the same transport and its connection pool.

    - The sync client is created eagerly so bad settings fail fast
    - The async client is created on first use
    - Reference counting keeps the clients alive while any manager uses them
    """
    _instances: Dict[Tuple[Any, ...], "ElasticsearchClientPool"] = {}
    _lock = threading.RLock()

    def __new__(cls, config: IndexDAOSettings):
        key = config.connection.pool_key()
        with cls._lock:
            instance = cls._instances.get(key)
            if instance is None:
                instance = super(ElasticsearchClientPool, cls).__new__(cls)
                instance._initialized = False
                cls._instances[key] = instance
            return instance

    def __init__(self, config: IndexDAOSettings):
        """
        Initialize the pool (if not already initialized).

        Args:
            config: Settings whose ``connection`` group describes the cluster.

        Raises:
            ConnectionInitializationError: If the sync client cannot be created.
        """
        with self._lock:
            if self._initialized:
                return

            self.config = config
            self._key = config.connection.pool_key()
            self._async_client: Optional[AsyncElasticsearch] = None
            self._reference_count = 0
            self._closed = False

            try:
                self._client = Elasticsearch(**self._client_kwargs())
            except Exception as e:
                with ElasticsearchClientPool._lock:
                    ElasticsearchClientPool._instances.pop(self._key, None)
                logger.error(f"Failed to initialize Elasticsearch client: {e}")
                raise ConnectionInitializationError(f"Failed to initialize Elasticsearch client: {e}") from e

            self._initialized = True
            logger.info(f"Elasticsearch client pool initialized for hosts {config.connection.hosts}")

    @classmethod
    def acquire(cls, config: IndexDAOSettings) -> "ElasticsearchClientPool":
        """
        Return the open pool for these settings with a reference already taken.

        Lookup and reference increment happen under one lock, so a concurrent
        release of the last reference can never hand back a closed pool; a
        fresh pool is created instead.

        Raises:
            ConnectionInitializationError: If a new pool cannot create its client.
        """
        with cls._lock:
            pool = cls(config)
            pool.acquire_reference()
            return pool

    def _client_kwargs(self) -> Dict[str, Any]:
        """Translate connection settings into client constructor arguments."""
        conn = self.config.connection
        kwargs: Dict[str, Any] = {
            "hosts": list(conn.hosts),
            "verify_certs": conn.verify_certs,
            "request_timeout": conn.request_timeout,
            "max_retries": conn.max_retries,
            "retry_on_timeout": conn.retry_on_timeout,
            "connections_per_node": conn.connections_per_node,
        }
        if conn.ca_certs:
            kwargs["ca_certs"] = conn.ca_certs
        if conn.api_key:
            kwargs["api_key"] = conn.api_key
        elif conn.username and conn.password:
            kwargs["basic_auth"] = (conn.username, conn.password)
        return kwargs

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def reference_count(self) -> int:
        return self._reference_count

    def get_client(self) -> Elasticsearch:
        """
        Return the shared sync client.

        Raises:
            ConnectionClosedError: If the pool has been closed.
        """
        if self._closed:
            raise ConnectionClosedError("Elasticsearch client pool is closed")
        return self._client

    def get_async_client(self) -> AsyncElasticsearch:
        """
        Return the shared async client, creating it on first use.

        Raises:
            ConnectionClosedError: If the pool has been closed.
            ConnectionInitializationError: If the async client cannot be created.
        """
        if self._closed:
            raise ConnectionClosedError("Elasticsearch client pool is closed")
        with self._lock:
            if self._async_client is None:
                try:
                    self._async_client = AsyncElasticsearch(**self._client_kwargs())
                except Exception as e:
                    logger.error(f"Failed to initialize async Elasticsearch client: {e}")
                    raise ConnectionInitializationError(
                        f"Failed to initialize async Elasticsearch client: {e}"
                    ) from e
                logger.debug("Async Elasticsearch client created")
            return self._async_client

    def acquire_reference(self):
        """Increment the reference count when a ConnectionManager starts using this pool."""
        with self._lock:
            if self._closed:
                raise ConnectionClosedError("Elasticsearch client pool is closed")
            self._reference_count += 1
            logger.debug(f"Pool reference acquired. Current reference count: {self._reference_count}")

    def release_reference(self) -> bool:
        """
        Decrement the reference count, closing the clients when it reaches zero.

        Returns:
            bool: True if the pool was actually closed, False if still in use
        """
        with self._lock:
            if self._reference_count > 0:
                self._reference_count -= 1
                logger.debug(f"Pool reference released. Current reference count: {self._reference_count}")

                if self._reference_count == 0:
                    logger.info("No more references to Elasticsearch client pool, closing it")
                    self._close_pool_internal()
                    return True
            return False

    async def release_reference_async(self) -> bool:
        """Async variant of release_reference that awaits the async client shutdown."""
        async_client = None
        with self._lock:
            if self._reference_count == 1 and self._async_client is not None:
                async_client, self._async_client = self._async_client, None
        if async_client is not None:
            try:
                await async_client.close()
            except Exception as e:
                logger.warning(f"Error closing async Elasticsearch client: {e}")
        return self.release_reference()

    def _close_pool_internal(self):
        """Close both clients and forget this instance so a new pool can be created."""
        if self._closed:
            return

        self._closed = True

        try:
            self._client.close()
        except Exception as e:
            logger.warning(f"Error closing Elasticsearch client: {e}")

        if self._async_client is not None:
            self._close_async_client(self._async_client)
            self._async_client = None

        logger.info("Elasticsearch client pool closed")

        with ElasticsearchClientPool._lock:
            if ElasticsearchClientPool._instances.get(self._key) is self:
                del ElasticsearchClientPool._instances[self._key]

    @staticmethod
    def _close_async_client(async_client: AsyncElasticsearch):
        """Close the async client from sync code, on the running loop if there is one."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        try:
            if loop is not None:
                task = loop.create_task(async_client.close())
                _background_tasks.add(task)
                task.add_done_callback(_background_tasks.discard)
            else:
                asyncio.run(async_client.close())
        except Exception as e:
            logger.warning(f"Error closing async Elasticsearch client: {e}")

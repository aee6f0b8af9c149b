"""
Elasticsearch Connection Manager

This module provides a high-level interface for running requests against
Elasticsearch, with support for both synchronous and asynchronous operations
and a single place where client exceptions are translated into the package's
error taxonomy.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Optional, TypeVar

from elasticsearch import (
    ApiError,
    AsyncElasticsearch,
    ConflictError,
    ConnectionError as ESConnectionError,
    ConnectionTimeout,
    Elasticsearch,
    NotFoundError,
    TransportError,
)

from config import IndexDAOSettings, load_settings
from connection_management.connection_pool import ElasticsearchClientPool
from connection_management.connection_exceptions import (
    ConnectionClosedError,
    ConnectionError,
    ConnectionTimeoutError,
    ServerUnavailableError
)
from index_dao_exceptions import (
    DocumentNotFoundError,
    IndexDAOError,
    IndexNotFoundError,
    TransportFailureError,
    VersionConflictError
)

# Logger setup
logger = logging.getLogger(__name__)

T = TypeVar("T")


def response_body(response: Any) -> Any:
    """Return the decoded body of a client response, leaving plain values unchanged."""
    if hasattr(response, "body") and hasattr(response, "meta"):
        return response.body
    return response


def _engine_error_type(body: Any) -> Optional[str]:
    """Extract the engine error type from a response body, if present."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("type")
        if isinstance(error, str):
            return error
    return None


def translate_transport_error(
    error: Exception,
    operation_name: str,
    index: Optional[str] = None,
    doc_id: Optional[str] = None
) -> Optional[IndexDAOError]:
    """
    Map an exception raised by the Elasticsearch client onto the package taxonomy.

    Args:
        error: Exception raised by the client
        operation_name: Name of the operation, used in messages
        index: Index the request targeted, if known
        doc_id: Document id the request targeted, if known

    Returns:
        The translated exception, or None if ``error`` did not come from the client
    """
    if isinstance(error, ConflictError):
        return VersionConflictError(
            f"[{operation_name}] Version conflict on '{index}/{doc_id}': {error}",
            index=index,
            doc_id=doc_id
        )

    if isinstance(error, NotFoundError):
        error_type = _engine_error_type(error.body)
        if error_type == "index_not_found_exception":
            return IndexNotFoundError(f"[{operation_name}] Index '{index}' does not exist")
        if error_type in (None, "document_missing_exception"):
            return DocumentNotFoundError(
                f"[{operation_name}] Document '{index}/{doc_id}' not found",
                index=index,
                doc_id=doc_id
            )
        return TransportFailureError(
            f"[{operation_name}] Engine returned 404 ({error_type}): {error}",
            status_code=404,
            error_type=error_type
        )

    if isinstance(error, ApiError):
        error_type = _engine_error_type(error.body)
        if error.status_code == 503:
            return ServerUnavailableError(
                f"[{operation_name}] Cluster unavailable: {error}",
                status_code=503,
                error_type=error_type
            )
        return TransportFailureError(
            f"[{operation_name}] Engine returned {error.status_code} ({error_type}): {error}",
            status_code=error.status_code,
            error_type=error_type
        )

    if isinstance(error, ConnectionTimeout):
        return ConnectionTimeoutError(f"[{operation_name}] Request timed out: {error}")

    if isinstance(error, ESConnectionError):
        return ServerUnavailableError(f"[{operation_name}] No Elasticsearch node reachable: {error}")

    if isinstance(error, TransportError):
        return ConnectionError(f"[{operation_name}] Transport error: {error}")

    return None


class ConnectionManager:
    """
    High-level manager for Elasticsearch requests.

    The manager hands the shared client to an operation, translates client
    exceptions, and owns a small thread pool for fire-and-forget requests such
    as scroll cleanup. It never retries: transport failures reach the caller
    unchanged apart from translation.

    Clients are normally taken from the process-wide ElasticsearchClientPool;
    pre-built clients can be injected instead, in which case the manager does
    not close them.
    """

    def __init__(
        self,
        config: Optional[IndexDAOSettings] = None,
        client: Optional[Elasticsearch] = None,
        async_client: Optional[AsyncElasticsearch] = None
    ):
        """
        Initialize the connection manager.

        Args:
            config: IndexDAOSettings object. If None, settings are loaded from
                   the environment.
            client: Optional pre-built sync client to use instead of the shared pool.
            async_client: Optional pre-built async client to use instead of the shared pool.
        """
        self.config = config if config is not None else load_settings()
        self._client = client
        self._async_client = async_client
        self._pool: Optional[ElasticsearchClientPool] = None
        self._closed = False

        if client is None and async_client is None:
            self._pool = ElasticsearchClientPool.acquire(self.config)

        workers = max(1, self.config.connection.background_workers)
        self._executor = ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix=f"IndexDAOConnMgr-{id(self)}"
        )

        logger.info("ConnectionManager initialized")

    @property
    def client(self) -> Elasticsearch:
        """The sync client used for blocking operations."""
        if self._closed:
            raise ConnectionClosedError("ConnectionManager is closed")
        if self._client is not None:
            return self._client
        if self._pool is None:
            raise ConnectionClosedError("No sync Elasticsearch client configured")
        return self._pool.get_client()

    @property
    def async_client(self) -> AsyncElasticsearch:
        """The async client used for non-blocking operations."""
        if self._closed:
            raise ConnectionClosedError("ConnectionManager is closed")
        if self._async_client is not None:
            return self._async_client
        if self._pool is None:
            raise ConnectionClosedError("No async Elasticsearch client configured")
        return self._pool.get_async_client()

    @property
    def closed(self) -> bool:
        return self._closed

    def execute_operation(
        self,
        operation: Callable[[Elasticsearch], T],
        operation_name: str = "operation",
        index: Optional[str] = None,
        doc_id: Optional[str] = None
    ) -> T:
        """
        Run a blocking operation against the sync client.

        Args:
            operation: Function that takes the client and performs one or more requests
            operation_name: Name used in log and error messages
            index: Index targeted by the operation, for error context
            doc_id: Document targeted by the operation, for error context

        Returns:
            Whatever ``operation`` returns, with client responses unwrapped to their body

        Raises:
            DocumentNotFoundError, VersionConflictError, IndexNotFoundError:
                For the corresponding engine responses
            TransportFailureError: For every other engine or network failure

        Example:
            >>> manager.execute_operation(lambda es: es.count(index="things"), "count")
        """
        client = self.client
        try:
            return response_body(operation(client))
        except IndexDAOError:
            raise
        except Exception as e:
            translated = translate_transport_error(e, operation_name, index=index, doc_id=doc_id)
            if translated is None:
                raise
            raise translated from e

    async def execute_operation_async(
        self,
        operation: Callable[[AsyncElasticsearch], Awaitable[T]],
        operation_name: str = "operation",
        index: Optional[str] = None,
        doc_id: Optional[str] = None
    ) -> T:
        """
        Run a non-blocking operation against the async client.

        Identical to execute_operation, except that ``operation`` returns an
        awaitable and the call suspends only while waiting on the network.

        Example:
            >>> await manager.execute_operation_async(lambda es: es.count(index="things"), "count")
        """
        client = self.async_client
        try:
            return response_body(await operation(client))
        except IndexDAOError:
            raise
        except Exception as e:
            translated = translate_transport_error(e, operation_name, index=index, doc_id=doc_id)
            if translated is None:
                raise
            raise translated from e

    def submit_background(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
        """
        Run a callable on the manager's worker threads without waiting for it.

        Returns:
            The Future of the submitted work, or None if the manager no longer
            accepts work (it has been closed).
        """
        if self._closed:
            return None
        try:
            return self._executor.submit(fn, *args, **kwargs)
        except RuntimeError:
            # executor already shut down
            return None

    def check_server_status(self) -> bool:
        """
        Check if the cluster is reachable.

        Returns:
            bool: True if the cluster answered a ping, False otherwise
        """
        try:
            return bool(self.client.ping())
        except Exception as e:
            logger.debug(f"Server status check failed: {e}")
            return False

    async def check_server_status_async(self) -> bool:
        """Async variant of check_server_status."""
        try:
            return bool(await self.async_client.ping())
        except Exception as e:
            logger.debug(f"Server status check failed: {e}")
            return False

    def close(self):
        """
        Close the manager and release its reference on the shared clients.

        Waits for pending background work (scroll cleanup) to finish. Idempotent.
        Injected clients are left open; their owner closes them.
        """
        if self._closed:
            return
        self._closed = True

        self._executor.shutdown(wait=True)
        logger.debug(f"Shut down ThreadPoolExecutor for ConnectionManager {id(self)}")

        if self._pool is not None:
            pool_closed = self._pool.release_reference()
            if pool_closed:
                logger.info("ConnectionManager closed and client pool was shut down (last reference)")
            else:
                logger.info("ConnectionManager closed (client pool still in use by other managers)")
        else:
            logger.info("ConnectionManager closed")

    async def aclose(self):
        """Async variant of close that also awaits the async client shutdown."""
        if self._closed:
            return
        self._closed = True

        self._executor.shutdown(wait=True)

        if self._pool is not None:
            await self._pool.release_reference_async()
        logger.info("ConnectionManager closed")

    def __enter__(self) -> "ConnectionManager":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    async def __aenter__(self) -> "ConnectionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    def __del__(self):
        """Release the pool reference if close() was never called."""
        try:
            self.close()
        except Exception:
            pass

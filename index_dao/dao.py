"""
Indexed Collection Access Object

This module provides the IndexDAO, the typed access layer for one
Elasticsearch index. It composes the codec, optimistic updates, bulk
batching and search cursors behind a single object with blocking and
asyncio variants of every operation.

Typical usage from external projects:

    from pydantic import BaseModel
    from index_dao import IndexDAOClient
    from data_management_operations import PydanticModelCodec

    class Thing(BaseModel):
        name: str
        amount: int = 0

    with IndexDAOClient("config.yaml") as client:
        dao = client.crud_dao("things", PydanticModelCodec(Thing))

        dao.index("first", Thing(name="first"))
        dao.update("first", lambda t: t.model_copy(update={"amount": t.amount + 1}))

        for hit in dao.search(query={"match": {"name": "first"}}):
            print(hit.id, hit.value)
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar, Union

from connection_management import ConnectionManager
from data_management_operations.core.bulk import BulkOperationBuffer
from data_management_operations.core.codec import ModelCodec
from data_management_operations.core.optimistic import OptimisticUpdateExecutor
from data_management_operations.core.validator import DataValidator
from data_management_operations.data_ops_config import DataOperationConfig
from data_management_operations.data_ops_exceptions import DocumentSerializationError
from data_management_operations.models.entities import (
    BulkResult,
    DeleteResult,
    DocumentIdentity,
    DocumentVersion,
    IndexResult,
    OperationStatus,
    TypedRecord
)
from data_management_operations.utils.timing import BatchTimingResult, PerformanceTimer, TimingResult
from index_dao_exceptions import DocumentNotFoundError
from search_operations.config.options import SearchOptions
from search_operations.core.cursor import AsyncSearchResults, SearchResults

logger = logging.getLogger(__name__)

T = TypeVar("T")

BulkBuildFn = Callable[[BulkOperationBuffer], Union[None, Any, Awaitable[Any]]]


class IndexDAO(Generic[T]):
    """
    Typed access to the documents of one index.

    The DAO keeps no per-call state: concurrent calls from threads or tasks
    are independent, and the only resource a call can own is the scroll
    context of a search it started.

    Args:
        index_name: Index the DAO reads and writes; validated against naming rules
        codec: Codec between domain values and stored JSON
        connection_manager: Manager used for every request
        config: Per-DAO tunables. If None, defaults are used.

    Raises:
        InvalidIndexNameError: If index_name breaks Elasticsearch naming rules
    """

    def __init__(
        self,
        index_name: str,
        codec: ModelCodec,
        connection_manager: ConnectionManager,
        config: Optional[DataOperationConfig] = None
    ):
        self.index_name = DataValidator.validate_index_name(index_name)
        self._codec = codec
        self._connection_manager = connection_manager
        self._config = config or DataOperationConfig()

        self._timer = PerformanceTimer(
            enable_logging=True,
            history_size=self._config.timing_history_size,
            enabled=self._config.enable_timing
        )

        logger.debug(f"IndexDAO created for index '{self.index_name}' with config {self._config.to_dict()}")

    @property
    def codec(self) -> ModelCodec:
        return self._codec

    @property
    def config(self) -> DataOperationConfig:
        return self._config

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    def _identity(self, doc_id: str) -> DocumentIdentity:
        return DocumentIdentity(index=self.index_name, id=doc_id)

    def _decode(self, doc_id: str, source: Any) -> T:
        try:
            return self._codec.decode(source)
        except DocumentSerializationError as e:
            e.doc_id = doc_id
            raise

    def _to_record(self, doc_id: str, response: Dict[str, Any]) -> Optional[TypedRecord[T]]:
        if not response.get("found", True):
            return None
        return TypedRecord(
            identity=self._identity(response.get("_id", doc_id)),
            version=DocumentVersion.from_response(response),
            value=self._decode(doc_id, response.get("_source"))
        )

    def _write_params(
        self,
        doc_id: Optional[str],
        create: bool,
        expected_version: Optional[DocumentVersion],
        refresh: Optional[Any]
    ) -> Dict[str, Any]:
        DataValidator.validate_doc_id(doc_id, allow_none=True)
        if create and expected_version is not None:
            raise ValueError("A create cannot be conditioned on a version; use create=False")

        params: Dict[str, Any] = {
            "index": self.index_name,
            "refresh": self._config.resolve_refresh(refresh)
        }
        if doc_id is not None:
            params["id"] = doc_id
        if create:
            params["op_type"] = "create"
        if expected_version is not None:
            params.update(expected_version.as_params())
        return params

    def _index_result(self, response: Dict[str, Any], timing: TimingResult) -> IndexResult:
        return IndexResult(
            identity=self._identity(response["_id"]),
            version=DocumentVersion.from_response(response),
            result=response.get("result", "created"),
            timing=timing
        )

    def _delete_params(self, doc_id: str, expected_version: Optional[DocumentVersion],
                       refresh: Optional[Any]) -> Dict[str, Any]:
        DataValidator.validate_doc_id(doc_id)
        params: Dict[str, Any] = {
            "index": self.index_name,
            "id": doc_id,
            "refresh": self._config.resolve_refresh(refresh)
        }
        if expected_version is not None:
            params.update(expected_version.as_params())
        return params

    def _search_options(self, options: Optional[SearchOptions], fields: Dict[str, Any]) -> SearchOptions:
        if options is None:
            return SearchOptions(**fields)
        if fields:
            return options.with_overrides(**fields)
        return options

    def _search_params(self, opts: SearchOptions) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "index": self.index_name,
            "body": opts.to_body(self._config.default_page_size)
        }
        if opts.scroll is not None:
            params["scroll"] = opts.scroll
        return params

    def _updater(self, refresh: Optional[Any]) -> OptimisticUpdateExecutor:
        def write(doc_id: str, value: T, version: DocumentVersion) -> IndexResult:
            return self.index(doc_id, value, create=False, expected_version=version, refresh=refresh)

        async def write_async(doc_id: str, value: T, version: DocumentVersion) -> IndexResult:
            return await self.index_async(doc_id, value, create=False, expected_version=version, refresh=refresh)

        return OptimisticUpdateExecutor(
            self.index_name,
            read=self.get,
            write=write,
            read_async=self.get_async,
            write_async=write_async,
            retry_delay=self._config.conflict_retry_delay
        )

    # ------------------------------------------------------------------
    # Blocking operations
    # ------------------------------------------------------------------

    def get(self, doc_id: str) -> Optional[TypedRecord[T]]:
        """
        Read a document.

        Args:
            doc_id: Id of the document

        Returns:
            TypedRecord with the decoded value and its version, or None if
            there is no document with this id

        Raises:
            IndexNotFoundError: If the index does not exist
            TransportFailureError: On engine or network failures
        """
        DataValidator.validate_doc_id(doc_id)
        with self._timer.time_operation_sync("get", {"index": self.index_name}):
            try:
                response = self._connection_manager.execute_operation(
                    lambda es: es.get(index=self.index_name, id=doc_id),
                    operation_name="get",
                    index=self.index_name,
                    doc_id=doc_id
                )
            except DocumentNotFoundError:
                return None
            return self._to_record(doc_id, response)

    def index(
        self,
        doc_id: Optional[str],
        value: T,
        create: bool = True,
        expected_version: Optional[DocumentVersion] = None,
        refresh: Optional[Any] = None
    ) -> IndexResult:
        """
        Store a value under an id.

        Args:
            doc_id: Document id, or None to let the server generate one
            value: Domain value to store
            create: Fail if a document with this id already exists
            expected_version: Only overwrite if the stored version still matches
                             (requires create=False)
            refresh: Refresh policy for this write; defaults to the configured one

        Returns:
            IndexResult with the identity and new version

        Raises:
            VersionConflictError: On create over an existing id or a stale expected_version
            TransportFailureError: On engine or network failures
        """
        params = self._write_params(doc_id, create, expected_version, refresh)
        source = self._codec.encode(value)

        with self._timer.time_operation_sync("index", {"index": self.index_name}) as timing:
            response = self._connection_manager.execute_operation(
                lambda es: es.index(document=source, **params),
                operation_name="index",
                index=self.index_name,
                doc_id=doc_id
            )
        result = self._index_result(response, timing)
        logger.debug(f"[index] {result.result} '{result.identity}' at seq_no {result.version.seq_no}")
        return result

    def delete(
        self,
        doc_id: str,
        expected_version: Optional[DocumentVersion] = None,
        refresh: Optional[Any] = None
    ) -> DeleteResult:
        """
        Delete a document.

        Returns:
            DeleteResult with status SUCCESS, or NOT_FOUND if there was no document

        Raises:
            VersionConflictError: If expected_version no longer matches
            TransportFailureError: On engine or network failures
        """
        params = self._delete_params(doc_id, expected_version, refresh)

        with self._timer.time_operation_sync("delete", {"index": self.index_name}) as timing:
            try:
                response = self._connection_manager.execute_operation(
                    lambda es: es.delete(**params),
                    operation_name="delete",
                    index=self.index_name,
                    doc_id=doc_id
                )
            except DocumentNotFoundError:
                logger.debug(f"[delete] No document '{self.index_name}/{doc_id}' to delete")
                return DeleteResult(status=OperationStatus.NOT_FOUND, identity=self._identity(doc_id))

        return DeleteResult(
            status=OperationStatus.SUCCESS,
            identity=self._identity(doc_id),
            version=DocumentVersion.from_response(response),
            timing=timing
        )

    def update(
        self,
        doc_id: str,
        transform: Callable[[T], T],
        max_retries: Optional[int] = None,
        refresh: Optional[Any] = None
    ) -> TypedRecord[T]:
        """
        Read-transform-write a document with optimistic concurrency.

        On a version conflict the document is read again and ``transform`` is
        re-applied, up to ``max_retries`` additional times. The transform must
        therefore be safe to run more than once.

        Args:
            doc_id: Id of the document to update
            transform: Function from the current value to the new value
            max_retries: Additional attempts after conflicts (0 means one attempt);
                         defaults to the configured default_max_update_retries
            refresh: Refresh policy for the write

        Returns:
            TypedRecord with the new value and version

        Raises:
            DocumentNotFoundError: If the document does not exist
            ConcurrencyExhaustedError: If conflicts persisted through every attempt
            ValueError: If max_retries is negative
        """
        retries = self._config.validate_max_retries(max_retries)
        with self._timer.time_operation_sync("update", {"index": self.index_name}):
            return self._updater(refresh).execute(doc_id, transform, retries)

    def bulk_buffer(self, refresh: Optional[Any] = None) -> BulkOperationBuffer[T]:
        """Create an empty bulk buffer for this index."""
        return BulkOperationBuffer(
            self.index_name,
            self._codec,
            self._connection_manager,
            max_items=self._config.max_bulk_items,
            refresh=self._config.resolve_refresh(refresh),
            read=self.get,
            read_async=self.get_async,
            timer=self._timer
        )

    def bulk(self, build_fn: BulkBuildFn, refresh: Optional[Any] = None) -> BulkResult:
        """
        Build and submit one bulk batch.

        Args:
            build_fn: Called with a fresh BulkOperationBuffer to add items to
            refresh: Refresh policy for the batch

        Returns:
            BulkResult with one outcome per item, in the order they were added.
            Per-item failures do not raise; see BulkResult.raise_for_failures.

        Example:
            >>> def build(buffer):
            ...     for thing in things:
            ...         buffer.index(thing.name, thing)
            >>> result = dao.bulk(build)
        """
        buffer = self.bulk_buffer(refresh)
        build_fn(buffer)
        return buffer.submit()

    def search(self, options: Optional[SearchOptions] = None, **option_fields: Any) -> SearchResults[T]:
        """
        Search the index.

        Options can be passed as a SearchOptions instance, as keyword
        arguments, or both (keywords override the instance).

        Returns:
            SearchResults with total_hits and lazily decoded hits

        Raises:
            InvalidSearchParametersError: If the options are inconsistent
            TransportFailureError: On engine or network failures
        """
        opts = self._search_options(options, option_fields)
        params = self._search_params(opts)

        with self._timer.time_operation_sync("search", {"index": self.index_name, "scroll": opts.scrolling}):
            response = self._connection_manager.execute_operation(
                lambda es: es.search(**params),
                operation_name="search",
                index=self.index_name
            )
        return SearchResults(self.index_name, self._codec, self._connection_manager, response, scroll=opts.scroll)

    def refresh_index(self):
        """Make all writes so far visible to search."""
        self._connection_manager.execute_operation(
            lambda es: es.indices.refresh(index=self.index_name),
            operation_name="refresh",
            index=self.index_name
        )

    # ------------------------------------------------------------------
    # Async operations
    # ------------------------------------------------------------------

    async def get_async(self, doc_id: str) -> Optional[TypedRecord[T]]:
        """Async variant of get."""
        DataValidator.validate_doc_id(doc_id)
        async with self._timer.time_operation("get", {"index": self.index_name}):
            try:
                response = await self._connection_manager.execute_operation_async(
                    lambda es: es.get(index=self.index_name, id=doc_id),
                    operation_name="get",
                    index=self.index_name,
                    doc_id=doc_id
                )
            except DocumentNotFoundError:
                return None
            return self._to_record(doc_id, response)

    async def index_async(
        self,
        doc_id: Optional[str],
        value: T,
        create: bool = True,
        expected_version: Optional[DocumentVersion] = None,
        refresh: Optional[Any] = None
    ) -> IndexResult:
        """Async variant of index."""
        params = self._write_params(doc_id, create, expected_version, refresh)
        source = self._codec.encode(value)

        async with self._timer.time_operation("index", {"index": self.index_name}) as timing:
            response = await self._connection_manager.execute_operation_async(
                lambda es: es.index(document=source, **params),
                operation_name="index",
                index=self.index_name,
                doc_id=doc_id
            )
        result = self._index_result(response, timing)
        logger.debug(f"[index] {result.result} '{result.identity}' at seq_no {result.version.seq_no}")
        return result

    async def delete_async(
        self,
        doc_id: str,
        expected_version: Optional[DocumentVersion] = None,
        refresh: Optional[Any] = None
    ) -> DeleteResult:
        """Async variant of delete."""
        params = self._delete_params(doc_id, expected_version, refresh)

        async with self._timer.time_operation("delete", {"index": self.index_name}) as timing:
            try:
                response = await self._connection_manager.execute_operation_async(
                    lambda es: es.delete(**params),
                    operation_name="delete",
                    index=self.index_name,
                    doc_id=doc_id
                )
            except DocumentNotFoundError:
                logger.debug(f"[delete] No document '{self.index_name}/{doc_id}' to delete")
                return DeleteResult(status=OperationStatus.NOT_FOUND, identity=self._identity(doc_id))

        return DeleteResult(
            status=OperationStatus.SUCCESS,
            identity=self._identity(doc_id),
            version=DocumentVersion.from_response(response),
            timing=timing
        )

    async def update_async(
        self,
        doc_id: str,
        transform: Callable[[T], T],
        max_retries: Optional[int] = None,
        refresh: Optional[Any] = None
    ) -> TypedRecord[T]:
        """Async variant of update."""
        retries = self._config.validate_max_retries(max_retries)
        async with self._timer.time_operation("update", {"index": self.index_name}):
            return await self._updater(refresh).execute_async(doc_id, transform, retries)

    async def bulk_async(self, build_fn: BulkBuildFn, refresh: Optional[Any] = None) -> BulkResult:
        """
        Async variant of bulk.

        ``build_fn`` may be a plain function or a coroutine function.
        """
        buffer = self.bulk_buffer(refresh)
        built = build_fn(buffer)
        if inspect.isawaitable(built):
            await built
        return await buffer.submit_async()

    async def search_async(self, options: Optional[SearchOptions] = None,
                           **option_fields: Any) -> AsyncSearchResults[T]:
        """Async variant of search; iterate the result with ``async for``."""
        opts = self._search_options(options, option_fields)
        params = self._search_params(opts)

        async with self._timer.time_operation("search", {"index": self.index_name, "scroll": opts.scrolling}):
            response = await self._connection_manager.execute_operation_async(
                lambda es: es.search(**params),
                operation_name="search",
                index=self.index_name
            )
        return AsyncSearchResults(self.index_name, self._codec, self._connection_manager, response,
                                  scroll=opts.scroll)

    async def refresh_index_async(self):
        """Async variant of refresh_index."""
        await self._connection_manager.execute_operation_async(
            lambda es: es.indices.refresh(index=self.index_name),
            operation_name="refresh",
            index=self.index_name
        )

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def get_timing_history(self) -> List[TimingResult]:
        """Get the timing history of this DAO's operations."""
        return self._timer.get_timing_history()

    def get_operation_stats(self, operation_name: str) -> Optional[BatchTimingResult]:
        """
        Get performance statistics for one operation type.

        Args:
            operation_name: One of "get", "index", "delete", "update", "bulk", "search"

        Returns:
            BatchTimingResult with statistics, or None if the operation never ran
        """
        return self._timer.get_operation_stats(operation_name)

    def get_performance_summary(self) -> Dict[str, BatchTimingResult]:
        """Get statistics for every operation type this DAO has run."""
        return self._timer.get_summary()

    def clear_timing_history(self):
        """Clear the timing history."""
        self._timer.clear_history()

    def __repr__(self) -> str:
        return f"IndexDAO(index_name={self.index_name!r}, codec={self._codec!r})"

"""
Bulk Operation Buffer

Collects index, create, update and delete operations for one index and
sends them to Elasticsearch as a single ``_bulk`` request.

Every item is independent: a version conflict, a create on an existing id
or a missing document fails only that item. The result holds exactly one
outcome per submitted item, in submission order, so callers can correlate
failures without matching ids.

Typical usage from external projects:

    buffer = dao.bulk_buffer()
    buffer.index("a", Thing(name="a"))
    buffer.update("b", transform=lambda t: t.model_copy(update={"amount": t.amount + 1}))
    buffer.delete("c")
    result = buffer.submit()

    for outcome in result.failures:
        print(outcome.position, outcome.doc_id, outcome.error)
"""

import logging
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union

from data_management_operations.core.codec import ModelCodec
from data_management_operations.core.validator import DataValidator
from data_management_operations.data_ops_exceptions import BulkBufferConsumedError, DocumentSerializationError
from data_management_operations.models.entities import (
    BulkItem,
    BulkItemError,
    BulkOperationType,
    BulkOutcome,
    BulkResult,
    DocumentVersion,
    TypedRecord
)
from data_management_operations.utils.timing import PerformanceTimer
from index_dao_exceptions import TransportFailureError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Sent items are ``(position, item)``; items that failed before sending map to their outcome
_Prepared = Tuple[List[Any], List[Tuple[int, BulkItem]], Dict[int, BulkOutcome]]


class BulkOperationBuffer(Generic[T]):
    """
    Scoped builder for one bulk request.

    A buffer is consumed by its first submission. Submitting again, or
    adding items afterwards, raises BulkBufferConsumedError.

    Args:
        index_name: Index every item targets
        codec: Codec used to encode values
        connection_manager: Manager used to send the request
        max_items: Upper bound on the number of items in one submission
        refresh: Refresh policy sent with the request
        read: Reads the current record for transform-only updates
        read_async: Async variant of ``read``
        timer: Optional timer recording submission timings
    """

    def __init__(
        self,
        index_name: str,
        codec: ModelCodec,
        connection_manager: Any,
        max_items: int = 10000,
        refresh: str = "false",
        read: Optional[Callable[[str], Optional[TypedRecord]]] = None,
        read_async: Optional[Callable[[str], Any]] = None,
        timer: Optional[PerformanceTimer] = None
    ):
        self.index_name = index_name
        self._codec = codec
        self._connection_manager = connection_manager
        self._max_items = max_items
        self._refresh = refresh
        self._read = read
        self._read_async = read_async
        self._timer = timer
        self._items: List[BulkItem] = []
        self._consumed = False
        self.result: Optional[BulkResult] = None

    def __len__(self) -> int:
        return len(self._items)

    @property
    def consumed(self) -> bool:
        return self._consumed

    @property
    def items(self) -> List[BulkItem]:
        return list(self._items)

    def _check_open(self):
        if self._consumed:
            raise BulkBufferConsumedError(
                f"Bulk buffer for '{self.index_name}' was already submitted; create a new one"
            )

    @staticmethod
    def _version(seq_no: Optional[int], primary_term: Optional[int]) -> Optional[DocumentVersion]:
        DataValidator.validate_version(seq_no, primary_term)
        if seq_no is None:
            return None
        return DocumentVersion(seq_no=seq_no, primary_term=primary_term)

    def _add(self, item: BulkItem) -> "BulkOperationBuffer[T]":
        self._items.append(item)
        return self

    def index(
        self,
        doc_id: Optional[str],
        value: T,
        create: bool = True,
        seq_no: Optional[int] = None,
        primary_term: Optional[int] = None
    ) -> "BulkOperationBuffer[T]":
        """
        Add a write of ``value`` under ``doc_id``.

        Args:
            doc_id: Document id, or None to let the server generate one
            value: Domain value to store
            create: Fail the item if the id already exists
            seq_no: Expected seq_no of the stored document (with primary_term)
            primary_term: Expected primary_term of the stored document

        Returns:
            The buffer, so calls can be chained
        """
        self._check_open()
        DataValidator.validate_doc_id(doc_id, allow_none=True)
        version = self._version(seq_no, primary_term)
        if create and version is not None:
            raise ValueError("A create cannot be conditioned on a version; use create=False")
        op_type = BulkOperationType.CREATE if create else BulkOperationType.INDEX
        return self._add(BulkItem(
            op_type=op_type,
            doc_id=doc_id,
            version=version,
            source=self._codec.encode(value)
        ))

    def create(self, doc_id: Optional[str], value: T) -> "BulkOperationBuffer[T]":
        """Add a write that fails if ``doc_id`` already exists."""
        return self.index(doc_id, value, create=True)

    def update(
        self,
        doc_id: str,
        seq_no: Optional[int] = None,
        primary_term: Optional[int] = None,
        value: Optional[T] = None,
        transform: Optional[Callable[[T], T]] = None
    ) -> "BulkOperationBuffer[T]":
        """
        Add a replacement of an existing document.

        - ``value`` and ``transform``: sends ``transform(value)``
        - ``value`` only: sends ``value``
        - ``transform`` only: at submission the current document is read,
          transformed, and written conditioned on the version read. A missing
          document fails this item with status 404; a transform that raises
          or a stored document that cannot be decoded fails it with status 422.

        When a version is given the write is conditioned on it.

        Raises:
            ValueError: If neither value nor transform is given
        """
        self._check_open()
        DataValidator.validate_doc_id(doc_id)
        version = self._version(seq_no, primary_term)

        if value is None and transform is None:
            raise ValueError("update needs a value, a transform, or both")

        if value is None:
            if version is not None:
                raise ValueError("A transform-only update reads its own version; do not pass seq_no/primary_term")
            return self._add(BulkItem(op_type=BulkOperationType.UPDATE, doc_id=doc_id, transform=transform))

        new_value = transform(value) if transform is not None else value
        return self._add(BulkItem(
            op_type=BulkOperationType.UPDATE,
            doc_id=doc_id,
            version=version,
            source=self._codec.encode(new_value)
        ))

    def delete(
        self,
        doc_id: str,
        seq_no: Optional[int] = None,
        primary_term: Optional[int] = None
    ) -> "BulkOperationBuffer[T]":
        """Add a delete, optionally conditioned on a version."""
        self._check_open()
        DataValidator.validate_doc_id(doc_id)
        return self._add(BulkItem(
            op_type=BulkOperationType.DELETE,
            doc_id=doc_id,
            version=self._version(seq_no, primary_term)
        ))

    def _check_submittable(self) -> List[BulkItem]:
        self._check_open()
        if len(self._items) > self._max_items:
            raise ValueError(
                f"Bulk batch of {len(self._items)} items exceeds max_bulk_items ({self._max_items})"
            )
        return self._items

    def _failed_outcome(self, position: int, item: BulkItem, status: int, error_type: str,
                        reason: str) -> BulkOutcome:
        return BulkOutcome(
            position=position,
            op_type=item.op_type,
            doc_id=item.doc_id,
            status=status,
            error=BulkItemError(status=status, type=error_type, reason=reason)
        )

    def _missing_outcome(self, position: int, item: BulkItem) -> BulkOutcome:
        return self._failed_outcome(position, item, 404, "document_missing_exception",
                                    f"[{item.doc_id}]: document missing")

    def _serialization_outcome(self, position: int, item: BulkItem, error: Exception) -> BulkOutcome:
        logger.warning(f"[bulk] Could not resolve update of '{self.index_name}/{item.doc_id}': {error}")
        return self._failed_outcome(position, item, 422, "document_serialization_exception", str(error))

    def _resolve(self, position: int, item: BulkItem,
                 record: Optional[TypedRecord]) -> Union[BulkItem, BulkOutcome]:
        """
        Turn a transform-only update into a conditioned replacement.

        A missing document, a failing transform or an unencodable result
        fails this item only.
        """
        if record is None:
            return self._missing_outcome(position, item)
        try:
            new_value = item.transform(record.value)
        except Exception as e:
            logger.warning(f"[bulk] Transform failed for '{self.index_name}/{item.doc_id}': {e}")
            return self._failed_outcome(position, item, 422, "transform_exception", f"{type(e).__name__}: {e}")
        try:
            source = self._codec.encode(new_value)
        except DocumentSerializationError as e:
            return self._serialization_outcome(position, item, e)
        return BulkItem(
            op_type=item.op_type,
            doc_id=item.doc_id,
            version=record.version,
            source=source
        )

    def _action(self, item: BulkItem) -> List[Any]:
        # updates are sent as conditioned full replacements
        action = "index" if item.op_type == BulkOperationType.UPDATE else item.op_type.value
        meta: Dict[str, Any] = {"_index": self.index_name}
        if item.doc_id is not None:
            meta["_id"] = item.doc_id
        if item.version is not None:
            meta.update(item.version.as_params())
        lines: List[Any] = [{action: meta}]
        if item.op_type != BulkOperationType.DELETE:
            lines.append(item.source)
        return lines

    def _prepare(self, resolved: Dict[int, Union[BulkItem, BulkOutcome]]) -> _Prepared:
        operations: List[Any] = []
        sent: List[Tuple[int, BulkItem]] = []
        early: Dict[int, BulkOutcome] = {}
        for position, item in enumerate(self._items):
            ready = resolved.get(position, item)
            if isinstance(ready, BulkOutcome):
                early[position] = ready
                continue
            operations.extend(self._action(ready))
            sent.append((position, ready))
        return operations, sent, early

    def _correlate(self, response: Any, sent: List[Tuple[int, BulkItem]], early: Dict[int, BulkOutcome]) -> BulkResult:
        response_items = response.get("items", []) if sent else []
        if len(response_items) != len(sent):
            raise TransportFailureError(
                f"[bulk] Engine returned {len(response_items)} item results for {len(sent)} items"
            )

        outcomes: Dict[int, BulkOutcome] = dict(early)
        for (position, item), entry in zip(sent, response_items):
            info = next(iter(entry.values()))
            status = info.get("status", 500)
            raw_error = info.get("error")
            error = None
            if raw_error is not None or status >= 400:
                if isinstance(raw_error, dict):
                    error = BulkItemError(status=status, type=raw_error.get("type"), reason=raw_error.get("reason"))
                else:
                    error = BulkItemError(status=status, type=info.get("result"), reason=raw_error)
            outcomes[position] = BulkOutcome(
                position=position,
                op_type=item.op_type,
                doc_id=info.get("_id", item.doc_id),
                status=status,
                result=info.get("result"),
                version=None if error else DocumentVersion.from_response(info),
                error=error
            )

        ordered = [outcomes[p] for p in range(len(self._items))]
        took = response.get("took") if sent else None
        return BulkResult.from_outcomes(ordered, took_ms=took)

    def _log_result(self, result: BulkResult):
        if result.failed_count:
            logger.warning(
                f"[bulk] {result.failed_count} of {result.total_count} items failed in '{self.index_name}'"
            )
        else:
            logger.debug(f"[bulk] {result.total_count} items written to '{self.index_name}'")

    def submit(self) -> BulkResult:
        """
        Send all buffered items in one bulk request.

        Transform-only updates are resolved first. If reading one of them
        fails at the transport level nothing is sent and the buffer stays
        open, so the same batch can be submitted again.

        Returns:
            BulkResult with one outcome per item, in the order they were added

        Raises:
            BulkBufferConsumedError: If the buffer was already submitted
            ValueError: If the batch exceeds max_items
            TransportFailureError: If a read or the request as a whole failed
        """
        items = self._check_submittable()
        if not items:
            self._consumed = True
            self.result = BulkResult.from_outcomes([])
            return self.result

        resolved: Dict[int, Union[BulkItem, BulkOutcome]] = {}
        for position, item in enumerate(items):
            if item.source is None and item.transform is not None:
                if self._read is None:
                    raise RuntimeError("Transform-only updates need a read function")
                try:
                    record = self._read(item.doc_id)
                except DocumentSerializationError as e:
                    resolved[position] = self._serialization_outcome(position, item, e)
                    continue
                resolved[position] = self._resolve(position, item, record)

        operations, sent, early = self._prepare(resolved)
        self._consumed = True

        timer = self._timer or PerformanceTimer(enabled=False)
        with timer.time_operation_sync("bulk", {"index": self.index_name, "items": len(items)}) as timing:
            response: Any = {}
            if sent:
                response = self._connection_manager.execute_operation(
                    lambda es: es.bulk(operations=operations, refresh=self._refresh),
                    operation_name="bulk",
                    index=self.index_name
                )
            result = self._correlate(response, sent, early)

        result.timing = timing
        self._log_result(result)
        self.result = result
        return result

    async def submit_async(self) -> BulkResult:
        """Async variant of submit."""
        items = self._check_submittable()
        if not items:
            self._consumed = True
            self.result = BulkResult.from_outcomes([])
            return self.result

        resolved: Dict[int, Union[BulkItem, BulkOutcome]] = {}
        for position, item in enumerate(items):
            if item.source is None and item.transform is not None:
                if self._read_async is None:
                    raise RuntimeError("Transform-only updates need an async read function")
                try:
                    record = await self._read_async(item.doc_id)
                except DocumentSerializationError as e:
                    resolved[position] = self._serialization_outcome(position, item, e)
                    continue
                resolved[position] = self._resolve(position, item, record)

        operations, sent, early = self._prepare(resolved)
        self._consumed = True

        timer = self._timer or PerformanceTimer(enabled=False)
        async with timer.time_operation("bulk", {"index": self.index_name, "items": len(items)}) as timing:
            response: Any = {}
            if sent:
                response = await self._connection_manager.execute_operation_async(
                    lambda es: es.bulk(operations=operations, refresh=self._refresh),
                    operation_name="bulk",
                    index=self.index_name
                )
            result = self._correlate(response, sent, early)

        result.timing = timing
        self._log_result(result)
        self.result = result
        return result

    def __enter__(self) -> "BulkOperationBuffer[T]":
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None and not self._consumed:
            self.submit()

    async def __aenter__(self) -> "BulkOperationBuffer[T]":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None and not self._consumed:
            await self.submit_async()

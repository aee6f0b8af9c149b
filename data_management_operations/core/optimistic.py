"""
Optimistic Concurrency Update

Read-modify-write of a single document, conditioned on the version that
was read. When another writer got there first the engine rejects the write
with a version conflict and the whole cycle starts over from a fresh read,
up to a bounded number of additional attempts.

The attempt loop is driven by tenacity and retries on version conflicts
only. Missing documents and transport failures end the loop immediately.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed
)

from data_management_operations.models.entities import (
    DocumentVersion,
    IndexResult,
    TypedRecord
)
from index_dao_exceptions import (
    ConcurrencyExhaustedError,
    DocumentNotFoundError,
    VersionConflictError
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ReadFn = Callable[[str], Optional[TypedRecord]]
WriteFn = Callable[[str, Any, DocumentVersion], IndexResult]
AsyncReadFn = Callable[[str], Awaitable[Optional[TypedRecord]]]
AsyncWriteFn = Callable[[str, Any, DocumentVersion], Awaitable[IndexResult]]


class OptimisticUpdateExecutor:
    """
    Runs optimistic updates against one index.

    The executor is stateless between calls: every update builds its own
    retry loop, so a single executor can serve concurrent threads and tasks.

    Args:
        index_name: Index the documents live in, used for errors and logging
        read: Returns the current TypedRecord for an id, or None
        write: Writes a value conditioned on a DocumentVersion
        read_async: Async variant of ``read``
        write_async: Async variant of ``write``
        retry_delay: Seconds to wait between attempts after a conflict

    Example:
        >>> executor = OptimisticUpdateExecutor("things", dao.get, conditional_write)
        >>> executor.execute("thing-1", lambda t: t.model_copy(update={"amount": t.amount + 1}), 2)
    """

    def __init__(
        self,
        index_name: str,
        read: ReadFn,
        write: WriteFn,
        read_async: Optional[AsyncReadFn] = None,
        write_async: Optional[AsyncWriteFn] = None,
        retry_delay: float = 0.0
    ):
        self.index_name = index_name
        self._read = read
        self._write = write
        self._read_async = read_async
        self._write_async = write_async
        self.retry_delay = retry_delay

    def _retry_kwargs(self, max_retries: int) -> dict:
        return dict(
            stop=stop_after_attempt(max_retries + 1),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(VersionConflictError),
            before_sleep=self._log_conflict,
            reraise=True
        )

    def _log_conflict(self, retry_state: RetryCallState):
        logger.debug(
            f"[update] Version conflict in '{self.index_name}' on attempt {retry_state.attempt_number}, "
            f"re-reading"
        )

    def _missing(self, doc_id: str) -> DocumentNotFoundError:
        return DocumentNotFoundError(
            f"[update] Document '{self.index_name}/{doc_id}' not found",
            index=self.index_name,
            doc_id=doc_id
        )

    def _exhausted(self, doc_id: str, attempts: int) -> ConcurrencyExhaustedError:
        logger.warning(
            f"[update] Giving up on '{self.index_name}/{doc_id}' after {attempts} attempt(s): "
            f"version conflicts persisted"
        )
        return ConcurrencyExhaustedError(
            f"[update] Document '{self.index_name}/{doc_id}' still conflicting after {attempts} attempt(s)",
            attempts=attempts,
            index=self.index_name,
            doc_id=doc_id
        )

    def _attempt(self, doc_id: str, transform: Callable[[T], T]) -> TypedRecord:
        current = self._read(doc_id)
        if current is None:
            raise self._missing(doc_id)

        new_value = transform(current.value)
        result = self._write(doc_id, new_value, current.version)
        return TypedRecord(identity=result.identity, version=result.version, value=new_value)

    async def _attempt_async(self, doc_id: str, transform: Callable[[T], T]) -> TypedRecord:
        current = await self._read_async(doc_id)
        if current is None:
            raise self._missing(doc_id)

        new_value = transform(current.value)
        result = await self._write_async(doc_id, new_value, current.version)
        return TypedRecord(identity=result.identity, version=result.version, value=new_value)

    def execute(self, doc_id: str, transform: Callable[[T], T], max_retries: int) -> TypedRecord:
        """
        Apply ``transform`` to the current value of ``doc_id`` and write the result.

        ``transform`` may run several times against different base values and
        must be safe to re-run.

        Args:
            doc_id: Id of the document to update
            transform: Function from the current value to the new value
            max_retries: Additional attempts after a conflict (0 means one attempt)

        Returns:
            TypedRecord holding the new value and its new version

        Raises:
            DocumentNotFoundError: If the document does not exist
            ConcurrencyExhaustedError: If every attempt hit a version conflict
            TransportFailureError: On any engine or network failure (not retried)
        """
        attempts = max_retries + 1
        try:
            for attempt in Retrying(**self._retry_kwargs(max_retries)):
                with attempt:
                    record = self._attempt(doc_id, transform)
        except VersionConflictError as e:
            raise self._exhausted(doc_id, attempts) from e

        logger.debug(f"[update] Updated '{self.index_name}/{doc_id}' to seq_no {record.version.seq_no}")
        return record

    async def execute_async(self, doc_id: str, transform: Callable[[T], T], max_retries: int) -> TypedRecord:
        """Async variant of execute; suspends only while waiting on the engine."""
        if self._read_async is None or self._write_async is None:
            raise RuntimeError("OptimisticUpdateExecutor was created without async read/write functions")

        attempts = max_retries + 1
        try:
            async for attempt in AsyncRetrying(**self._retry_kwargs(max_retries)):
                with attempt:
                    record = await self._attempt_async(doc_id, transform)
        except VersionConflictError as e:
            raise self._exhausted(doc_id, attempts) from e

        logger.debug(f"[update] Updated '{self.index_name}/{doc_id}' to seq_no {record.version.seq_no}")
        return record

"""
Search Result Cursors

This module wraps the response of a search in a lazily decoded, iterable
result set. For scrolled searches the cursor fetches further pages on
demand and releases the server-side scroll context when the hits run out
or the consumer stops early.

Two variants share the same semantics:
- SearchResults for blocking code (``for hit in results``)
- AsyncSearchResults for asyncio code (``async for hit in results``)

Typical usage:

    results = dao.search(query={"match_all": {}}, scroll="1m", size=500)
    print(results.total_hits)
    for hit in results:
        print(hit.id, hit.value)
"""

import asyncio
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Generic, Iterator, List, Optional, Set, TypeVar

from data_management_operations.core.codec import ModelCodec
from data_management_operations.models.entities import DocumentIdentity, DocumentVersion
from search_operations.core.search_ops_exceptions import SearchCursorClosedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Strong references to pending async cleanup tasks
_background_tasks: Set["asyncio.Task[Any]"] = set()


@dataclass
class SearchHit(Generic[T]):
    """
    One decoded search hit.

    ``version`` is only present when the search asked for seq_no/primary_term;
    ``value`` is None when _source was filtered out.
    """
    id: str
    index: str
    score: Optional[float]
    version: Optional[DocumentVersion]
    value: Optional[T]
    raw: Dict[str, Any]

    @property
    def identity(self) -> DocumentIdentity:
        return DocumentIdentity(index=self.index, id=self.id)


def _total_hits(response: Dict[str, Any]) -> Optional[int]:
    total = response.get("hits", {}).get("total")
    if isinstance(total, dict):
        return total.get("value")
    return total


class _CursorState:
    """Scroll bookkeeping shared by the sync and async cursors."""

    def __init__(self, index_name: str, codec: ModelCodec, connection_manager: Any,
                 response: Dict[str, Any], scroll: Optional[str]):
        self.index_name = index_name
        self._codec = codec
        self._connection_manager = connection_manager
        self.response = response
        self.total_hits = _total_hits(response)
        self._scroll = scroll
        self._scroll_id: Optional[str] = response.get("_scroll_id") if scroll else None
        self._iterated = False
        self._exhausted = False
        self._released = self._scroll_id is None
        self._lock = threading.Lock()

    @property
    def scrolling(self) -> bool:
        return self._scroll is not None

    @property
    def released(self) -> bool:
        return self._released

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def _first_page(self) -> List[Dict[str, Any]]:
        return self.response.get("hits", {}).get("hits", [])

    def _begin_iteration(self):
        if not self.scrolling:
            return
        with self._lock:
            if self._iterated:
                raise SearchCursorClosedError(
                    f"Scrolled results for '{self.index_name}' can only be iterated once"
                )
            self._iterated = True

    def _take_scroll_id(self) -> Optional[str]:
        with self._lock:
            if self._released:
                return None
            self._released = True
            return self._scroll_id

    def _to_hit(self, raw: Dict[str, Any]) -> SearchHit:
        source = raw.get("_source")
        return SearchHit(
            id=raw.get("_id"),
            index=raw.get("_index", self.index_name),
            score=raw.get("_score"),
            version=DocumentVersion.from_response(raw),
            value=self._codec.decode(source) if source is not None else None,
            raw=raw
        )

    def _next_page_from(self, response: Dict[str, Any]) -> List[Dict[str, Any]]:
        self._scroll_id = response.get("_scroll_id", self._scroll_id)
        return response.get("hits", {}).get("hits", [])


class SearchResults(_CursorState, Generic[T]):
    """
    Results of a blocking search.

    Attributes:
        response: The raw initial search response
        total_hits: Match count reported by the initial response (None if not tracked)

    Without scrolling, the hits of the single response can be iterated any
    number of times. With scrolling, the results are a single-pass stream:
    a second iteration raises SearchCursorClosedError.

    The scroll context is cleared as soon as the last page is read. If the
    consumer stops early (break, close(), leaving a ``with`` block, or garbage
    collection) the clear is handed to the connection manager's worker
    threads, so the caller never waits on it.
    """

    def __init__(self, index_name: str, codec: ModelCodec, connection_manager: Any,
                 response: Dict[str, Any], scroll: Optional[str] = None):
        super().__init__(index_name, codec, connection_manager, response, scroll)
        self._release_future: Optional[Future] = None

    @property
    def hits(self) -> Iterator[SearchHit[T]]:
        """Lazily decoded hits."""
        self._begin_iteration()
        if not self.scrolling:
            return (self._to_hit(raw) for raw in self._first_page())
        return self._iter_scrolled()

    @property
    def mapped_hits(self) -> Iterator[T]:
        """Just the decoded values of the hits."""
        return (hit.value for hit in self.hits)

    def __iter__(self) -> Iterator[SearchHit[T]]:
        return self.hits

    def _iter_scrolled(self) -> Iterator[SearchHit[T]]:
        completed = False
        try:
            page = self._first_page()
            while page:
                for raw in page:
                    yield self._to_hit(raw)
                page = self._fetch_next_page()
            completed = True
            self._exhausted = True
        finally:
            if completed:
                self._release_now()
            else:
                self.release()

    def _fetch_next_page(self) -> List[Dict[str, Any]]:
        scroll_id = self._scroll_id
        response = self._connection_manager.execute_operation(
            lambda es: es.scroll(scroll_id=scroll_id, scroll=self._scroll),
            operation_name="scroll",
            index=self.index_name
        )
        return self._next_page_from(response)

    def _clear(self, scroll_id: str):
        try:
            self._connection_manager.execute_operation(
                lambda es: es.clear_scroll(scroll_id=scroll_id),
                operation_name="clear_scroll",
                index=self.index_name
            )
            logger.debug(f"[search] Cleared scroll context for '{self.index_name}'")
        except Exception as e:
            logger.warning(f"[search] Failed to clear scroll context for '{self.index_name}': {e}")

    def _release_now(self):
        scroll_id = self._take_scroll_id()
        if scroll_id is not None:
            self._clear(scroll_id)

    def release(self) -> Optional[Future]:
        """
        Release the scroll context in the background. Idempotent.

        Returns:
            Future of the cleanup request, or None when there was nothing to
            release or no worker was available (the context then expires on
            its keep-alive).
        """
        scroll_id = self._take_scroll_id()
        if scroll_id is None:
            return self._release_future
        self._release_future = self._connection_manager.submit_background(self._clear, scroll_id)
        if self._release_future is None:
            logger.debug(f"[search] No worker available; scroll for '{self.index_name}' will expire")
        return self._release_future

    def close(self):
        self.release()

    def __enter__(self) -> "SearchResults[T]":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __del__(self):
        try:
            self.release()
        except Exception:
            pass


class AsyncSearchResults(_CursorState, Generic[T]):
    """
    Results of a non-blocking search; the async counterpart of SearchResults.

    Early abandonment schedules the scroll clear as a task on the running loop.
    """

    def __init__(self, index_name: str, codec: ModelCodec, connection_manager: Any,
                 response: Dict[str, Any], scroll: Optional[str] = None):
        super().__init__(index_name, codec, connection_manager, response, scroll)
        self._release_task: Optional[asyncio.Task] = None

    @property
    def hits(self) -> AsyncIterator[SearchHit[T]]:
        self._begin_iteration()
        if not self.scrolling:
            return self._iter_single()
        return self._iter_scrolled()

    @property
    def mapped_hits(self) -> AsyncIterator[T]:
        return self._iter_values(self.hits)

    def __aiter__(self) -> AsyncIterator[SearchHit[T]]:
        return self.hits

    @staticmethod
    async def _iter_values(hits: AsyncIterator[SearchHit[T]]) -> AsyncIterator[T]:
        async for hit in hits:
            yield hit.value

    async def _iter_single(self) -> AsyncIterator[SearchHit[T]]:
        for raw in self._first_page():
            yield self._to_hit(raw)

    async def _iter_scrolled(self) -> AsyncIterator[SearchHit[T]]:
        completed = False
        try:
            page = self._first_page()
            while page:
                for raw in page:
                    yield self._to_hit(raw)
                page = await self._fetch_next_page()
            completed = True
            self._exhausted = True
        finally:
            if completed:
                await self._release_now()
            else:
                self.release()

    async def _fetch_next_page(self) -> List[Dict[str, Any]]:
        scroll_id = self._scroll_id
        response = await self._connection_manager.execute_operation_async(
            lambda es: es.scroll(scroll_id=scroll_id, scroll=self._scroll),
            operation_name="scroll",
            index=self.index_name
        )
        return self._next_page_from(response)

    async def _clear(self, scroll_id: str):
        try:
            await self._connection_manager.execute_operation_async(
                lambda es: es.clear_scroll(scroll_id=scroll_id),
                operation_name="clear_scroll",
                index=self.index_name
            )
            logger.debug(f"[search] Cleared scroll context for '{self.index_name}'")
        except Exception as e:
            logger.warning(f"[search] Failed to clear scroll context for '{self.index_name}': {e}")

    async def _release_now(self):
        scroll_id = self._take_scroll_id()
        if scroll_id is not None:
            await self._clear(scroll_id)

    def release(self) -> Optional[asyncio.Task]:
        """
        Schedule the scroll clear on the running loop. Idempotent.

        Returns:
            The cleanup task, or None when there was nothing to release or no
            loop is running (the context then expires on its keep-alive).
        """
        scroll_id = self._take_scroll_id()
        if scroll_id is None:
            return self._release_task
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"[search] No running loop; scroll for '{self.index_name}' will expire")
            return None
        task = loop.create_task(self._clear(scroll_id))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        self._release_task = task
        return task

    async def aclose(self):
        """Release the scroll context and wait for the clear to finish."""
        task = self.release()
        if task is not None:
            await task

    async def __aenter__(self) -> "AsyncSearchResults[T]":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    def __del__(self):
        try:
            self.release()
        except Exception:
            pass

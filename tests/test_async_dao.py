import asyncio

import pytest

from data_management_operations import (
    ConcurrencyExhaustedError,
    DocumentNotFoundError,
    OperationStatus,
    VersionConflictError,
)
from search_operations import SearchCursorClosedError
from fakes import Thing


def bump(thing: Thing) -> Thing:
    return thing.model_copy(update={"amount": thing.amount + 1})


async def fill(dao, count):
    def build(buffer):
        for i in range(count):
            buffer.index(f"doc-{i:03d}", Thing(name=f"thing {i}", amount=i))

    (await dao.bulk_async(build)).raise_for_failures()


@pytest.mark.asyncio
async def test_async_crud_roundtrip(dao):
    created = await dao.index_async("a", Thing(name="a", amount=1))
    record = await dao.get_async("a")

    assert record.value == Thing(name="a", amount=1)
    assert record.version == created.version

    with pytest.raises(VersionConflictError):
        await dao.index_async("a", Thing(name="again"))

    deleted = await dao.delete_async("a", expected_version=record.version)
    assert deleted.deleted
    assert await dao.get_async("a") is None
    assert (await dao.delete_async("a")).status == OperationStatus.NOT_FOUND


@pytest.mark.asyncio
async def test_async_update_retries_after_conflict(dao):
    await dao.index_async("a", Thing(name="a"))
    calls = []

    def interfere_once(thing):
        calls.append(thing.amount)
        if len(calls) == 1:
            dao.index("a", Thing(name="a", amount=10), create=False)
        return bump(thing)

    record = await dao.update_async("a", interfere_once, max_retries=1)

    assert calls == [0, 10]
    assert record.value.amount == 11


@pytest.mark.asyncio
async def test_async_update_exhaustion_and_missing(dao):
    await dao.index_async("a", Thing(name="a"))

    def interfering(thing):
        dao.index("a", Thing(name="a", amount=thing.amount + 1), create=False)
        return bump(thing)

    with pytest.raises(ConcurrencyExhaustedError) as exc_info:
        await dao.update_async("a", interfering, max_retries=0)
    assert exc_info.value.attempts == 1

    with pytest.raises(DocumentNotFoundError):
        await dao.update_async("ghost", bump)


@pytest.mark.asyncio
async def test_concurrent_async_updates_lose_nothing(dao):
    writers = 10
    await dao.index_async("counter", Thing(name="counter"))

    await asyncio.gather(*(dao.update_async("counter", bump, writers - 1) for _ in range(writers)))

    assert (await dao.get_async("counter")).value.amount == writers


@pytest.mark.asyncio
async def test_async_bulk_with_coroutine_builder(dao):
    await dao.index_async("existing", Thing(name="existing", amount=1))

    async def build(buffer):
        current = await dao.get_async("existing")
        buffer.update("existing", current.version.seq_no, current.version.primary_term, value=bump(current.value))
        buffer.update("missing", transform=bump)
        buffer.create("new", Thing(name="new"))

    result = await dao.bulk_async(build)

    assert [o.succeeded for o in result.outcomes] == [True, False, True]
    assert result.outcomes[1].status == 404
    assert (await dao.get_async("existing")).value.amount == 2
    assert (await dao.get_async("new")) is not None


@pytest.mark.asyncio
async def test_async_buffer_context_manager(dao):
    async with dao.bulk_buffer() as buffer:
        buffer.index("a", Thing(name="a"))

    assert buffer.consumed
    assert buffer.result.successful_count == 1


@pytest.mark.asyncio
async def test_async_scrolled_search(dao, fake_es):
    await fill(dao, 103)

    results = await dao.search_async(scroll="1m", size=5)
    hits = [hit async for hit in results]

    assert results.total_hits == 103
    assert len(hits) == 103
    assert fake_es.scroll_calls == 21
    assert fake_es.cleared_scrolls == ["scroll-1"]
    assert fake_es.open_scrolls == []

    with pytest.raises(SearchCursorClosedError):
        [hit async for hit in results]


@pytest.mark.asyncio
async def test_async_plain_search_mapped_values(dao):
    await fill(dao, 4)

    results = await dao.search_async(query={"term": {"amount": 2}})
    values = [value async for value in results.mapped_hits]
    again = [hit.id async for hit in results]

    assert values == [Thing(name="thing 2", amount=2)]
    assert again == ["doc-002"]


@pytest.mark.asyncio
async def test_async_context_manager_releases_abandoned_scroll(dao, fake_es):
    await fill(dao, 30)

    async with await dao.search_async(scroll="1m", size=5) as results:
        async for hit in results:
            break

    assert fake_es.cleared_scrolls == ["scroll-1"]
    assert fake_es.open_scrolls == []


@pytest.mark.asyncio
async def test_async_abandoned_iteration_releases_in_the_background(dao, fake_es):
    await fill(dao, 30)
    results = await dao.search_async(scroll="1m", size=5)

    seen = 0
    async for _ in results:
        seen += 1
        if seen == 7:
            break

    for _ in range(100):
        if fake_es.cleared_scrolls:
            break
        await asyncio.sleep(0.01)

    assert fake_es.cleared_scrolls == ["scroll-1"]
    assert fake_es.scroll_calls == 1


@pytest.mark.asyncio
async def test_async_refresh(dao, fake_es):
    await dao.refresh_index_async()
    assert fake_es.refresh_count == 1

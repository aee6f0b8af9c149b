from concurrent.futures import ThreadPoolExecutor

import pytest
from elasticsearch import ConnectionTimeout

from connection_management import ConnectionTimeoutError
from data_management_operations import (
    ConcurrencyExhaustedError,
    DataOperationConfig,
    DocumentNotFoundError,
    VersionConflictError,
)
from index_dao import IndexDAO
from fakes import Thing


def bump(thing: Thing) -> Thing:
    return thing.model_copy(update={"amount": thing.amount + 1})


def test_uncontended_update_succeeds_on_first_attempt(dao):
    dao.index("a", Thing(name="a", amount=1))
    seen = []

    def recording_bump(thing):
        seen.append(thing.amount)
        return bump(thing)

    record = dao.update("a", recording_bump)

    assert seen == [1]
    assert record.value.amount == 2
    stored = dao.get("a")
    assert stored.value.amount == 2
    assert stored.version == record.version


def test_update_of_missing_document_raises_not_found(dao):
    with pytest.raises(DocumentNotFoundError) as exc_info:
        dao.update("ghost", bump)
    assert exc_info.value.doc_id == "ghost"


def test_forced_conflict_without_retries_exhausts_after_one_attempt(dao):
    dao.index("a", Thing(name="a"))

    def interfering(thing):
        dao.index("a", Thing(name="a", amount=100), create=False)
        return bump(thing)

    with pytest.raises(ConcurrencyExhaustedError) as exc_info:
        dao.update("a", interfering, max_retries=0)

    assert exc_info.value.attempts == 1
    assert isinstance(exc_info.value.__cause__, VersionConflictError)
    assert dao.get("a").value.amount == 100


def test_conflict_is_retried_from_a_fresh_read(dao):
    dao.index("a", Thing(name="a"))
    calls = []

    def interfere_once(thing):
        calls.append(thing.amount)
        if len(calls) == 1:
            dao.index("a", Thing(name="a", amount=10), create=False)
        return bump(thing)

    record = dao.update("a", interfere_once, max_retries=1)

    assert calls == [0, 10]
    assert record.value.amount == 11
    assert dao.get("a").value.amount == 11


def test_default_retry_bound_allows_three_attempts(dao):
    dao.index("a", Thing(name="a"))
    calls = []

    def always_interfering(thing):
        calls.append(thing.amount)
        dao.index("a", Thing(name="a", amount=thing.amount + 50), create=False)
        return bump(thing)

    with pytest.raises(ConcurrencyExhaustedError) as exc_info:
        dao.update("a", always_interfering)

    assert exc_info.value.attempts == 3
    assert len(calls) == 3


def test_configured_retry_bound_is_used(connection_manager, codec):
    dao = IndexDAO("things", codec, connection_manager, config=DataOperationConfig(default_max_update_retries=0))
    dao.index("a", Thing(name="a"))

    def interfering(thing):
        dao.index("a", Thing(name="a", amount=7), create=False)
        return bump(thing)

    with pytest.raises(ConcurrencyExhaustedError) as exc_info:
        dao.update("a", interfering)
    assert exc_info.value.attempts == 1


def test_negative_retry_bound_is_rejected(dao):
    dao.index("a", Thing(name="a"))

    with pytest.raises(ValueError):
        dao.update("a", bump, max_retries=-1)


def test_transport_failures_are_not_retried(dao, fake_es, monkeypatch):
    dao.index("a", Thing(name="a"))
    attempts = []

    def timing_out(**kwargs):
        attempts.append(kwargs)
        raise ConnectionTimeout("request timed out")

    monkeypatch.setattr(fake_es, "index", timing_out)

    with pytest.raises(ConnectionTimeoutError):
        dao.update("a", bump, max_retries=5)
    assert len(attempts) == 1


def test_concurrent_writers_lose_no_updates(dao):
    writers = 10
    dao.index("counter", Thing(name="counter"))

    with ThreadPoolExecutor(max_workers=writers) as pool:
        futures = [pool.submit(dao.update, "counter", bump, writers - 1) for _ in range(writers)]
        records = [f.result() for f in futures]

    assert dao.get("counter").value.amount == writers
    assert sorted(r.value.amount for r in records) == list(range(1, writers + 1))

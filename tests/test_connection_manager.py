import asyncio
import threading
import uuid
from types import SimpleNamespace

import pytest
from elasticsearch import (
    ApiError,
    ConflictError,
    ConnectionError as ESConnectionError,
    ConnectionTimeout,
    NotFoundError,
    TransportError,
)

import connection_management.connection_pool as connection_pool
from config import IndexDAOSettings
from connection_management import (
    ConnectionClosedError,
    ConnectionError,
    ConnectionInitializationError,
    ConnectionManager,
    ConnectionTimeoutError,
    ElasticsearchClientPool,
    ServerUnavailableError,
    response_body,
    translate_transport_error,
)
from index_dao_exceptions import (
    DocumentNotFoundError,
    IndexNotFoundError,
    TransportFailureError,
    VersionConflictError,
)
from fakes import FakeElasticsearch


def api_error(cls, status, body):
    return cls(message="error", meta=SimpleNamespace(status=status), body=body)


def test_conflicts_translate_to_version_conflicts():
    error = api_error(ConflictError, 409, {"error": {"type": "version_conflict_engine_exception"}})

    translated = translate_transport_error(error, "index", index="things", doc_id="a")

    assert isinstance(translated, VersionConflictError)
    assert translated.index == "things"
    assert translated.doc_id == "a"


def test_missing_index_and_missing_document_are_distinguished():
    missing_index = api_error(NotFoundError, 404, {"error": {"type": "index_not_found_exception"}, "status": 404})
    missing_doc = api_error(NotFoundError, 404, {"_index": "things", "_id": "a", "found": False})
    missing_scroll = api_error(NotFoundError, 404, {"error": {"type": "search_context_missing_exception"}})

    assert isinstance(translate_transport_error(missing_index, "get", index="things"), IndexNotFoundError)
    assert isinstance(translate_transport_error(missing_doc, "get", index="things", doc_id="a"),
                      DocumentNotFoundError)

    scroll_error = translate_transport_error(missing_scroll, "scroll", index="things")
    assert type(scroll_error) is TransportFailureError
    assert scroll_error.status_code == 404
    assert scroll_error.error_type == "search_context_missing_exception"


def test_engine_errors_keep_status_and_type():
    bad_request = api_error(ApiError, 400, {"error": {"type": "parsing_exception", "reason": "bad query"}})
    unavailable = api_error(ApiError, 503, {"error": {"type": "cluster_block_exception"}})

    translated = translate_transport_error(bad_request, "search", index="things")
    assert type(translated) is TransportFailureError
    assert translated.status_code == 400
    assert translated.error_type == "parsing_exception"

    assert isinstance(translate_transport_error(unavailable, "search"), ServerUnavailableError)


def test_network_errors_translate_to_connection_errors():
    assert isinstance(translate_transport_error(ConnectionTimeout("slow"), "get"), ConnectionTimeoutError)
    assert isinstance(translate_transport_error(ESConnectionError("refused"), "get"), ServerUnavailableError)
    assert isinstance(translate_transport_error(TransportError("odd"), "get"), ConnectionError)


def test_unrelated_errors_are_not_translated():
    assert translate_transport_error(ValueError("mine"), "get") is None


def test_response_body_unwraps_client_responses():
    wrapped = SimpleNamespace(body={"acknowledged": True}, meta=SimpleNamespace(status=200))

    assert response_body(wrapped) == {"acknowledged": True}
    assert response_body({"plain": 1}) == {"plain": 1}
    assert response_body(True) is True


def test_execute_operation_returns_bodies_and_translates(connection_manager, fake_es):
    wrapped = SimpleNamespace(body={"count": 3}, meta=SimpleNamespace(status=200))

    assert connection_manager.execute_operation(lambda es: wrapped, "count") == {"count": 3}
    assert connection_manager.execute_operation(lambda es: es is fake_es, "identity") is True

    with pytest.raises(DocumentNotFoundError):
        connection_manager.execute_operation(lambda es: es.get(index="things", id="nope"), "get",
                                             index="things", doc_id="nope")

    def own_bug(es):
        raise KeyError("not a client error")

    with pytest.raises(KeyError):
        connection_manager.execute_operation(own_bug, "buggy")


@pytest.mark.asyncio
async def test_execute_operation_async(connection_manager, fake_es):
    fake_es.index(index="things", id="a", document={"name": "a"})

    body = await connection_manager.execute_operation_async(lambda es: es.get(index="things", id="a"), "get")

    assert body["_source"] == {"name": "a"}
    assert await connection_manager.check_server_status_async() is True


def test_background_work_runs_on_worker_threads(connection_manager):
    future = connection_manager.submit_background(lambda x: x * 2, 21)

    assert future.result(timeout=5) == 42


def test_closed_manager_rejects_work(settings, fake_es):
    manager = ConnectionManager(settings, client=fake_es)
    assert manager.check_server_status() is True

    manager.close()
    manager.close()

    assert manager.closed
    assert manager.check_server_status() is False
    assert manager.submit_background(print, "never") is None
    assert fake_es.closed is False
    with pytest.raises(ConnectionClosedError):
        manager.execute_operation(lambda es: es.ping(), "ping")


def test_sync_only_manager_has_no_async_client(settings, fake_es):
    manager = ConnectionManager(settings, client=fake_es)
    try:
        with pytest.raises(ConnectionClosedError):
            manager.async_client
    finally:
        manager.close()


class RecordingClient(FakeElasticsearch):
    created = []

    def __init__(self, **kwargs):
        super().__init__()
        self.kwargs = kwargs
        RecordingClient.created.append(self)


class RecordingAsyncClient:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.closed = False

    async def close(self):
        self.closed = True


@pytest.fixture
def patched_clients(monkeypatch):
    RecordingClient.created = []
    monkeypatch.setattr(connection_pool, "Elasticsearch", RecordingClient)
    monkeypatch.setattr(connection_pool, "AsyncElasticsearch", RecordingAsyncClient)
    return RecordingClient


def unique_settings(**connection):
    connection.setdefault("hosts", [f"http://{uuid.uuid4().hex}:9200"])
    return IndexDAOSettings(connection=connection)


def test_managers_with_equal_settings_share_one_client(patched_clients):
    settings = unique_settings(username="elastic", password="secret")

    first = ConnectionManager(settings)
    second = ConnectionManager(settings)
    pool = ElasticsearchClientPool(settings)

    assert first.client is second.client
    assert len(patched_clients.created) == 1
    assert pool.reference_count == 2
    client = first.client
    assert client.kwargs["hosts"] == settings.connection.hosts
    assert client.kwargs["basic_auth"] == ("elastic", "secret")
    assert client.kwargs["max_retries"] == 0

    first.close()
    assert not client.closed
    assert pool.reference_count == 1

    second.close()
    assert client.closed
    assert pool.closed


def test_async_client_is_created_lazily_and_closed_with_the_pool(patched_clients):
    settings = unique_settings(api_key="encoded-key")
    manager = ConnectionManager(settings)

    async_client = manager.async_client
    assert isinstance(async_client, RecordingAsyncClient)
    assert async_client.kwargs["api_key"] == "encoded-key"
    assert manager.async_client is async_client

    manager.close()
    assert async_client.closed


@pytest.mark.asyncio
async def test_async_close_awaits_the_async_client(patched_clients):
    settings = unique_settings()

    async with ConnectionManager(settings) as manager:
        async_client = manager.async_client

    assert async_client.closed
    assert patched_clients.created[0].closed


def test_client_creation_failure(monkeypatch):
    def broken(**kwargs):
        raise ValueError("bad host")

    monkeypatch.setattr(connection_pool, "Elasticsearch", broken)
    settings = unique_settings()

    with pytest.raises(ConnectionInitializationError):
        ConnectionManager(settings)
    assert settings.connection.pool_key() not in ElasticsearchClientPool._instances


def test_manager_created_after_last_release_gets_a_fresh_pool(patched_clients):
    settings = unique_settings()
    holder = ConnectionManager(settings)
    stale = ElasticsearchClientPool(settings)
    old_client = holder.client

    holder.close()

    assert stale.closed
    with pytest.raises(ConnectionClosedError):
        stale.acquire_reference()

    fresh = ConnectionManager(settings)
    try:
        assert fresh.client is not old_client
        assert not fresh.client.closed
        assert ElasticsearchClientPool(settings).reference_count == 1
    finally:
        fresh.close()


def test_concurrent_open_and_close_never_hands_out_a_closed_pool(patched_clients):
    settings = unique_settings()
    errors = []

    def churn():
        for _ in range(50):
            try:
                manager = ConnectionManager(settings)
                manager.execute_operation(lambda es: es.ping(), "ping")
                manager.close()
            except Exception as e:
                errors.append(e)

    threads = [threading.Thread(target=churn) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert settings.connection.pool_key() not in ElasticsearchClientPool._instances


@pytest.mark.asyncio
async def test_sync_close_inside_a_loop_finishes_the_async_client_close(patched_clients):
    manager = ConnectionManager(unique_settings())
    async_client = manager.async_client

    manager.close()

    pending = set(connection_pool._background_tasks)
    assert pending
    await asyncio.gather(*pending)
    assert async_client.closed

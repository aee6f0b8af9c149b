import logging

import pytest

from config import IndexDAOSettings
from data_management_operations import PydanticModelCodec
from index_dao import IndexDAO, IndexDAOClient
from index_dao_exceptions import ConfigurationError
from fakes import FakeAsyncElasticsearch, FakeElasticsearch, Thing


@pytest.fixture
def restore_log_levels():
    names = ["index_dao", "config", "connection_management", "data_management_operations", "search_operations"]
    levels = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


def test_daos_inherit_configured_defaults(restore_log_levels):
    fake = FakeElasticsearch()
    settings = IndexDAOSettings(dao={"refresh": "wait_for", "default_max_update_retries": 7})

    with IndexDAOClient(settings, client=fake) as client:
        dao = client.crud_dao("things", PydanticModelCodec(Thing))
        dao.index("a", Thing(name="a"))

        assert isinstance(dao, IndexDAO)
        assert dao.config.default_max_update_retries == 7
        assert fake.write_params[-1]["refresh"] == "wait_for"
        assert client.ping() is True

    assert client.connection_manager.closed


def test_yaml_config_path_sets_log_levels(tmp_path, restore_log_levels):
    path = tmp_path / "config.yaml"
    path.write_text("monitoring:\n  log_level: debug\ndao:\n  max_bulk_items: 5\n")

    client = IndexDAOClient(path, client=FakeElasticsearch())
    try:
        assert client.dao_config.max_bulk_items == 5
        assert logging.getLogger("search_operations").level == logging.DEBUG
        assert logging.getLogger("index_dao").level == logging.DEBUG
    finally:
        client.close()


def test_unsupported_config_type():
    with pytest.raises(ConfigurationError):
        IndexDAOClient({"dao": {}})


def test_unknown_log_level(restore_log_levels):
    settings = IndexDAOSettings(monitoring={"log_level": "chatty"})

    with pytest.raises(ConfigurationError):
        IndexDAOClient(settings, client=FakeElasticsearch())


@pytest.mark.asyncio
async def test_async_client_context(restore_log_levels):
    backend = FakeElasticsearch()

    async with IndexDAOClient(IndexDAOSettings(), client=backend,
                              async_client=FakeAsyncElasticsearch(backend)) as client:
        dao = client.crud_dao("things", PydanticModelCodec(Thing))
        await dao.index_async("a", Thing(name="a", amount=3))

        assert await client.ping_async() is True
        assert (await dao.get_async("a")).value.amount == 3

    assert client.connection_manager.closed

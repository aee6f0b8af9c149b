"""
Pytest configuration and shared fixtures.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import IndexDAOSettings  # noqa: E402
from connection_management import ConnectionManager  # noqa: E402
from data_management_operations import DataOperationConfig, PydanticModelCodec  # noqa: E402
from index_dao import IndexDAO  # noqa: E402

from fakes import FakeAsyncElasticsearch, FakeElasticsearch, Thing  # noqa: E402


@pytest.fixture
def settings() -> IndexDAOSettings:
    return IndexDAOSettings()


@pytest.fixture
def fake_es() -> FakeElasticsearch:
    return FakeElasticsearch(indices=["things"])


@pytest.fixture
def fake_async_es(fake_es) -> FakeAsyncElasticsearch:
    return FakeAsyncElasticsearch(fake_es)


@pytest.fixture
def connection_manager(settings, fake_es, fake_async_es):
    manager = ConnectionManager(settings, client=fake_es, async_client=fake_async_es)
    yield manager
    manager.close()


@pytest.fixture
def codec() -> PydanticModelCodec:
    return PydanticModelCodec(Thing)


@pytest.fixture
def dao(connection_manager, codec) -> IndexDAO:
    return IndexDAO("things", codec, connection_manager, config=DataOperationConfig())

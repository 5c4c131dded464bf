import logging

import pytest

from fakes import SITES, FakeDataClient, FakeLLMClient
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from shared.models.entities import EntityType
from shared.stores.VectorStore import VectorStore


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("site_rag.tests")))


@pytest.fixture
def store_path(tmp_path) -> str:
    return str(tmp_path / "vector_store.json")


@pytest.fixture
def vector_store(helper_config, store_path) -> VectorStore:
    return VectorStore(helper_config=helper_config, path=store_path)


@pytest.fixture
def fake_llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def fake_data() -> FakeDataClient:
    return FakeDataClient({EntityType.SITE: [dict(site) for site in SITES]})

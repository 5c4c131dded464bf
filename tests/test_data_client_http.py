import httpx
import pytest

from shared.clients.data.DataClientManager import DataClientManager
from shared.clients.data.http.DataClientHttp import DataClientHttp
from shared.models.entities import EntityType
from shared.models.errors import BackendUnavailable, InvalidBackendResponse


@pytest.fixture(autouse=True)
def provider_env(monkeypatch):
    monkeypatch.setenv("DATA_HTTP_BASE_URL", "http://sites.test")
    monkeypatch.setenv("DATA_HTTP_API_KEY", "secret")
    monkeypatch.setenv("DATA_BACKOFF_SECONDS", "0")
    monkeypatch.setenv("DATA_PAGE_SIZE", "2")


async def make_client(helper_config, handler) -> DataClientHttp:
    client = DataClientManager(helper_config=helper_config).get_client()
    await client.boot()
    await client._client.aclose()
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


@pytest.mark.asyncio
async def test_follows_pagination(helper_config):
    pages = {
        "1": {"results": [{"id": 1}, {"id": 2}], "next_page": 2, "count": 3},
        "2": {"results": [{"id": 3}], "next_page": None, "count": 3},
    }
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=pages[request.url.params["page"]])

    client = await make_client(helper_config, handler)
    entities = await client.do_fetch_entities(EntityType.SITE)
    await client.close()

    assert [e["id"] for e in entities] == [1, 2, 3]
    assert [r.url.path for r in requests] == ["/api/rag/entities/site"] * 2
    assert requests[0].url.params["page_size"] == "2"
    assert requests[0].headers["X-Api-Key"] == "secret"


@pytest.mark.asyncio
async def test_listing_cut_at_max_pages_is_an_error(helper_config, monkeypatch):
    monkeypatch.setenv("DATA_MAX_PAGES", "3")
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"results": [{"id": len(calls)}], "next_page": len(calls) + 1})

    client = await make_client(helper_config, handler)
    with pytest.raises(InvalidBackendResponse):
        await client.do_fetch_entities(EntityType.TASK)
    await client.close()

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_last_page_exactly_at_max_pages_is_complete(helper_config, monkeypatch):
    monkeypatch.setenv("DATA_MAX_PAGES", "2")

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        return httpx.Response(200, json={"results": [{"id": page}], "next_page": page + 1 if page < 2 else None})

    client = await make_client(helper_config, handler)
    entities = await client.do_fetch_entities(EntityType.TASK)
    await client.close()

    assert [e["id"] for e in entities] == [1, 2]


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"items": []}, {"results": [], "next_page": "2"}, ["not", "a", "page"]])
async def test_malformed_page_is_invalid_response(helper_config, payload):
    client = await make_client(helper_config, lambda request: httpx.Response(200, json=payload))
    with pytest.raises(InvalidBackendResponse):
        await client.do_fetch_entities(EntityType.CLIENT)
    await client.close()


@pytest.mark.asyncio
async def test_unreachable_provider(helper_config):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = await make_client(helper_config, handler)
    with pytest.raises(BackendUnavailable):
        await client.do_fetch_entities(EntityType.SITE)
    await client.close()


def test_unknown_engine_is_rejected(helper_config, monkeypatch):
    monkeypatch.setenv("DATA_ENGINE", "ftp")
    with pytest.raises(ValueError):
        DataClientManager(helper_config=helper_config)

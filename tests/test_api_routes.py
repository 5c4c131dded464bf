import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from server.api_server import register_routes
from server.core.QueryEngine import QueryEngine
from services.rag_indexing.IndexService import IndexService
from services.scheduler.PeriodicTask import PeriodicTask
from shared.stores.ConversationStore import ConversationStore

API_KEY = "test-key"
HEADERS = {"X-Api-Key": API_KEY, "X-User-Id": "user-1"}


async def broken_purge() -> None:
    raise RuntimeError("purge failed")


@pytest.fixture
def app(monkeypatch, helper_config, fake_llm, fake_data, vector_store) -> FastAPI:
    monkeypatch.setenv("API_SERVER_API_KEY", API_KEY)
    app = FastAPI()
    register_routes(app)
    app.state.helper_config = helper_config
    app.state.logging = helper_config.get_logger()
    app.state.llm_client = fake_llm
    app.state.vector_store = vector_store
    app.state.conversation_store = ConversationStore(helper_config=helper_config)
    app.state.index_service = IndexService(
        helper_config=helper_config,
        data_client=fake_data,
        llm_client=fake_llm,
        vector_store=vector_store,
    )
    app.state.query_engine = QueryEngine(helper_config=helper_config, llm_client=fake_llm, vector_store=vector_store)
    app.state.answer_timeout = 5.0
    app.state.periodic_tasks = [
        PeriodicTask(
            helper_config=helper_config,
            name="conversation-purge",
            interval_seconds=600,
            action=broken_purge,
        ),
        PeriodicTask(
            helper_config=helper_config,
            name="reindex",
            interval_seconds=0,
            action=app.state.index_service.index_all,
        ),
    ]
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


class TestAuth:
    @pytest.mark.parametrize("path", ["/rag/conversation", "/rag/status", "/rag/health"])
    def test_missing_api_key_is_rejected(self, client, path):
        response = client.get(path, headers={"X-User-Id": "user-1"})

        assert response.status_code == 401
        assert response.json()["error"]["kind"] == "unauthorized"

    def test_wrong_api_key_is_rejected(self, client):
        response = client.get("/rag/conversation", headers={"X-Api-Key": "nope", "X-User-Id": "user-1"})
        assert response.status_code == 401

    def test_missing_user_is_rejected(self, client):
        response = client.post("/rag/query", json={"question": "chantier"}, headers={"X-Api-Key": API_KEY})
        assert response.status_code == 401


class TestConversation:
    def test_append_read_and_clear(self, client):
        assert client.get("/rag/conversation", headers=HEADERS).json() == {"conversation": []}

        first = client.post("/rag/conversation", json={"message": {"type": "user", "content": "Bonjour"}}, headers=HEADERS)
        client.post("/rag/conversation", json={"message": {"type": "bot", "content": "Salut"}}, headers=HEADERS)

        assert first.json() == {"success": True}
        conversation = client.get("/rag/conversation", headers=HEADERS).json()["conversation"]
        assert [(m["type"], m["content"]) for m in conversation] == [("user", "Bonjour"), ("assistant", "Salut")]

        assert client.delete("/rag/conversation", headers=HEADERS).json() == {"success": True}
        assert client.get("/rag/conversation", headers=HEADERS).json() == {"conversation": []}

    def test_conversations_are_per_user(self, client):
        client.post("/rag/conversation", json={"message": {"type": "user", "content": "Bonjour"}}, headers=HEADERS)

        other = client.get("/rag/conversation", headers={**HEADERS, "X-User-Id": "user-2"})

        assert other.json() == {"conversation": []}

    @pytest.mark.parametrize("body", [{"message": {"type": "user"}}, {"message": {"content": "x"}}, {}])
    def test_malformed_message_is_a_bad_request(self, client, body):
        response = client.post("/rag/conversation", json=body, headers=HEADERS)

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "invalid_request"

    def test_non_json_body_is_a_bad_request(self, client):
        response = client.post(
            "/rag/conversation",
            content=b"not json",
            headers={**HEADERS, "Content-Type": "application/json"},
        )
        assert response.status_code == 400


class TestIndex:
    def test_stats_does_not_index(self, client, fake_llm):
        body = client.post("/rag/index", json={"action": "stats"}, headers=HEADERS).json()

        assert body["action"] == "stats"
        assert body["stats"]["site"] == 0
        assert body["report"] is None
        assert fake_llm.embed_calls == 0

    def test_index_all_then_clear(self, client):
        indexed = client.post("/rag/index", json={"action": "index-all"}, headers=HEADERS).json()

        assert indexed["stats"]["site"] == 3
        assert indexed["report"]["totals"]["indexed"] == 3
        assert indexed["report"]["types"]["site"]["status"] == "ok"

        cleared = client.post("/rag/index", json={"action": "clear"}, headers=HEADERS).json()
        assert set(cleared["stats"].values()) == {0}

    def test_index_type_only_reports_that_type(self, client):
        body = client.post("/rag/index", json={"action": "index-type", "entity_type": "site"}, headers=HEADERS).json()

        assert list(body["report"]["types"]) == ["site"]

    @pytest.mark.parametrize("body", [
        {"action": "index-type"},
        {"action": "rebuild"},
        {"action": "index-type", "entity_type": "spaceship"},
    ])
    def test_invalid_actions_are_bad_requests(self, client, body):
        response = client.post("/rag/index", json=body, headers=HEADERS)

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "invalid_request"


class TestQuery:
    def test_answers_with_sources_without_embeddings(self, client):
        client.post("/rag/index", json={"action": "index-all"}, headers=HEADERS)

        response = client.post("/rag/query", json={"question": "chantier Lantin"}, headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["answer"] == "Réponse de test."
        assert body["sources"][0]["id"] == "site-1"
        assert "embedding" not in body["sources"][0]
        assert 0 < body["confidence"] <= 1

    def test_context_filter_is_applied(self, client):
        client.post("/rag/index", json={"action": "index-all"}, headers=HEADERS)

        body = client.post(
            "/rag/query",
            json={"question": "chantier", "context": {"scope_id": "3"}},
            headers=HEADERS,
        ).json()

        assert [s["id"] for s in body["sources"]] == ["site-3"]

    @pytest.mark.parametrize("body", [{"question": "  "}, {}, {"question": "chantier", "context": {"limit": 0}}])
    def test_invalid_question_is_a_bad_request(self, client, body):
        response = client.post("/rag/query", json=body, headers=HEADERS)
        assert response.status_code == 400

    def test_backend_down_is_service_unavailable(self, client, fake_llm):
        fake_llm.fail_embed = True

        response = client.post("/rag/query", json={"question": "chantier Namur"}, headers=HEADERS)

        assert response.status_code == 503
        assert response.json()["error"]["kind"] == "backend_unavailable"
        assert "Traceback" not in response.text

    def test_slow_backend_times_out(self, app, client, fake_llm):
        fake_llm.embed_delay = 0.5
        app.state.answer_timeout = 0.05

        response = client.post("/rag/query", json={"question": "chantier"}, headers=HEADERS)

        assert response.status_code == 503


class TestStatusAndHealth:
    def test_status_reflects_the_index(self, client):
        before = client.get("/rag/status", headers=HEADERS).json()
        client.post("/rag/index", json={"action": "index-all"}, headers=HEADERS)
        after = client.get("/rag/status", headers=HEADERS).json()

        assert before["is_indexed"] is False
        assert before["last_report"] is None
        assert after["total"] == 3
        assert after["is_indexed"] is True
        assert after["is_indexing"] is False
        assert after["last_report"]["totals"]["indexed"] == 3

    def test_health_when_backend_is_up(self, client):
        body = client.get("/rag/health", headers=HEADERS).json()

        assert body["backend"]["healthy"] is True
        assert body["backend"]["models_available"] is True
        assert body["vector_store"]["total"] == 0
        assert body["conversations"]["active_conversations"] == 0
        assert body["overall"] is True

    def test_health_when_backend_is_down(self, client, fake_llm):
        fake_llm.healthy = False

        response = client.get("/rag/health", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["backend"]["healthy"] is False
        assert response.json()["overall"] is False

    def test_status_lists_background_tasks(self, app, client):
        purge = app.state.periodic_tasks[0]
        asyncio.run(purge.run_once())

        tasks = {t["name"]: t for t in client.get("/rag/status", headers=HEADERS).json()["tasks"]}

        assert set(tasks) == {"conversation-purge", "reindex"}
        assert tasks["conversation-purge"]["interval_seconds"] == 600
        assert tasks["conversation-purge"]["is_running"] is False
        assert (tasks["conversation-purge"]["runs"], tasks["conversation-purge"]["failures"]) == (1, 1)
        assert tasks["conversation-purge"]["last_run_at"] is not None
        assert tasks["reindex"]["enabled"] is False
        assert tasks["reindex"]["runs"] == 0


class TestSchema:
    @pytest.mark.parametrize("path", ["/rag/conversation", "/rag/index", "/rag/query"])
    def test_request_bodies_are_published(self, app, path):
        operation = app.openapi()["paths"][path]["post"]

        assert operation["requestBody"]["required"] is True
        assert "application/json" in operation["requestBody"]["content"]

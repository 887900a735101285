import httpx
import openai
import pytest
from fastapi.testclient import TestClient

from conftest import KORAMANGALA_PAYLOAD, LLM_REQUEST, FailingStore
from rental_search.errors import PropertyStoreError
from rental_search.main import app, get_registry
from rental_search.property_search import SessionRegistry


@pytest.fixture
def registry_for(make_session):
    def _install(*replies, **kwargs):
        registry = SessionRegistry(lambda: make_session(*replies, **kwargs)[0])
        app.dependency_overrides[get_registry] = lambda: registry
        return registry

    yield _install
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_chat_returns_search_result_with_session(client, registry_for):
    registry_for(KORAMANGALA_PAYLOAD)
    resp = client.post("/chat", json={"query": "Show me 2BHK under 15k near Koramangala with parking"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["session_id"]
    assert body["failure"] is None
    assert body["filters"]["property_type"] == "2bhk"
    assert body["filters"]["max_budget"] == 15000
    assert body["filters"]["amenities"] == ["parking"]
    assert [p["id"] for p in body["properties"]] == ["p2", "p1"]
    assert body["message"].startswith("Looking for 2BHK")
    assert len(body["suggestions"]) == 3


def test_chat_keeps_history_per_session_until_reset(client, registry_for):
    registry = registry_for("{}")
    first = client.post("/chat", json={"query": "2BHK", "session_id": "s1"}).json()
    client.post("/chat", json={"query": "under 15000", "session_id": "s1"})
    client.post("/chat", json={"query": "villa", "session_id": "s2"})

    assert first["session_id"] == "s1"
    assert len(registry.get_or_create("s1")[1].history) == 4
    assert len(registry.get_or_create("s2")[1].history) == 2

    resp = client.post("/chat/reset", json={"session_id": "s1"})
    assert resp.json() == {"session_id": "s1", "history_length": 0}
    assert registry.get_or_create("s1")[1].history == []


def test_blank_query_asks_for_a_message(client, registry_for):
    registry = registry_for(KORAMANGALA_PAYLOAD)
    body = client.post("/chat", json={"query": "   ", "session_id": "s1"}).json()
    assert body["message"] == "Please type a message."
    assert body["session_id"] == "s1"
    assert body["properties"] == []
    assert "s1" not in registry


def test_blank_queries_do_not_create_sessions(client, registry_for):
    registry = registry_for(KORAMANGALA_PAYLOAD)
    ids = {client.post("/chat", json={"query": ""}).json()["session_id"] for _ in range(5)}
    assert len(ids) == 5
    assert len(registry) == 0


def test_reset_forgets_the_session(client, registry_for):
    registry = registry_for("{}")
    client.post("/chat", json={"query": "2BHK", "session_id": "s1"})
    assert "s1" in registry
    client.post("/chat/reset", json={"session_id": "s1"})
    assert "s1" not in registry


@pytest.mark.parametrize("error, status, failure", [
    (openai.RateLimitError("slow", response=httpx.Response(429, request=LLM_REQUEST), body=None),
     429, "rate_limited"),
    (openai.APIStatusError("pay", response=httpx.Response(402, request=LLM_REQUEST), body=None),
     402, "quota_exhausted"),
    (openai.APIConnectionError(request=LLM_REQUEST), 503, "unavailable"),
])
def test_upstream_failures_map_to_statuses(client, registry_for, error, status, failure):
    registry_for(error)
    resp = client.post("/chat", json={"query": "2BHK", "session_id": "s1"})
    assert resp.status_code == status
    body = resp.json()
    assert body["failure"] == failure
    assert body["session_id"] == "s1"
    assert body["properties"] == []
    assert body["message"]


def test_store_failure_is_still_a_successful_response(client, registry_for):
    registry_for(KORAMANGALA_PAYLOAD, store=FailingStore(PropertyStoreError("db down")))
    resp = client.post("/chat", json={"query": "2BHK"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["failure"] == "store_unavailable"
    assert body["properties"] == []
    assert body["filters"]["property_type"] == "2bhk"

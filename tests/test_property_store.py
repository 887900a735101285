import json

import pytest
import requests

from conftest import record
from rental_search.config import Settings
from rental_search.errors import FailureKind, PropertyStoreError
from rental_search.property_store import InMemoryPropertyStore, PropertyStore
from rental_search.query_builder import build_query
from rental_search.schemas import Filters


class FakeResponse:
    def __init__(self, payload=None, status=200, body=None):
        self.payload = payload
        self.status_code = status
        self.body = body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=None)

    def json(self):
        if self.body is not None:
            return json.loads(self.body)
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


def test_fetch_sends_postgrest_params_and_auth_headers():
    session = FakeSession(FakeResponse([record("p1")]))
    store = PropertyStore("https://db.test/", api_key="anon-key", timeout=3, session=session)
    query = build_query(Filters(property_type="2bhk", max_budget=15000))

    properties = store.fetch(query)

    url, kwargs = session.calls[0]
    assert url == "https://db.test/rest/v1/properties"
    assert kwargs["params"] == query.to_params()
    assert kwargs["timeout"] == 3
    assert kwargs["headers"]["apikey"] == "anon-key"
    assert kwargs["headers"]["Authorization"] == "Bearer anon-key"
    assert [p.id for p in properties] == ["p1"]
    assert properties[0].city.name == "Bengaluru"


def test_fetch_without_api_key_sends_no_auth():
    session = FakeSession(FakeResponse([]))
    PropertyStore("https://db.test", session=session).fetch(build_query(Filters()))
    headers = session.calls[0][1]["headers"]
    assert "apikey" not in headers and "Authorization" not in headers


@pytest.mark.parametrize("session", [
    FakeSession(error=requests.exceptions.Timeout("slow")),
    FakeSession(error=requests.exceptions.ConnectionError("down")),
    FakeSession(FakeResponse(status=500)),
    FakeSession(FakeResponse(body="<html>oops</html>")),
    FakeSession(FakeResponse({"message": "relation does not exist"})),
])
def test_store_failures_raise_property_store_error(session):
    store = PropertyStore("https://db.test", session=session)
    with pytest.raises(PropertyStoreError) as excinfo:
        store.fetch(build_query(Filters()))
    assert excinfo.value.kind is FailureKind.STORE_UNAVAILABLE


def test_malformed_rows_are_skipped():
    session = FakeSession(FakeResponse([{"title": "no id"}, record("p2")]))
    properties = PropertyStore("https://db.test", session=session).fetch(build_query(Filters()))
    assert [p.id for p in properties] == ["p2"]


def test_from_settings_requires_store_url():
    with pytest.raises(RuntimeError):
        PropertyStore.from_settings(Settings())
    store = PropertyStore.from_settings(Settings(store_url="https://db.test", store_timeout=2.5))
    assert store.url == "https://db.test/rest/v1/properties"
    assert store.timeout == 2.5


def test_in_memory_store_orders_newest_first_and_caps(store):
    properties = store.fetch(build_query(Filters(), limit=3))
    assert [p.id for p in properties] == ["p7", "p6", "p3"]


def test_in_memory_store_end_to_end_query(store):
    filters = Filters(property_type="2bhk", max_budget=15000, locality="Koramangala")
    properties = store.fetch(build_query(filters))
    assert [p.id for p in properties] == ["p2", "p1"]
    assert all(p.is_verified for p in properties)


def test_in_memory_store_puts_undated_records_last():
    store = InMemoryPropertyStore([record("old"), record("undated", created_at=None), record("new", created_at="2025-01-01")])
    assert [p.id for p in store.fetch(build_query(Filters()))] == ["new", "old", "undated"]


def test_in_memory_store_from_file(tmp_path, records):
    path = tmp_path / "properties.json"
    path.write_text(json.dumps(records), encoding="utf-8")
    store = InMemoryPropertyStore.from_file(str(path))
    assert len(store.records) == len(records)

    bad = tmp_path / "bad.json"
    bad.write_text('{"id": "x"}', encoding="utf-8")
    with pytest.raises(ValueError):
        InMemoryPropertyStore.from_file(str(bad))

import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from rental_search.extractor import Extractor
from rental_search.property_search import SearchSession
from rental_search.property_store import InMemoryPropertyStore

LLM_REQUEST = httpx.Request("POST", "https://llm.test/v1/chat/completions")

KORAMANGALA_PAYLOAD = {
    "property_type": "2bhk",
    "max_budget": 15000,
    "locality": "Koramangala",
    "amenities": ["parking"],
    "response_message": "Looking for 2BHK apartments under ₹15,000 in Koramangala with parking...",
    "suggestions": ["Add furnishing preference", "Specify move-in date", "Include gym access"],
}


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeCompletions:
    """Stands in for client.chat.completions; replies are consumed in order."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = await reply(kwargs)
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        return completion(reply)


class FakeClient:
    def __init__(self, *replies):
        self.chat = SimpleNamespace(completions=FakeCompletions(*replies))

    @property
    def calls(self):
        return self.chat.completions.calls


class FailingStore:
    def __init__(self, error):
        self.error = error
        self.queries = []

    def fetch(self, query):
        self.queries.append(query)
        raise self.error


def record(id, **overrides):
    base = {
        "id": id,
        "title": f"Listing {id}",
        "locality": "Koramangala",
        "address": f"{id} Main Road",
        "rent_amount": 14000,
        "deposit_amount": 50000,
        "bedrooms": 2,
        "bathrooms": 2,
        "area_sqft": 1100,
        "furnishing": "semi_furnished",
        "property_type": "2bhk",
        "images": [],
        "amenities": ["parking"],
        "is_verified": True,
        "status": "verified",
        "created_at": "2024-03-01T10:00:00Z",
        "city": {"id": "blr", "name": "Bengaluru"},
    }
    base.update(overrides)
    return base


@pytest.fixture
def records():
    return [
        record("p1", locality="Koramangala 5th Block", rent_amount=14000, created_at="2024-03-01T10:00:00Z"),
        record("p2", locality="koramangala", rent_amount=15000, created_at="2024-03-05T10:00:00Z"),
        record("p3", rent_amount=18000, created_at="2024-03-06T10:00:00Z"),
        record("p4", rent_amount=12000, status="pending", created_at="2024-03-07T10:00:00Z"),
        record("p5", rent_amount=11000, is_verified=False, created_at="2024-03-08T10:00:00Z"),
        record("p6", property_type="1bhk", bedrooms=1, rent_amount=9000, created_at="2024-03-09T10:00:00Z"),
        record("p7", locality="HSR Layout", rent_amount=13000, created_at="2024-03-10T10:00:00Z"),
        record("p8", locality="Indiranagar", property_type="3bhk", bedrooms=3, rent_amount=30000,
               furnishing="fully_furnished", created_at="2024-02-01T10:00:00Z"),
    ]


@pytest.fixture
def store(records):
    return InMemoryPropertyStore(records)


@pytest.fixture
def make_session(store):
    def _make(*replies, **kwargs):
        client = FakeClient(*replies)
        session = SearchSession(Extractor(client), kwargs.pop("store", store), **kwargs)
        return session, client

    return _make


def run(coro):
    return asyncio.run(coro)

# backend/rental_search/property_store.py
import json
import logging
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests
from pydantic import ValidationError
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import DEFAULT_STORE_RETRIES, DEFAULT_STORE_TIMEOUT, Settings
from .errors import PropertyStoreError
from .query_builder import Query
from .schemas import PropertySummary

logger = logging.getLogger(__name__)

PROPERTIES_PATH = "/rest/v1/properties"


def make_http_session(retries: int = DEFAULT_STORE_RETRIES) -> requests.Session:
    """Create a requests session with a small retry budget for idempotent reads."""
    session = requests.Session()
    retry_strategy = Retry(
        total=retries,
        backoff_factor=0.5,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(
        max_retries=retry_strategy,
        pool_connections=10,
        pool_maxsize=20,
        pool_block=False,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _to_summaries(rows: Iterable[Mapping[str, Any]]) -> List[PropertySummary]:
    properties: List[PropertySummary] = []
    for row in rows:
        try:
            properties.append(PropertySummary.model_validate(row))
        except ValidationError as e:
            # One malformed row should not hide the rest of the page.
            logger.warning("Skipping property row %s: %s", row.get("id"), e)
    return properties


class PropertyStore:
    """Read-only client for the properties table behind a PostgREST endpoint."""

    def __init__(self, base_url: str, api_key: Optional[str] = None,
                 timeout: float = DEFAULT_STORE_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.url = base_url.rstrip("/") + PROPERTIES_PATH
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or make_http_session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "PropertyStore":
        if not settings.store_url:
            raise RuntimeError("Missing STORE_URL in environment")
        return cls(
            settings.store_url,
            api_key=settings.store_api_key,
            timeout=settings.store_timeout,
            session=make_http_session(settings.store_retries),
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def fetch(self, query: Query) -> List[PropertySummary]:
        params = query.to_params()
        logger.info("Querying %s with params: %s", self.url, params)
        start_time = time.time()

        try:
            resp = self.session.get(self.url, params=params, headers=self._headers(), timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.exceptions.Timeout as e:
            raise PropertyStoreError(f"Property store timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise PropertyStoreError(f"Property store request failed: {e}") from e
        except ValueError as e:
            raise PropertyStoreError("Property store returned invalid JSON") from e

        if not isinstance(data, list):
            raise PropertyStoreError(f"Unexpected property store payload: {type(data).__name__}")

        properties = _to_summaries(data)
        logger.info("Found %d properties (%.2fs)", len(properties), time.time() - start_time)
        return properties


class InMemoryPropertyStore:
    """Evaluates queries against records held in memory (offline runs and tests)."""

    def __init__(self, records: Iterable[Mapping[str, Any]]):
        self.records = [dict(r) for r in records]

    @classmethod
    def from_file(cls, path: str) -> "InMemoryPropertyStore":
        with open(path, encoding="utf-8") as fh:
            records = json.load(fh)
        if not isinstance(records, list):
            raise ValueError(f"{path} must contain a JSON array of property records")
        logger.info("Loaded %d property fixtures from %s", len(records), path)
        return cls(records)

    def fetch(self, query: Query) -> List[PropertySummary]:
        matched = [r for r in self.records if query.matches(r)]
        # Two stable sorts: records without the order column always go last.
        matched.sort(key=lambda r: r.get(query.order_by) or "", reverse=query.descending)
        matched.sort(key=lambda r: r.get(query.order_by) is None)
        return _to_summaries(matched[:query.limit])

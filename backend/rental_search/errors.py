# backend/rental_search/errors.py
from enum import Enum


class FailureKind(str, Enum):
    """Closed set of failures a search can report back to its caller."""

    RATE_LIMITED = "rate_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    UNAVAILABLE = "unavailable"
    STORE_UNAVAILABLE = "store_unavailable"


class RentalSearchError(Exception):
    """Base class for errors raised by the search pipeline."""


class ExtractionUnavailable(RentalSearchError):
    """The language backend could not be reached or refused the request."""

    def __init__(self, kind: FailureKind, detail: str = ""):
        if kind is FailureKind.STORE_UNAVAILABLE:
            raise ValueError("store failures are reported with PropertyStoreError")
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)


class PropertyStoreError(RentalSearchError):
    """The property store query failed (transport, HTTP status or payload)."""

    kind = FailureKind.STORE_UNAVAILABLE

# backend/rental_search/query_builder.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from .config import DEFAULT_RESULT_LIMIT
from .schemas import Filters

# Columns of the properties table projected into PropertySummary.
SELECT_COLUMNS = (
    "id,title,locality,address,rent_amount,deposit_amount,bedrooms,bathrooms,"
    "area_sqft,furnishing,property_type,images,amenities,is_verified,"
    "city:cities(id,name)"
)

OPERATORS = ("eq", "gte", "lte", "ilike", "is")


@dataclass(frozen=True)
class Predicate:
    """One column constraint. All predicates of a Query are ANDed."""

    column: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op}")

    def to_param(self) -> Tuple[str, str]:
        if self.op == "ilike":
            return self.column, f"ilike.*{self.value}*"
        if self.op == "is":
            return self.column, f"is.{str(self.value).lower()}"
        return self.column, f"{self.op}.{self.value}"

    def matches(self, record: Mapping[str, Any]) -> bool:
        actual = record.get(self.column)
        if self.op == "is":
            return actual is self.value
        if actual is None:
            return False
        if self.op == "eq":
            return actual == self.value
        if self.op == "gte":
            return actual >= self.value
        if self.op == "lte":
            return actual <= self.value
        return str(self.value).lower() in str(actual).lower()


@dataclass(frozen=True)
class Query:
    predicates: Tuple[Predicate, ...]
    order_by: str = "created_at"
    descending: bool = True
    limit: int = DEFAULT_RESULT_LIMIT

    def to_params(self) -> List[Tuple[str, str]]:
        """Render as PostgREST query parameters (repeated keys allowed)."""
        params = [("select", SELECT_COLUMNS)]
        params.extend(p.to_param() for p in self.predicates)
        params.append(("order", f"{self.order_by}.{'desc' if self.descending else 'asc'}"))
        params.append(("limit", str(self.limit)))
        return params

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(p.matches(record) for p in self.predicates)


# Trust floor: only verified listings are ever returned.
BASE_PREDICATES = (
    Predicate("status", "eq", "verified"),
    Predicate("is_verified", "is", True),
)

# PostgREST reserves these inside filter values.
_RESERVED = re.compile(r"[*%,()]")


def _like_text(text: str) -> Optional[str]:
    cleaned = _RESERVED.sub(" ", text)
    cleaned = " ".join(cleaned.split())
    return cleaned or None


def build_query(filters: Filters, limit: int = DEFAULT_RESULT_LIMIT) -> Query:
    """Translate Filters into a Query. Absent fields add no constraint."""
    if limit < 1:
        raise ValueError("limit must be at least 1")

    predicates: List[Predicate] = list(BASE_PREDICATES)

    if filters.property_type is not None:
        predicates.append(Predicate("property_type", "eq", filters.property_type.value))

    low, high = filters.min_budget, filters.max_budget
    if low is not None and high is not None and low > high:
        low, high = high, low
    if low is not None:
        predicates.append(Predicate("rent_amount", "gte", low))
    if high is not None:
        predicates.append(Predicate("rent_amount", "lte", high))

    if filters.furnishing is not None:
        predicates.append(Predicate("furnishing", "eq", filters.furnishing.value))
    if filters.bedrooms is not None:
        predicates.append(Predicate("bedrooms", "eq", filters.bedrooms))
    if filters.locality:
        locality = _like_text(filters.locality)
        if locality:
            predicates.append(Predicate("locality", "ilike", locality))

    return Query(predicates=tuple(predicates), limit=limit)

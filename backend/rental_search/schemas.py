# backend/rental_search/schemas.py
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import FailureKind
from .parser import (
    clean_text,
    parse_furnishing,
    parse_property_type,
    parse_string_list,
    to_amount,
    to_count,
)

MAX_SUGGESTIONS = 3


class PropertyType(str, Enum):
    RK1 = "1rk"
    BHK1 = "1bhk"
    BHK2 = "2bhk"
    BHK3 = "3bhk"
    BHK4 = "4bhk"
    VILLA = "villa"
    PG = "pg"


class Furnishing(str, Enum):
    FULLY = "fully_furnished"
    SEMI = "semi_furnished"
    UNFURNISHED = "unfurnished"


def _alias(name: str, camel: str) -> AliasChoices:
    return AliasChoices(name, camel)


class Filters(BaseModel):
    """Structured search intent for one turn. Every field is optional."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    property_type: Optional[PropertyType] = Field(None, validation_alias=_alias("property_type", "propertyType"))
    min_budget: Optional[int] = Field(None, validation_alias=_alias("min_budget", "minBudget"))
    max_budget: Optional[int] = Field(None, validation_alias=_alias("max_budget", "maxBudget"))
    city: Optional[str] = None
    locality: Optional[str] = None
    furnishing: Optional[Furnishing] = None
    bedrooms: Optional[int] = None
    amenities: List[str] = Field(default_factory=list)
    response_message: Optional[str] = Field(
        None, validation_alias=_alias("response_message", "responseMessage")
    )
    suggestions: List[str] = Field(default_factory=list)

    @field_validator("property_type", mode="before")
    @classmethod
    def _property_type(cls, v: Any):
        if isinstance(v, PropertyType):
            return v
        return parse_property_type(v)

    @field_validator("furnishing", mode="before")
    @classmethod
    def _furnishing(cls, v: Any):
        if isinstance(v, Furnishing):
            return v
        return parse_furnishing(v)

    @field_validator("min_budget", "max_budget", mode="before")
    @classmethod
    def _budget(cls, v: Any):
        return to_amount(v)

    @field_validator("bedrooms", mode="before")
    @classmethod
    def _bedrooms(cls, v: Any):
        return to_count(v)

    @field_validator("city", "locality", "response_message", mode="before")
    @classmethod
    def _text(cls, v: Any):
        return clean_text(v)

    @field_validator("amenities", mode="before")
    @classmethod
    def _amenities(cls, v: Any):
        return parse_string_list(v, lower=True)

    @field_validator("suggestions", mode="before")
    @classmethod
    def _suggestions(cls, v: Any):
        return parse_string_list(v)[:MAX_SUGGESTIONS]

    @model_validator(mode="after")
    def _budget_order(self):
        # Spoken order of numbers says little about intent: swap instead of rejecting.
        if (
            self.min_budget is not None
            and self.max_budget is not None
            and self.min_budget > self.max_budget
        ):
            self.min_budget, self.max_budget = self.max_budget, self.min_budget
        return self

    def has_criteria(self) -> bool:
        return any(
            value not in (None, [])
            for value in (
                self.property_type,
                self.min_budget,
                self.max_budget,
                self.city,
                self.locality,
                self.furnishing,
                self.bedrooms,
                self.amenities,
            )
        )

    def as_payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class CityRef(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None


class PropertySummary(BaseModel):
    """Read-only projection of a property record owned by the property store."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    title: str
    locality: Optional[str] = None
    address: Optional[str] = None
    rent_amount: Optional[float] = None
    deposit_amount: Optional[float] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    area_sqft: Optional[float] = None
    furnishing: Optional[str] = None
    property_type: Optional[str] = None
    images: Optional[List[str]] = None
    amenities: Optional[List[str]] = None
    is_verified: bool = False
    city: Optional[CityRef] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v: Any):
        return v if v is None else str(v)


class SearchResult(BaseModel):
    filters: Filters
    properties: List[PropertySummary] = []
    message: str
    suggestions: List[str] = []
    failure: Optional[FailureKind] = None


# --- HTTP models ---
class ChatRequest(BaseModel):
    query: str = ""
    session_id: Optional[str] = None


class ChatResponse(SearchResult):
    session_id: str


class ResetRequest(BaseModel):
    session_id: str


class ResetResponse(BaseModel):
    session_id: str
    history_length: int = 0

"""Search filter specification for listing searches.

A FilterSpecification is the closed, validated description of one search
request. It is the only input to cache key derivation, so every field that
changes the result page must live here, pagination included.

Field names are snake_case in Python and camelCase on the wire
(``minPrice``, ``typeId``, ``certifiedOnly``...); both are accepted.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

MAX_PAGE_SIZE = 50
DEFAULT_PAGE_SIZE = 20
MAX_PAGE = 10_000
# Upper bound of people, room and bathroom counts
MAX_COUNT = 10_000
# Decimal filters are plain amounts: below 10**12 with at most 4 decimals
MAX_DECIMAL_INTEGER_DIGITS = 12
MAX_DECIMAL_PLACES = 4
_DECIMAL_QUANTUM = Decimal(1).scaleb(-MAX_DECIMAL_PLACES)

# (min field, max field) pairs validated for ordering
RANGE_FIELDS: tuple[tuple[str, str], ...] = (
    ("min_price", "max_price"),
    ("min_people", "max_people"),
    ("min_rooms", "max_rooms"),
    ("min_bathrooms", "max_bathrooms"),
    ("min_surface", "max_surface"),
)

DECIMAL_FIELDS: tuple[str, ...] = ("min_price", "max_price", "min_surface", "max_surface")

SET_FIELDS: tuple[str, ...] = ("equipments", "services", "meals", "securities", "room_types")

FLAG_FIELDS: tuple[str, ...] = (
    "certified_only",
    "auto_accept_only",
    "contract_required",
    "featured",
    "popular",
    "recent",
    "promo",
)

# Query parameter spellings accepted by the search endpoint besides the aliases
_PARAM_SYNONYMS = {
    "q": "query",
    "search": "query",
    "type": "type_id",
    "typeRentId": "type_id",
}


class FilterSpecification(BaseModel):
    """Immutable description of a listing search request."""

    model_config = {
        "extra": "forbid",
        "frozen": True,
        "populate_by_name": True,
        "validate_default": True,
        "alias_generator": to_camel,
    }

    query: str | None = None
    location: str | None = None
    type_id: str | None = None

    min_price: Decimal | None = Field(default=None, ge=0)
    max_price: Decimal | None = Field(default=None, ge=0)
    min_people: int | None = Field(default=None, ge=0, le=MAX_COUNT)
    max_people: int | None = Field(default=None, ge=0, le=MAX_COUNT)
    min_rooms: int | None = Field(default=None, ge=0, le=MAX_COUNT)
    max_rooms: int | None = Field(default=None, ge=0, le=MAX_COUNT)
    min_bathrooms: int | None = Field(default=None, ge=0, le=MAX_COUNT)
    max_bathrooms: int | None = Field(default=None, ge=0, le=MAX_COUNT)
    min_surface: Decimal | None = Field(default=None, ge=0)
    max_surface: Decimal | None = Field(default=None, ge=0)

    certified_only: bool = False
    auto_accept_only: bool = False
    contract_required: bool = False
    featured: bool = False
    popular: bool = False
    recent: bool = False
    promo: bool = False

    equipments: frozenset[str] = frozenset()
    services: frozenset[str] = frozenset()
    meals: frozenset[str] = frozenset()
    securities: frozenset[str] = frozenset()
    room_types: frozenset[str] = frozenset()

    page: int = Field(default=1, ge=1, le=MAX_PAGE)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)

    @field_validator("query", "location", "type_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator(*SET_FIELDS, mode="before")
    @classmethod
    def _normalize_set(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, Iterable):
            items = []
            for item in value:
                if not isinstance(item, str):
                    raise ValueError("set filters must contain string ids")
                item = item.strip()
                if item:
                    items.append(item)
            return frozenset(items)
        return value

    @field_validator(*DECIMAL_FIELDS)
    @classmethod
    def _bound_decimal(cls, value: Decimal | None) -> Decimal | None:
        if value is None:
            return value
        if not value.is_finite():
            raise ValueError("must be a finite number")
        # adjusted() involves no context arithmetic
        if value.adjusted() >= MAX_DECIMAL_INTEGER_DIGITS:
            raise ValueError(f"must be below 10**{MAX_DECIMAL_INTEGER_DIGITS}")
        if value != value.quantize(_DECIMAL_QUANTUM):
            raise ValueError(f"must have at most {MAX_DECIMAL_PLACES} decimal places")
        return value

    @model_validator(mode="after")
    def _check_ranges(self) -> "FilterSpecification":
        for low_name, high_name in RANGE_FIELDS:
            low = getattr(self, low_name)
            high = getattr(self, high_name)
            if low is not None and high is not None and low > high:
                raise ValueError(f"{low_name} must not exceed {high_name}")
        return self

    @property
    def offset(self) -> int:
        """Row offset of the first result on this page."""
        return (self.page - 1) * self.limit

    def matches_price(self, price: Decimal | float | int) -> bool:
        """Range predicate over a numeric listing price."""
        value = Decimal(str(price))
        if self.min_price is not None and value < self.min_price:
            return False
        if self.max_price is not None and value > self.max_price:
            return False
        return True

    @classmethod
    def from_query_params(cls, params: Mapping[str, str]) -> "FilterSpecification":
        """Build a specification from HTTP query parameters.

        Unknown parameters are ignored, boolean flags are set only by the
        literal ``true``, and the page size is clamped to MAX_PAGE_SIZE.
        """
        aliases = {to_camel(name): name for name in cls.model_fields}
        data: dict[str, Any] = {}
        for raw_key, raw_value in params.items():
            name = _PARAM_SYNONYMS.get(raw_key) or aliases.get(raw_key)
            if name is None and raw_key in cls.model_fields:
                name = raw_key
            if name is None or raw_value is None or raw_value == "":
                continue
            if name in data and name == "query":
                continue  # "search" and "q" both given: first one wins
            if name in FLAG_FIELDS:
                data[name] = raw_value.lower() == "true"
            else:
                data[name] = raw_value

        limit = str(data.get("limit", ""))
        if limit.isascii() and limit.isdigit():
            # Anything longer than MAX_PAGE_SIZE's digits is clamped without parsing
            too_long = len(limit.lstrip("0")) > len(str(MAX_PAGE_SIZE))
            data["limit"] = MAX_PAGE_SIZE if too_long else min(int(limit), MAX_PAGE_SIZE)
        return cls(**data)

"""Cache key schema for rentcache.

Search keys: search:v1:{sha256 of the canonical filter record}

The canonical record contains only fields that are set:
- absent optional values are omitted
- boolean flags appear only when true (false and absent are the same filter)
- set filters appear only when non-empty, as sorted lists
- decimals are written in their shortest exact form ("10" for 10, 10.0 and 10.00)

The record is serialized with sorted object keys and hashed, so the key length
is fixed and independent of how many filters a request carries.
"""

from __future__ import annotations

import hashlib
from decimal import Decimal
from typing import Any

import orjson

from rentcache.cache.filters import FLAG_FIELDS, SET_FIELDS, FilterSpecification


class CacheKeys:
    """Cache key generator following consistent naming convention."""

    SEARCH_PREFIX = "search"
    SEARCH_VERSION = "v1"
    RATE_LIMIT_PREFIX = "rate_limit"
    PERF_TEST_PREFIX = "perf_test"

    @classmethod
    def search(cls, digest: str) -> str:
        """Key for one cached search result page."""
        return f"{cls.SEARCH_PREFIX}:{cls.SEARCH_VERSION}:{digest}"

    @classmethod
    def search_tag(cls, product_id: str) -> str:
        """Set of search keys whose cached page contains a product."""
        return f"{cls.SEARCH_PREFIX}:tag:product:{product_id}"

    @classmethod
    def search_pattern(cls) -> str:
        """Pattern matching every search page and tag key."""
        return f"{cls.SEARCH_PREFIX}:*"

    @classmethod
    def rate_limit(cls, identifier: str, window_start_ms: int) -> str:
        """Fixed-window counter key."""
        return f"{cls.RATE_LIMIT_PREFIX}:{identifier}:{window_start_ms}"

    @classmethod
    def perf_test(cls, run_id: str, index: int) -> str:
        """Throwaway key used by the store benchmark."""
        return f"{cls.PERF_TEST_PREFIX}:{run_id}:{index}"

    @classmethod
    def parse_key(cls, key: str) -> dict[str, str] | None:
        """Split a key into its kind and remainder.

        Returns None for keys that do not belong to this application.
        """
        kind, sep, rest = key.partition(":")
        if not sep or not rest:
            return None
        if kind == cls.SEARCH_PREFIX:
            sub, _, tail = rest.partition(":")
            if sub == "tag":
                return {"kind": "search_tag", "id": tail.rpartition(":")[2]}
            return {"kind": "search", "version": sub, "id": tail}
        if kind == cls.RATE_LIMIT_PREFIX:
            identifier, _, window = rest.rpartition(":")
            return {"kind": "rate_limit", "id": identifier, "window": window}
        if kind == cls.PERF_TEST_PREFIX:
            return {"kind": "perf_test", "id": rest}
        return None


# Numbers whose magnitude exponent lies beyond this are written in scientific notation
PLAIN_NOTATION_LIMIT = 28


def canonical_number(value: Decimal | int) -> str | int:
    """Shortest exact text of a number.

    Trailing zeros are stripped from the digit tuple directly, so no context
    arithmetic runs and very large or small exponents can neither overflow nor
    expand into long strings.
    """
    if isinstance(value, int):
        return value
    if value.is_zero():
        return "0"
    if not value.is_finite():
        return str(value)
    sign, digits, exponent = value.as_tuple()
    text = "".join(map(str, digits)).rstrip("0")
    exponent = int(exponent) + len(digits) - len(text)
    normalized = Decimal(f"{'-' if sign else ''}{text}E{exponent}")
    if abs(normalized.adjusted()) > PLAIN_NOTATION_LIMIT:
        return str(normalized)
    return format(normalized, "f")


def canonical_filter_record(spec: FilterSpecification) -> dict[str, Any]:
    """Return the normalized record a search key is derived from."""
    record: dict[str, Any] = {}
    for name in type(spec).model_fields:
        value = getattr(spec, name)
        if name in FLAG_FIELDS:
            if value:
                record[name] = True
        elif name in SET_FIELDS:
            if value:
                record[name] = sorted(value)
        elif value is None:
            continue
        elif isinstance(value, Decimal):
            record[name] = canonical_number(value)
        else:
            record[name] = value
    return record


def derive_key(spec: FilterSpecification) -> str:
    """Derive the cache key of a search result page."""
    payload = orjson.dumps(canonical_filter_record(spec), option=orjson.OPT_SORT_KEYS)
    return CacheKeys.search(hashlib.sha256(payload).hexdigest())

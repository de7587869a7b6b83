"""Search result cache for paginated listing searches.

Implements the cache-aside pattern on top of CacheStore:
- each result page is cached under the key derived from its FilterSpecification
- entries expire after a short TTL, which bounds staleness
- each entry is tagged with the product ids it contains so that a listing
  change can drop the pages it appears on before the TTL runs out

Reads never raise: a missing, expired or malformed entry is a miss.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from rentcache.cache.filters import FilterSpecification
from rentcache.cache.keys import CacheKeys, derive_key
from rentcache.cache.redis import CacheStore
from rentcache.config import settings
from rentcache.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

CACHE_TYPE = "search"

# Query layer collaborator: returns the ordered page and the total match count
SearchQuery = Callable[[FilterSpecification], Awaitable[tuple[Sequence[Mapping[str, Any]], int]]]


class SearchPagination(BaseModel):
    """Pagination metadata of a search result page."""

    model_config = {
        "extra": "forbid",
        "populate_by_name": True,
        "alias_generator": to_camel,
    }

    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def from_total(cls, page: int, limit: int, total: int) -> "SearchPagination":
        """Derive page counts from the total number of matches."""
        total_pages = -(-total // limit) if limit > 0 else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class CachedSearchResult(BaseModel):
    """One cached result page."""

    model_config = {
        "extra": "ignore",
        "populate_by_name": True,
        "alias_generator": to_camel,
    }

    results: list[dict[str, Any]]
    pagination: SearchPagination
    cached_at: float | None = None
    product_ids: list[str] = []

    def to_response(self) -> dict[str, Any]:
        """Wire form returned to API clients."""
        return {
            "results": self.results,
            "pagination": self.pagination.model_dump(by_alias=True),
        }


def _jsonable(value: Any) -> Any:
    """Make result records JSON-serializable (Decimals, dataclasses and pydantic models)."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _jsonable(dataclasses.asdict(value))
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    return value


class SearchResultCache:
    """Caches paginated search results keyed by filter specification."""

    def __init__(
        self,
        store: CacheStore,
        ttl: int | None = None,
        tag_ttl: int | None = None,
    ):
        self.store = store
        self.ttl = ttl if ttl is not None else settings.cache_ttl_product_search
        # Tags must outlive the pages they point to
        self.tag_ttl = max(
            tag_ttl if tag_ttl is not None else settings.cache_ttl_search_tag,
            self.ttl,
        )

    async def get_cached_search(self, spec: FilterSpecification) -> CachedSearchResult | None:
        """Return the cached page for ``spec``, or None on a miss."""
        metrics = get_metrics()
        key = derive_key(spec)
        raw = await self.store.get(key)
        if raw is None:
            metrics.cache_misses_total.labels(cache_type=CACHE_TYPE).inc()
            return None

        try:
            cached = CachedSearchResult.model_validate(raw)
        except ValidationError as exc:
            logger.warning(f"Malformed search cache entry {key}, treating as miss: {exc}")
            metrics.cache_misses_total.labels(cache_type=CACHE_TYPE).inc()
            return None

        metrics.cache_hits_total.labels(cache_type=CACHE_TYPE).inc()
        return cached

    async def cache_search(
        self,
        spec: FilterSpecification,
        results: Sequence[Any],
        pagination: SearchPagination | Mapping[str, Any],
    ) -> None:
        """Store a result page. Best effort: failures are logged, never raised."""
        key = derive_key(spec)
        try:
            page = SearchPagination.model_validate(pagination)
            records = [_jsonable(item) for item in results]
            product_ids = sorted(
                {str(r["id"]) for r in records if isinstance(r, dict) and "id" in r}
            )
            entry = CachedSearchResult(
                results=records,
                pagination=page,
                cached_at=time.time(),
                product_ids=product_ids,
            )
        except (ValidationError, TypeError, ValueError):
            logger.exception(f"Refusing to cache search page {key}: invalid payload")
            return

        try:
            await self.store.set(key, entry.model_dump(by_alias=True), self.ttl)
        except TypeError:
            logger.exception(f"Search page {key} is not JSON-serializable, not cached")
            return

        if product_ids:
            tags = [CacheKeys.search_tag(pid) for pid in product_ids]
            await self.store.add_to_sets(tags, key, self.tag_ttl)
        get_metrics().cache_writes_total.labels(cache_type=CACHE_TYPE).inc()

    async def get_or_compute(
        self, spec: FilterSpecification, query: SearchQuery
    ) -> CachedSearchResult:
        """Serve ``spec`` from cache, running ``query`` and caching its output on a miss."""
        cached = await self.get_cached_search(spec)
        if cached is not None:
            return cached

        results, total = await query(spec)
        pagination = SearchPagination.from_total(spec.page, spec.limit, total)
        await self.cache_search(spec, results, pagination)
        return CachedSearchResult(
            results=[_jsonable(item) for item in results],
            pagination=pagination,
        )

    async def invalidate(self, spec: FilterSpecification) -> bool:
        """Drop the cached page of one specification."""
        return await self.store.delete(derive_key(spec)) > 0

    async def invalidate_product(self, product_id: str) -> int:
        """Drop every cached page that contains ``product_id``.

        Returns the number of pages deleted.
        """
        tag = CacheKeys.search_tag(product_id)
        keys = await self.store.members(tag)
        deleted = await self.store.delete(*keys) if keys else 0
        await self.store.delete(tag)
        if deleted:
            get_metrics().cache_invalidations_total.labels(reason="product").inc(deleted)
        logger.debug(f"Invalidated {deleted} search pages for product {product_id}")
        return deleted

    async def invalidate_all(self) -> int:
        """Drop every cached search page and tag."""
        deleted = await self.store.delete_pattern(CacheKeys.search_pattern())
        if deleted:
            get_metrics().cache_invalidations_total.labels(reason="all").inc(deleted)
        logger.info(f"Invalidated all search cache entries ({deleted} keys)")
        return deleted

    @staticmethod
    def cache_control() -> str:
        """Cache-Control header for search responses served by the query layer."""
        return (
            f"public, s-maxage={settings.cache_max_age}, "
            f"stale-while-revalidate={settings.cache_stale_while_revalidate}"
        )

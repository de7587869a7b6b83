"""Cache invalidation on listing changes.

The product management code notifies this module whenever a listing, a
promotion or a booking changes. Short TTLs are the primary consistency
guarantee; these hooks only shorten the staleness window.

- a new listing can enter any result set, so creation drops every search page
- updates, deletions and promotion changes drop the pages tagged with the
  product id
- bookings do not change search results and only log

Example:
    invalidator = CacheInvalidator(search_cache)
    await invalidator.on_product_updated("prod-42")

    # or from a queue / HTTP payload
    await invalidator.handle(InvalidationMessage.from_bytes(body))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import cast

import orjson

from rentcache.cache.search import SearchResultCache

logger = logging.getLogger(__name__)


class InvalidationType(str, Enum):
    """Kind of change that triggers invalidation."""

    PRODUCT_CREATED = "product_created"
    PRODUCT_UPDATED = "product_updated"
    PRODUCT_DELETED = "product_deleted"
    PROMOTION_CHANGED = "promotion_changed"
    BOOKING_CREATED = "booking_created"
    ALL = "all"


@dataclass
class InvalidationMessage:
    """Cache invalidation message."""

    type: InvalidationType
    product_id: str | None = None

    def __post_init__(self) -> None:
        if self.type not in (InvalidationType.ALL, InvalidationType.PRODUCT_CREATED) and (
            not self.product_id
        ):
            raise ValueError(f"{self.type.value} invalidation requires a product_id")

    def to_bytes(self) -> bytes:
        """Serialize to JSON bytes."""
        return orjson.dumps({"type": self.type.value, "product_id": self.product_id})

    @classmethod
    def from_bytes(cls, data: bytes | str) -> "InvalidationMessage":
        """Deserialize from JSON bytes."""
        parsed = orjson.loads(data)
        return cls(
            type=InvalidationType(parsed["type"]),
            product_id=parsed.get("product_id"),
        )


class CacheInvalidator:
    """Maps listing changes to search cache invalidations."""

    def __init__(self, search_cache: SearchResultCache):
        self.search_cache = search_cache

    async def handle(self, message: InvalidationMessage) -> int:
        """Apply an invalidation message, returning the number of keys removed."""
        if message.type in (InvalidationType.ALL, InvalidationType.PRODUCT_CREATED):
            return await self.search_cache.invalidate_all()

        product_id = cast(str, message.product_id)
        if message.type == InvalidationType.BOOKING_CREATED:
            logger.debug(f"Booking on {product_id} leaves search results unchanged")
            return 0
        return await self.search_cache.invalidate_product(product_id)

    async def on_product_created(self, product_id: str) -> int:
        return await self.handle(
            InvalidationMessage(InvalidationType.PRODUCT_CREATED, product_id)
        )

    async def on_product_updated(self, product_id: str) -> int:
        return await self.handle(
            InvalidationMessage(InvalidationType.PRODUCT_UPDATED, product_id)
        )

    async def on_product_deleted(self, product_id: str) -> int:
        return await self.handle(
            InvalidationMessage(InvalidationType.PRODUCT_DELETED, product_id)
        )

    async def on_promotion_changed(self, product_id: str) -> int:
        return await self.handle(
            InvalidationMessage(InvalidationType.PROMOTION_CHANGED, product_id)
        )

    async def on_booking_created(self, product_id: str) -> int:
        return await self.handle(
            InvalidationMessage(InvalidationType.BOOKING_CREATED, product_id)
        )

    async def clear_all(self) -> int:
        """Maintenance: drop the whole search cache."""
        return await self.handle(InvalidationMessage(InvalidationType.ALL))

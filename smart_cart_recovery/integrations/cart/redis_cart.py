"""Live shopper carts stored in Redis.

Each cart session is one JSON document under ``scrm:cart:<session_id>``.
The storefront identifies the session with the ``scrm_session`` cookie or
the ``X-Cart-Session`` header.
"""

import json
import logging
import secrets
from decimal import Decimal
from typing import Any, Protocol

import redis.asyncio as aioredis

from smart_cart_recovery.schemas.recovery import CartLineItem

logger = logging.getLogger(__name__)

CART_KEY_PREFIX = "scrm:cart:"
CART_TTL_SECONDS = 7 * 24 * 3600
SESSION_COOKIE = "scrm_session"
SESSION_HEADER = "X-Cart-Session"


class CommerceCart(Protocol):
    """What the recovery logic needs from a shopper's live cart."""

    async def get_items(self) -> list[CartLineItem]: ...

    async def is_empty(self) -> bool: ...

    async def get_total(self) -> Decimal: ...

    async def empty(self) -> None: ...

    async def add_to_cart(
        self,
        product_id: int,
        quantity: int = 1,
        variation_id: int = 0,
        variation: dict[str, str] | None = None,
        *,
        name: str = "",
        price: Decimal | str = Decimal("0"),
    ) -> bool: ...


def generate_session_id() -> str:
    """Generate a unique cart session ID."""
    return secrets.token_urlsafe(16)


class RedisCart:
    """A single shopper's cart backed by Redis."""

    def __init__(
        self, redis: aioredis.Redis, session_id: str, ttl: int = CART_TTL_SECONDS
    ) -> None:
        self.redis = redis
        self.session_id = session_id
        self.ttl = ttl

    @property
    def key(self) -> str:
        return f"{CART_KEY_PREFIX}{self.session_id}"

    async def get_items(self) -> list[CartLineItem]:
        raw = await self.redis.get(self.key)
        if not raw:
            return []
        try:
            data: list[dict[str, Any]] = json.loads(raw)
            return [CartLineItem.model_validate(item) for item in data]
        except (ValueError, TypeError):
            logger.warning("Discarding unreadable cart session %s", self.session_id)
            return []

    async def is_empty(self) -> bool:
        return not await self.get_items()

    async def get_total(self) -> Decimal:
        return sum((item.line_subtotal for item in await self.get_items()), Decimal("0"))

    async def empty(self) -> None:
        await self.redis.delete(self.key)

    async def add_to_cart(
        self,
        product_id: int,
        quantity: int = 1,
        variation_id: int = 0,
        variation: dict[str, str] | None = None,
        *,
        name: str = "",
        price: Decimal | str = Decimal("0"),
    ) -> bool:
        """Add a line or bump the quantity of a matching one.

        Lines match on product, variation id and variation attributes.
        """
        if product_id <= 0 or quantity <= 0:
            return False

        unit_price = Decimal(str(price))
        variation = dict(variation or {})
        items = await self.get_items()

        for item in items:
            if (
                item.product_id == product_id
                and item.variation_id == variation_id
                and item.variation == variation
            ):
                item.quantity += quantity
                item.line_subtotal = item.price * item.quantity
                break
        else:
            items.append(
                CartLineItem(
                    product_id=product_id,
                    name=name,
                    quantity=quantity,
                    price=unit_price,
                    line_subtotal=unit_price * quantity,
                    variation_id=variation_id,
                    variation=variation,
                )
            )

        await self._save(items)
        return True

    async def _save(self, items: list[CartLineItem]) -> None:
        payload = json.dumps([item.model_dump(mode="json") for item in items])
        await self.redis.set(self.key, payload, ex=self.ttl)


class RedisCartStore:
    """Hands out per-session carts sharing one Redis client."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self.redis = redis

    def __call__(self, session_id: str) -> RedisCart:
        return RedisCart(self.redis, session_id)

    async def is_available(self) -> bool:
        """Whether the cart backend answers; checked once at startup."""
        try:
            return bool(await self.redis.ping())
        except aioredis.RedisError:
            logger.exception("Cart store unreachable")
            return False

"""Recovery-link handling: verify, restore the cart, forget the record."""

import logging
from collections.abc import Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from smart_cart_recovery.integrations.cart.redis_cart import CommerceCart
from smart_cart_recovery.models.abandoned_cart import AbandonedCart
from smart_cart_recovery.services.cart_snapshot import read_snapshot
from smart_cart_recovery.services.recovery_link import (
    parse_recovery_params,
    verify_recovery_key,
)

logger = logging.getLogger(__name__)


class RecoveryService:
    """Turns a valid recovery link into a restored live cart."""

    def __init__(self, db: AsyncSession, *, secret: str, checkout_url: str) -> None:
        self.db = db
        self.secret = secret
        self.checkout_url = checkout_url

    async def handle_recovery_link(
        self, query: Mapping[str, str], cart: CommerceCart | None
    ) -> str | None:
        """Restore the snapshot into ``cart`` if the link checks out.

        The live cart is emptied and refilled from the snapshot, then the
        record is deleted so the link works once.

        Returns the checkout URL to redirect to, or None to let the request
        continue untouched.
        """
        params = parse_recovery_params(query)
        if params is None:
            return None

        record = await self.db.get(AbandonedCart, params.cart_id)
        if record is None:
            logger.info("Recovery link for unknown cart %s", params.cart_id)
            return None

        if not verify_recovery_key(
            record.id, record.email, record.created_at, self.secret, params.key
        ):
            logger.warning("Recovery link with bad key for cart %s", record.id)
            return None

        if cart is None:
            logger.warning("No live cart available to restore cart %s", record.id)
            return None

        await cart.empty()
        restored = 0
        for item in read_snapshot(record.cart_data):
            added = await cart.add_to_cart(
                item.product_id,
                item.quantity,
                item.variation_id,
                item.variation,
                name=item.name,
                price=item.price,
            )
            restored += int(added)

        await self.db.delete(record)
        await self.db.commit()

        logger.info("Cart %s recovered: lines=%d", params.cart_id, restored)
        return self.checkout_url

"""Removal of tracked carts once the shopper has ordered."""

import logging

from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from smart_cart_recovery.core.emails import normalize_email
from smart_cart_recovery.models.abandoned_cart import AbandonedCart

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Deletes abandoned-cart records that an order has made moot."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def purge_for_email(self, email: str | None) -> int:
        """Delete every record for the billing email, sent or not.

        Addresses match case-insensitively.

        Returns the number of rows removed.
        """
        normalized = normalize_email(email)
        if not normalized:
            return 0

        result = await self.db.execute(
            delete(AbandonedCart).where(func.lower(AbandonedCart.email) == normalized.lower())
        )
        await self.db.commit()

        removed = result.rowcount or 0
        if removed:
            logger.info("Purged %d abandoned cart(s) for %s", removed, normalized)
        return removed

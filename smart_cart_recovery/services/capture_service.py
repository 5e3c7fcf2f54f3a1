"""Capture of live carts into abandoned-cart records."""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from smart_cart_recovery.core.clock import Clock, utcnow
from smart_cart_recovery.core.emails import normalize_email
from smart_cart_recovery.integrations.cart.redis_cart import CommerceCart
from smart_cart_recovery.models.abandoned_cart import AbandonedCart
from smart_cart_recovery.services.cart_snapshot import build_snapshot

logger = logging.getLogger(__name__)


class CaptureService:
    """Snapshots a shopper's cart so it can be recovered later."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow) -> None:
        self.db = db
        self.clock = clock

    async def capture(
        self,
        cart: CommerceCart | None,
        *,
        email: str | None = None,
        user_id: str | None = None,
        user_email: str | None = None,
        customer_name: str | None = None,
    ) -> AbandonedCart | None:
        """Create or refresh the open record for this shopper.

        ``email`` comes from the checkout form; when absent the signed-in
        user's address is used. A malformed form address makes this a
        no-op. The most recent open record matching the email (or, without
        one, the user id) is overwritten, including ``created_at``, which
        invalidates earlier recovery links.

        Returns the saved record, or None if nothing was captured.
        """
        if cart is None or await cart.is_empty():
            return None

        if email:
            resolved_email = normalize_email(email)
            if not resolved_email:
                logger.debug("Ignoring checkout with malformed email")
                return None
        else:
            resolved_email = normalize_email(user_email)

        if not resolved_email and not user_id:
            return None

        items = await cart.get_items()
        total = await cart.get_total()
        now = self.clock()

        record = await self._find_open(resolved_email, user_id)
        if record:
            record.user_id = user_id
            record.email = resolved_email
            record.customer_name = customer_name or record.customer_name
            record.cart_data = build_snapshot(items)
            record.cart_total = total
            record.created_at = now
        else:
            record = AbandonedCart(
                user_id=user_id,
                email=resolved_email,
                customer_name=customer_name,
                cart_data=build_snapshot(items),
                cart_total=total,
                created_at=now,
                email_sent=False,
                recovered=False,
            )
            self.db.add(record)

        await self.db.commit()
        logger.info(
            "Cart captured: id=%s email=%s user_id=%s items=%d",
            record.id,
            resolved_email,
            user_id,
            len(items),
        )
        return record

    async def _find_open(self, email: str | None, user_id: str | None) -> AbandonedCart | None:
        stmt = select(AbandonedCart).where(
            AbandonedCart.email_sent == False,  # noqa: E712
            AbandonedCart.recovered == False,  # noqa: E712
        )
        if email:
            stmt = stmt.where(func.lower(AbandonedCart.email) == email.lower())
        else:
            stmt = stmt.where(AbandonedCart.user_id == user_id)
        stmt = stmt.order_by(AbandonedCart.id.desc()).limit(1)
        return (await self.db.execute(stmt)).scalar_one_or_none()

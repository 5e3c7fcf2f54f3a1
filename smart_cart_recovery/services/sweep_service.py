"""Periodic sweep that emails shoppers about carts they left behind."""

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from smart_cart_recovery.core.clock import Clock, utcnow
from smart_cart_recovery.models.abandoned_cart import AbandonedCart
from smart_cart_recovery.schemas.recovery import RecoverySettings
from smart_cart_recovery.services.recovery_email_service import RecoveryEmailService

logger = logging.getLogger(__name__)


class SweepService:
    """Finds carts past the abandonment threshold and sends one email each."""

    def __init__(
        self,
        db: AsyncSession,
        email_sender: RecoveryEmailService,
        recovery_settings: RecoverySettings,
        clock: Clock = utcnow,
    ) -> None:
        self.db = db
        self.email_sender = email_sender
        self.recovery_settings = recovery_settings
        self.clock = clock

    async def find_candidates(self) -> list[AbandonedCart]:
        """Unsent, unrecovered carts with an email, captured before the cutoff."""
        cutoff = self.clock() - timedelta(minutes=self.recovery_settings.abandon_time)
        stmt = (
            select(AbandonedCart)
            .where(
                AbandonedCart.created_at <= cutoff,
                AbandonedCart.email_sent == False,  # noqa: E712
                AbandonedCart.recovered == False,  # noqa: E712
                AbandonedCart.email.is_not(None),
                AbandonedCart.email != "",
            )
            .order_by(AbandonedCart.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def run(self) -> dict[str, Any]:
        """Run one sweep.

        ``email_sent`` is committed per cart right after a successful send,
        so a crash mid-batch never re-mails carts already handled. Failed
        sends stay eligible for the next sweep.
        """
        if not self.recovery_settings.enabled:
            return {"status": "skipped", "reason": "disabled"}

        candidates = await self.find_candidates()
        sent = 0
        failed = 0

        for cart in candidates:
            try:
                delivered = await self.email_sender.send_recovery_email(cart)
            except Exception:
                logger.exception("Recovery email failed for cart %s", cart.id)
                delivered = False

            if not delivered:
                failed += 1
                continue

            if not await self._mark_sent(cart.id):
                # Deleted by order reconciliation or recovery while sending
                logger.info("Cart %s was removed during the sweep", cart.id)
            sent += 1

        logger.info(
            "Abandoned cart sweep completed: candidates=%d sent=%d failed=%d",
            len(candidates),
            sent,
            failed,
        )
        return {
            "status": "completed",
            "candidates": len(candidates),
            "sent": sent,
            "failed": failed,
        }

    async def _mark_sent(self, cart_id: int) -> bool:
        """Flag one cart as mailed. False if the row no longer exists."""
        result = await self.db.execute(
            update(AbandonedCart)
            .where(AbandonedCart.id == cart_id)
            .values(email_sent=True)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()
        return bool(result.rowcount)

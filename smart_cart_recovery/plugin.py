"""Abandoned-cart recovery plugin.

Wires the recovery services to lifecycle events. Every handler opens its
own database session from the injected factory and reads the current
settings, so a settings change applies to the next event without a
restart.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from smart_cart_recovery.core.auth import user_identity
from smart_cart_recovery.core.clock import Clock, utcnow
from smart_cart_recovery.core.config import Settings, settings
from smart_cart_recovery.core.hooks import HookEvent, HookRegistry
from smart_cart_recovery.integrations.cart.redis_cart import CommerceCart
from smart_cart_recovery.integrations.woocommerce.webhooks import order_billing_email
from smart_cart_recovery.models.abandoned_cart import AbandonedCart
from smart_cart_recovery.schemas.recovery import (
    PAID_ORDER_STATUSES,
    CheckoutValidateRequest,
    RecoverySettings,
)
from smart_cart_recovery.services.capture_service import CaptureService
from smart_cart_recovery.services.email_service import EmailService
from smart_cart_recovery.services.reconciliation_service import ReconciliationService
from smart_cart_recovery.services.recovery_email_service import (
    MailTransport,
    RecoveryEmailService,
)
from smart_cart_recovery.services.recovery_service import RecoveryService
from smart_cart_recovery.services.settings_service import SettingsService
from smart_cart_recovery.services.sweep_service import SweepService

logger = logging.getLogger(__name__)

MailerFactory = Callable[[RecoverySettings], MailTransport]


class CommerceUnavailableError(RuntimeError):
    """The commerce cart backend is not reachable; the plugin cannot run."""


class RecoveryPlugin:
    """Subscribes capture, sweep, recovery and reconciliation to hook events."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        app_settings: Settings = settings,
        mailer_factory: MailerFactory = EmailService,
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.app_settings = app_settings
        self.mailer_factory = mailer_factory
        self.clock = clock

    def register(self, hooks: HookRegistry) -> HookRegistry:
        hooks.add_action(HookEvent.CHECKOUT_VALIDATED, self.on_checkout_validated)
        hooks.add_action(HookEvent.SWEEP, self.on_sweep)
        hooks.add_action(HookEvent.REQUEST_INIT, self.on_request_init)
        hooks.add_action(HookEvent.ORDER_CREATED, self.on_order_created)
        hooks.add_action(HookEvent.ORDER_STATUS_CHANGED, self.on_order_status_changed)
        return hooks

    async def activate(self, commerce_available: bool) -> None:
        """Refuse to start without the commerce cart backend."""
        if not commerce_available:
            raise CommerceUnavailableError(
                "Smart Cart Recovery requires the cart store to be reachable"
            )
        logger.info("Recovery plugin activated")

    async def on_checkout_validated(
        self,
        *,
        form: CheckoutValidateRequest,
        cart: CommerceCart | None,
        user: dict[str, Any] | None = None,
    ) -> AbandonedCart | None:
        async with self.session_factory() as db:
            config = await SettingsService(db).get()
            if not config.enabled:
                return None

            user_id, user_email, user_name = user_identity(user)
            form_name = " ".join(
                part.strip()
                for part in (form.billing_first_name, form.billing_last_name)
                if part and part.strip()
            )
            return await CaptureService(db, clock=self.clock).capture(
                cart,
                email=form.billing_email,
                user_id=user_id,
                user_email=user_email,
                customer_name=form_name or user_name,
            )

    async def on_sweep(self) -> dict[str, Any]:
        async with self.session_factory() as db:
            config = await SettingsService(db).get()
            sender = RecoveryEmailService(
                config, self.mailer_factory(config), site=self.app_settings
            )
            return await SweepService(db, sender, config, clock=self.clock).run()

    async def on_request_init(
        self, *, query: Mapping[str, str], cart: CommerceCart | None
    ) -> str | None:
        async with self.session_factory() as db:
            service = RecoveryService(
                db,
                secret=self.app_settings.secret_key,
                checkout_url=self.app_settings.checkout_page_url,
            )
            return await service.handle_recovery_link(query, cart)

    async def on_order_created(self, *, order: dict[str, Any]) -> int:
        return await self._reconcile(order, event="created")

    async def on_order_status_changed(
        self, *, order: dict[str, Any], status: str | None = None
    ) -> int:
        return await self._reconcile(order, event="status_changed", status=status)

    async def _reconcile(
        self, order: dict[str, Any], *, event: str, status: str | None = None
    ) -> int:
        """Purge carts for the order's billing email when the policy says so.

        The ``created`` policy purges on order creation; the ``paid`` policy
        purges when the order status changes to a paid one.
        """
        status = status or str(order.get("status") or "")
        async with self.session_factory() as db:
            config = await SettingsService(db).get()
            if not config.enabled:
                return 0

            if config.order_reconciliation == "created":
                if event != "created":
                    return 0
            elif event != "status_changed" or status not in PAID_ORDER_STATUSES:
                return 0

            removed = await ReconciliationService(db).purge_for_email(order_billing_email(order))
            logger.info(
                "Order %s reconciled: event=%s status=%s removed=%d",
                order.get("id"),
                event,
                status,
                removed,
            )
            return removed

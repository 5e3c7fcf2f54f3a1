"""AbandonedCart model: one cart snapshot per shopper identity."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from smart_cart_recovery.models.base import Base, BigIntegerPK, JSONType


class AbandonedCart(Base):
    """Snapshot of a checkout-in-progress cart.

    Created or refreshed on every checkout validation while the cart is
    non-empty. The sweep flips ``email_sent`` once a recovery email went
    out. Recovery-link use and order reconciliation delete the row;
    ``recovered`` is kept for reporting but never set.
    """

    __tablename__ = "scrm_abandoned_carts"

    id: Mapped[int] = mapped_column(
        BigIntegerPK,
        primary_key=True,
        autoincrement=True,
    )

    # Identity (at least one is set)
    user_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
    email: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
        index=True,
    )
    customer_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Snapshot: {"items": [{product_id, name, quantity, price, line_subtotal, ...}]}
    cart_data: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )
    cart_total: Mapped[Decimal] = mapped_column(
        Numeric(18, 6),
        nullable=False,
        default=Decimal("0"),
    )

    # Last capture time; part of the recovery-link signature
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    # Lifecycle flags
    email_sent: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        index=True,
    )
    recovered: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        index=True,
    )

    @property
    def items(self) -> list[dict[str, Any]]:
        """Snapshot line items, tolerant of malformed cart_data."""
        items = (self.cart_data or {}).get("items")
        return items if isinstance(items, list) else []

    def __repr__(self) -> str:
        state = "sent" if self.email_sent else "open"
        return f"<AbandonedCart {self.id} {self.email or self.user_id} ({state})>"


# Email lookups (capture, reconciliation) are case-insensitive
Index("ix_scrm_abandoned_carts_email_lower", func.lower(AbandonedCart.email))

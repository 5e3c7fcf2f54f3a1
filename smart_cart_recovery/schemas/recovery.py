"""Pydantic schemas for cart capture and recovery."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import Field, field_validator

from smart_cart_recovery.schemas.common import BaseSchema

DEFAULT_EMAIL_SUBJECT = "We saved your cart at {site_name}"
DEFAULT_EMAIL_BODY = (
    "<p>Hi {customer_name},</p>"
    "<p>You left some items in your cart on {site_name}.</p>"
    "<p>{cart_items}</p>"
    "<p>Cart total: {cart_total}</p>"
    '<p><a href="{checkout_url}">Click here to recover your cart</a></p>'
)

# Order statuses that count as paid for the conservative reconciliation policy
PAID_ORDER_STATUSES = frozenset({"processing", "completed"})


# --- Plugin settings (stored in scrm_options["scrm_settings"]) ---


class RecoverySettings(BaseSchema):
    """Recovery behaviour, mail templates and SMTP transport."""

    enabled: bool = True
    abandon_time: int = 60
    from_email: str = ""
    from_name: str = ""
    email_subject: str = DEFAULT_EMAIL_SUBJECT
    email_body: str = DEFAULT_EMAIL_BODY
    smtp_enabled: bool = False
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_encryption: Literal["tls", "ssl"] = "tls"
    order_reconciliation: Literal["created", "paid"] = "paid"

    @field_validator("abandon_time")
    @classmethod
    def clamp_abandon_time(cls, value: int) -> int:
        return max(1, value)

    @field_validator("smtp_port")
    @classmethod
    def default_smtp_port(cls, value: int) -> int:
        return value if value > 0 else 587

    @field_validator("smtp_encryption", mode="before")
    @classmethod
    def fallback_encryption(cls, value: Any) -> str:
        return value if value in ("tls", "ssl") else "tls"

    @field_validator("from_email", "from_name", "smtp_host", "smtp_username", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class RecoverySettingsUpdate(BaseSchema):
    """Partial settings update. Omitted fields keep their stored value."""

    enabled: bool | None = None
    abandon_time: int | None = None
    from_email: str | None = None
    from_name: str | None = None
    email_subject: str | None = None
    email_body: str | None = None
    smtp_enabled: bool | None = None
    smtp_host: str | None = None
    smtp_port: int | None = None
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_encryption: str | None = None
    order_reconciliation: Literal["created", "paid"] | None = None


class RecoverySettingsResponse(RecoverySettings):
    """Settings as returned to the admin API; the SMTP password never leaves."""

    smtp_password: str = Field(default="", exclude=True)
    smtp_password_set: bool = False


# --- Live cart ---


class CartLineItem(BaseSchema):
    """A line in the shopper's live cart (and in a stored snapshot)."""

    product_id: int
    name: str = ""
    quantity: int = 1
    price: Decimal = Decimal("0")
    line_subtotal: Decimal = Decimal("0")
    variation_id: int = 0
    variation: dict[str, str] = Field(default_factory=dict)


class AddCartItemRequest(BaseSchema):
    """Add a product to the live cart."""

    product_id: int = Field(..., gt=0)
    name: str = ""
    quantity: int = Field(1, ge=1)
    price: Decimal = Field(Decimal("0"), ge=0)
    variation_id: int = Field(0, ge=0)
    variation: dict[str, str] = Field(default_factory=dict)


class CartResponse(BaseSchema):
    """The shopper's live cart."""

    session_id: str
    items: list[CartLineItem]
    total: Decimal
    item_count: int


# --- Checkout capture ---


class CheckoutValidateRequest(BaseSchema):
    """Checkout form fields posted when WooCommerce validates checkout.

    ``billing_email`` is deliberately a plain string: a malformed address
    must be ignored, not rejected with 422.
    """

    billing_email: str | None = None
    billing_first_name: str | None = None
    billing_last_name: str | None = None


# --- Admin listing ---


class AbandonedCartResponse(BaseSchema):
    """API response for a tracked cart."""

    id: int
    user_id: str | None
    email: str | None
    customer_name: str | None
    items: list[dict[str, Any]]
    cart_total: float
    created_at: datetime
    email_sent: bool
    recovered: bool

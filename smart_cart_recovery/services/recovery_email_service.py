"""Recovery email rendering and sending."""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Protocol

from jinja2 import Environment, FileSystemLoader
from markupsafe import escape

from smart_cart_recovery.core.config import Settings, settings
from smart_cart_recovery.core.emails import normalize_email
from smart_cart_recovery.models.abandoned_cart import AbandonedCart
from smart_cart_recovery.schemas.recovery import RecoverySettings
from smart_cart_recovery.services.cart_snapshot import read_snapshot
from smart_cart_recovery.services.recovery_link import build_recovery_url

logger = logging.getLogger(__name__)

# Jinja2 template environment
TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"
_jinja_env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)), autoescape=True)

PLACEHOLDERS = ("customer_name", "cart_items", "cart_total", "checkout_url", "site_name")
_PLACEHOLDER_RE = re.compile(r"\{(" + "|".join(PLACEHOLDERS) + r")\}")


class MailTransport(Protocol):
    async def send(self, to_email: str, subject: str, html_content: str) -> bool: ...


def format_price(amount: Decimal, currency_symbol: str = "$") -> str:
    """Format a money amount for display, e.g. ``$1,234.50``."""
    value = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{currency_symbol}{value:,}"


def render_placeholders(template: str, values: dict[str, str]) -> str:
    """Substitute ``{name}`` placeholders in a single pass.

    Substituted text is never rescanned, so a customer name containing
    ``{checkout_url}`` stays literal. Unknown braces are left alone.
    """
    return _PLACEHOLDER_RE.sub(lambda match: values.get(match.group(1), ""), template)


class RecoveryEmailService:
    """Builds and sends the recovery email for one abandoned cart."""

    def __init__(
        self,
        recovery_settings: RecoverySettings,
        mailer: MailTransport,
        site: Settings = settings,
    ) -> None:
        self.recovery_settings = recovery_settings
        self.mailer = mailer
        self.site = site

    def render_cart_items(self, cart: AbandonedCart) -> str:
        items = [
            {
                "name": item.name or f"Product #{item.product_id}",
                "quantity": item.quantity,
                "subtotal": format_price(item.line_subtotal, self.site.currency_symbol),
            }
            for item in read_snapshot(cart.cart_data)
        ]
        template = _jinja_env.get_template("cart_items.html")
        return template.render(items=items)

    def build_message(self, cart: AbandonedCart) -> tuple[str, str]:
        """Return the (subject, html body) for a cart."""
        recovery_url = build_recovery_url(self.site.checkout_page_url, cart, self.site.secret_key)
        values = {
            "customer_name": str(escape(cart.customer_name or "there")),
            "cart_items": self.render_cart_items(cart),
            "cart_total": format_price(cart.cart_total, self.site.currency_symbol),
            "checkout_url": str(escape(recovery_url)),
            "site_name": str(escape(self.site.site_name)),
        }
        subject_values = values | {
            "customer_name": cart.customer_name or "there",
            "site_name": self.site.site_name,
        }
        subject = render_placeholders(self.recovery_settings.email_subject, subject_values)
        body = render_placeholders(self.recovery_settings.email_body, values)
        return subject, body

    async def send_recovery_email(self, cart: AbandonedCart) -> bool:
        """Send the recovery email. Returns True if the transport accepted it."""
        to_email = normalize_email(cart.email)
        if not to_email:
            logger.warning("Cart %s has no usable email, skipping", cart.id)
            return False
        if not self.recovery_settings.email_subject or not self.recovery_settings.email_body:
            logger.warning("Recovery email template is empty, skipping cart %s", cart.id)
            return False

        subject, body = self.build_message(cart)
        sent = await self.mailer.send(to_email, subject, body)
        if sent:
            logger.info("Recovery email sent: cart=%s to=%s", cart.id, to_email)
        return sent

"""WooCommerce webhook signature verification and payload helpers."""

import base64
import hashlib
import hmac
from typing import Any

SIGNATURE_HEADER = "X-WC-Webhook-Signature"
TOPIC_HEADER = "X-WC-Webhook-Topic"


def verify_webhook(data: bytes, signature: str, secret: str) -> bool:
    """Verify a WooCommerce webhook's HMAC-SHA256 signature.

    Args:
        data: The raw request body bytes.
        signature: The X-WC-Webhook-Signature header value.
        secret: The webhook secret configured in WooCommerce.

    Returns:
        True if the signature is valid.
    """
    if not secret or not signature:
        return False

    computed = base64.b64encode(
        hmac.new(
            secret.encode("utf-8"),
            data,
            hashlib.sha256,
        ).digest()
    ).decode("utf-8")

    return hmac.compare_digest(computed, signature)


def order_billing_email(payload: dict[str, Any]) -> str | None:
    """Billing email of a WooCommerce order payload (REST v3 shape)."""
    billing = payload.get("billing")
    if isinstance(billing, dict) and billing.get("email"):
        return str(billing["email"])
    email = payload.get("billing_email")
    return str(email) if email else None

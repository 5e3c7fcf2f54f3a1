"""HMAC signing helper for simulating WooCommerce order webhooks.

Reads the JSON body from stdin and prints the base64-encoded HMAC-SHA256
signature WooCommerce would send, using WOOCOMMERCE_WEBHOOK_SECRET from the
environment (or .env file).

Usage:
    echo '{"id": 123}' | python -m scripts.sign_webhook

    # Full curl example:
    BODY='{"id":1234,"status":"processing","billing":{"email":"b@example.com"}}'
    SIG=$(echo -n "$BODY" | python -m scripts.sign_webhook)
    curl -X POST http://localhost:8000/api/v1/webhooks/woocommerce/orders-update \\
      -H "Content-Type: application/json" \\
      -H "X-WC-Webhook-Topic: order.updated" \\
      -H "X-WC-Webhook-Signature: $SIG" \\
      -d "$BODY"
"""

import base64
import hashlib
import hmac
import sys

from smart_cart_recovery.core.config import settings


def sign(body: bytes, secret: str) -> str:
    """Compute base64-encoded HMAC-SHA256 signature."""
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


def main() -> None:
    secret = settings.woocommerce_webhook_secret
    if not secret:
        print("ERROR: WOOCOMMERCE_WEBHOOK_SECRET is not set in .env", file=sys.stderr)
        sys.exit(1)

    body = sys.stdin.buffer.read()
    if not body:
        print("ERROR: No input received on stdin", file=sys.stderr)
        sys.exit(1)

    print(sign(body, secret), end="")


if __name__ == "__main__":
    main()

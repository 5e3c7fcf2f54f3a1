"""Signed recovery links.

A link carries the cart id and an HMAC-SHA256 over the record's id, email
and capture time. Recapturing the cart moves ``created_at`` and therefore
invalidates every link issued before.
"""

import hashlib
import hmac
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from smart_cart_recovery.models.abandoned_cart import AbandonedCart

PARAM_MARKER = "scrm_recover"
PARAM_CART = "scrm_cart"
PARAM_KEY = "scrm_key"
RECOVERY_PARAMS = (PARAM_MARKER, PARAM_CART, PARAM_KEY)

# Largest id a BIGINT primary key can hold
MAX_CART_ID = 2**63 - 1


@dataclass(frozen=True)
class RecoveryParams:
    """Parsed recovery query parameters."""

    cart_id: int
    key: str


def canonical_timestamp(value: datetime) -> str:
    """Render a timestamp as naive UTC with microseconds.

    PostgreSQL hands back aware datetimes, SQLite naive ones; both must
    sign identically.
    """
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value.isoformat(sep=" ", timespec="microseconds")


def generate_recovery_key(
    cart_id: int, email: str | None, created_at: datetime, secret: str
) -> str:
    """Keyed hash over (id, email, created_at)."""
    message = f"{cart_id}|{email or ''}|{canonical_timestamp(created_at)}"
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def verify_recovery_key(
    cart_id: int, email: str | None, created_at: datetime, secret: str, key: str
) -> bool:
    """Constant-time check of a presented key against the record."""
    expected = generate_recovery_key(cart_id, email, created_at, secret)
    return hmac.compare_digest(expected, key)


def build_recovery_url(base_url: str, cart: AbandonedCart, secret: str) -> str:
    """Append the recovery parameters to the checkout URL."""
    key = generate_recovery_key(cart.id, cart.email, cart.created_at, secret)
    parts = urlsplit(base_url)
    query = [(k, v) for k, v in parse_qsl(parts.query) if k not in RECOVERY_PARAMS]
    query += [(PARAM_MARKER, "1"), (PARAM_CART, str(cart.id)), (PARAM_KEY, key)]
    return urlunsplit(parts._replace(query=urlencode(query)))


def has_recovery_params(query: Mapping[str, str]) -> bool:
    return all(name in query for name in RECOVERY_PARAMS)


def parse_recovery_params(query: Mapping[str, str]) -> RecoveryParams | None:
    """Extract cart id and key; None unless all three params are usable."""
    if not has_recovery_params(query):
        return None

    raw_id = str(query[PARAM_CART]).strip()
    key = str(query[PARAM_KEY]).strip()
    if not (raw_id.isascii() and raw_id.isdigit()) or not key:
        return None

    cart_id = int(raw_id)
    if not 0 < cart_id <= MAX_CART_ID:
        return None
    return RecoveryParams(cart_id=cart_id, key=key)

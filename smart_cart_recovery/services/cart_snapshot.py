"""Conversion between live cart lines and stored snapshot items.

Snapshots are JSON, so money travels as decimal strings. Reading is
lenient: rows written by older versions or edited by hand must not break
the sweep or a recovery.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from smart_cart_recovery.schemas.recovery import CartLineItem


@dataclass
class SnapshotItem:
    """One normalized snapshot line."""

    product_id: int
    name: str
    quantity: int
    price: Decimal
    line_subtotal: Decimal
    variation_id: int = 0
    variation: dict[str, str] = field(default_factory=dict)


def build_snapshot(items: list[CartLineItem]) -> dict[str, Any]:
    """Serialize live cart lines into the stored ``cart_data`` shape."""
    return {
        "items": [
            {
                "product_id": item.product_id,
                "name": item.name,
                "quantity": item.quantity,
                "price": str(item.price),
                "line_subtotal": str(item.line_subtotal),
                "variation_id": item.variation_id,
                "variation": dict(item.variation),
            }
            for item in items
        ]
    }


def read_snapshot(cart_data: dict[str, Any] | None) -> list[SnapshotItem]:
    """Parse stored ``cart_data`` into normalized items."""
    raw_items = (cart_data or {}).get("items")
    if not isinstance(raw_items, list):
        return []

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        variation = raw.get("variation")
        items.append(
            SnapshotItem(
                product_id=_as_int(raw.get("product_id"), 0),
                name=str(raw.get("name") or ""),
                quantity=_as_int(raw.get("quantity"), 1),
                price=_as_decimal(raw.get("price")),
                line_subtotal=_as_decimal(raw.get("line_subtotal")),
                variation_id=_as_int(raw.get("variation_id"), 0),
                variation={str(k): str(v) for k, v in variation.items()}
                if isinstance(variation, dict)
                else {},
            )
        )
    return items


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value)) if value is not None else Decimal("0")
    except InvalidOperation:
        return Decimal("0")

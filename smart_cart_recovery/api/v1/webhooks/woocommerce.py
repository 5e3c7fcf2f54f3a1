"""WooCommerce order webhook handlers for cart reconciliation."""

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from smart_cart_recovery.core.config import settings
from smart_cart_recovery.integrations.woocommerce.webhooks import (
    SIGNATURE_HEADER,
    TOPIC_HEADER,
    verify_webhook,
)
from smart_cart_recovery.workers.tasks.recovery import (
    process_order_created,
    process_order_updated,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _verify_and_parse(request: Request) -> dict[str, Any] | None:
    """Read body, verify HMAC, parse JSON.

    Returns None for WooCommerce's unsigned ``webhook_id=<n>`` ping and for
    bodies that are not a JSON object.
    """
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER, "")

    if not signature and body.startswith(b"webhook_id="):
        return None

    if not verify_webhook(body, signature, settings.woocommerce_webhook_secret):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid webhook signature")

    try:
        data = json.loads(body)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


@router.post("/orders-create")
async def orders_create(request: Request) -> dict[str, str]:
    """Handle order created webhook."""
    data = await _verify_and_parse(request)
    if data is None:
        return {"status": "ignored"}

    process_order_created.delay(data)
    logger.info(
        "Order webhook accepted: topic=%s order=%s",
        request.headers.get(TOPIC_HEADER, "order.created"),
        data.get("id"),
    )
    return {"status": "accepted"}


@router.post("/orders-update")
async def orders_update(request: Request) -> dict[str, str]:
    """Handle order updated webhook (status changes)."""
    data = await _verify_and_parse(request)
    if data is None:
        return {"status": "ignored"}

    process_order_updated.delay(data)
    logger.info(
        "Order webhook accepted: topic=%s order=%s status=%s",
        request.headers.get(TOPIC_HEADER, "order.updated"),
        data.get("id"),
        data.get("status"),
    )
    return {"status": "accepted"}

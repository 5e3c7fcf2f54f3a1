"""Checkout endpoints: capture on validation, and the checkout view."""

import logging

from fastapi import APIRouter, Request
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from smart_cart_recovery.api.v1.cart import cart_response
from smart_cart_recovery.core.deps import Hooks, LiveCart, OptionalUser
from smart_cart_recovery.core.hooks import HookEvent
from smart_cart_recovery.core.rate_limit import limiter
from smart_cart_recovery.schemas.common import StatusResponse
from smart_cart_recovery.schemas.recovery import CartResponse, CheckoutValidateRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=CartResponse)
async def checkout_view(cart: LiveCart) -> CartResponse:
    """Checkout view of the live cart; recovery links redirect here."""
    return await cart_response(cart)


@router.post("/validate", response_model=StatusResponse)
@limiter.limit("30/minute")
async def validate_checkout(
    request: Request,  # noqa: ARG001
    data: CheckoutValidateRequest,
    cart: LiveCart,
    hooks: Hooks,
    user: OptionalUser,
) -> StatusResponse:
    """Checkout form validation.

    Captures the cart for recovery. Capture problems are logged and never
    fail the checkout.
    """
    try:
        await hooks.do_action(HookEvent.CHECKOUT_VALIDATED, form=data, cart=cart, user=user)
    except (SQLAlchemyError, RedisError):
        logger.exception("Cart capture failed during checkout validation")
    return StatusResponse(status="ok")

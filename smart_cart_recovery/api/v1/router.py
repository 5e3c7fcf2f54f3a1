"""API v1 router combining all route modules."""

from fastapi import APIRouter

from smart_cart_recovery.api.v1 import cart, checkout, health, recovery
from smart_cart_recovery.api.v1.webhooks import woocommerce as woocommerce_webhooks

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Live cart (storefront, session cookie)
api_router.include_router(
    cart.router,
    prefix="/cart",
    tags=["cart"],
)

# Checkout view and capture on validation
api_router.include_router(
    checkout.router,
    prefix="/checkout",
    tags=["checkout"],
)

# WooCommerce webhooks (no auth - verified via HMAC)
api_router.include_router(
    woocommerce_webhooks.router,
    prefix="/webhooks/woocommerce",
    tags=["webhooks"],
)

# Cart Recovery administration (shop manager JWT)
api_router.include_router(
    recovery.router,
    prefix="/recovery",
    tags=["recovery"],
)

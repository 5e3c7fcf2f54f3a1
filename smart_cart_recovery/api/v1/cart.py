"""Live cart endpoints for the storefront."""

from fastapi import APIRouter, HTTPException, status

from smart_cart_recovery.core.deps import LiveCart
from smart_cart_recovery.integrations.cart.redis_cart import RedisCart
from smart_cart_recovery.schemas.recovery import AddCartItemRequest, CartResponse

router = APIRouter()


async def cart_response(cart: RedisCart) -> CartResponse:
    items = await cart.get_items()
    return CartResponse(
        session_id=cart.session_id,
        items=items,
        total=await cart.get_total(),
        item_count=sum(item.quantity for item in items),
    )


@router.get("", response_model=CartResponse)
async def get_cart(cart: LiveCart) -> CartResponse:
    """Get the shopper's cart."""
    return await cart_response(cart)


@router.post("/items", response_model=CartResponse, status_code=status.HTTP_201_CREATED)
async def add_cart_item(data: AddCartItemRequest, cart: LiveCart) -> CartResponse:
    """Add a product to the cart, merging with a matching line."""
    added = await cart.add_to_cart(
        data.product_id,
        data.quantity,
        data.variation_id,
        data.variation,
        name=data.name,
        price=data.price,
    )
    if not added:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, "Item could not be added")
    return await cart_response(cart)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def empty_cart(cart: LiveCart) -> None:
    """Remove every line from the cart."""
    await cart.empty()

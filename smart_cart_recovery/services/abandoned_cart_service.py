"""Admin listing of tracked carts."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from smart_cart_recovery.models.abandoned_cart import AbandonedCart
from smart_cart_recovery.schemas.recovery import AbandonedCartResponse


class AbandonedCartService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_carts(
        self,
        page: int,
        page_size: int,
        *,
        email_sent: bool | None = None,
    ) -> tuple[list[AbandonedCartResponse], int]:
        """Paginated abandoned carts, newest capture first."""
        count_stmt = select(func.count()).select_from(AbandonedCart)
        stmt = select(AbandonedCart)
        if email_sent is not None:
            count_stmt = count_stmt.where(AbandonedCart.email_sent == email_sent)
            stmt = stmt.where(AbandonedCart.email_sent == email_sent)

        total = (await self.db.execute(count_stmt)).scalar() or 0

        stmt = (
            stmt.order_by(AbandonedCart.created_at.desc(), AbandonedCart.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(stmt)
        carts = list(result.scalars().all())

        items = [
            AbandonedCartResponse(
                id=c.id,
                user_id=c.user_id,
                email=c.email,
                customer_name=c.customer_name,
                items=c.items,
                cart_total=float(c.cart_total),
                created_at=c.created_at,
                email_sent=c.email_sent,
                recovered=c.recovered,
            )
            for c in carts
        ]
        return items, total

"""Recovery management API endpoints (shop managers only)."""

import logging

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import ValidationError

from smart_cart_recovery.core.deps import DBSession, ShopManager
from smart_cart_recovery.schemas.common import PaginatedResponse
from smart_cart_recovery.schemas.recovery import (
    AbandonedCartResponse,
    RecoverySettingsResponse,
    RecoverySettingsUpdate,
)
from smart_cart_recovery.services.abandoned_cart_service import AbandonedCartService
from smart_cart_recovery.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/settings", response_model=RecoverySettingsResponse)
async def get_recovery_settings(
    _user: ShopManager,
    db: DBSession,
) -> RecoverySettingsResponse:
    """Get recovery settings. The SMTP password is never returned."""
    return await SettingsService(db).get_public()


@router.patch("/settings", response_model=RecoverySettingsResponse)
async def update_recovery_settings(
    data: RecoverySettingsUpdate,
    _user: ShopManager,
    db: DBSession,
) -> RecoverySettingsResponse:
    """Update recovery settings. Omitted fields keep their stored value."""
    service = SettingsService(db)
    try:
        await service.update(data)
    except ValidationError as e:
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_ENTITY, e.errors(include_url=False)
        ) from e
    return await service.get_public()


@router.get("/carts", response_model=PaginatedResponse[AbandonedCartResponse])
async def list_carts(
    _user: ShopManager,
    db: DBSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    email_sent: bool | None = Query(None),
) -> PaginatedResponse[AbandonedCartResponse]:
    """Get paginated list of tracked abandoned carts."""
    items, total = await AbandonedCartService(db).get_carts(
        page, page_size, email_sent=email_sent
    )
    pages = (total + page_size - 1) // page_size if total > 0 else 1
    return PaginatedResponse(items=items, total=total, page=page, page_size=page_size, pages=pages)

"""Persistence of the recovery settings blob."""

import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from smart_cart_recovery.core.emails import normalize_email
from smart_cart_recovery.core.encryption import decrypt_secret, encrypt_secret
from smart_cart_recovery.models.option import Option
from smart_cart_recovery.schemas.recovery import (
    RecoverySettings,
    RecoverySettingsResponse,
    RecoverySettingsUpdate,
)

logger = logging.getLogger(__name__)

SETTINGS_OPTION = "scrm_settings"


class SettingsService:
    """Reads and writes the ``scrm_settings`` option."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self) -> RecoverySettings:
        """Stored settings merged over defaults, SMTP password decrypted."""
        option = await self._load()
        stored: dict[str, Any] = dict(option.value) if option and option.value else {}
        if stored.get("smtp_password"):
            stored["smtp_password"] = decrypt_secret(stored["smtp_password"])

        try:
            return RecoverySettings.model_validate(stored)
        except ValidationError:
            logger.warning("Stored recovery settings are invalid, using defaults")
            return RecoverySettings()

    async def get_public(self) -> RecoverySettingsResponse:
        current = await self.get()
        return RecoverySettingsResponse(
            **current.model_dump(),
            smtp_password_set=bool(current.smtp_password),
        )

    async def update(self, data: RecoverySettingsUpdate) -> RecoverySettings:
        """Merge a partial update into the stored settings.

        Raises:
            ValidationError: If the merged settings are not valid.
        """
        current = await self.get()
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "from_email" in changes:
            changes["from_email"] = normalize_email(changes["from_email"]) or ""

        merged = RecoverySettings.model_validate(current.model_dump() | changes)

        stored = merged.model_dump()
        stored["smtp_password"] = encrypt_secret(merged.smtp_password)

        option = await self._load()
        if option:
            option.value = stored
        else:
            self.db.add(Option(name=SETTINGS_OPTION, value=stored))
        await self.db.commit()

        logger.info("Recovery settings updated: fields=%s", sorted(changes))
        return merged

    async def _load(self) -> Option | None:
        stmt = select(Option).where(Option.name == SETTINGS_OPTION)
        return (await self.db.execute(stmt)).scalar_one_or_none()

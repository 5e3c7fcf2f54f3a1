"""Tests for recovery settings and the admin API.

Covers:
- SettingsService defaults, partial updates, clamping and password encryption
- GET/PATCH /api/v1/recovery/settings (shop managers only)
- GET /api/v1/recovery/carts listing
"""

from collections.abc import Callable
from datetime import timedelta
from typing import Any

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from smart_cart_recovery.core.emails import normalize_email
from smart_cart_recovery.core.encryption import decrypt_secret
from smart_cart_recovery.models.option import Option
from smart_cart_recovery.schemas.recovery import DEFAULT_EMAIL_SUBJECT, RecoverySettingsUpdate
from smart_cart_recovery.services.settings_service import SETTINGS_OPTION, SettingsService
from tests.conftest import FROZEN_NOW


async def _stored(db: AsyncSession) -> dict[str, Any]:
    option = (
        await db.execute(select(Option).where(Option.name == SETTINGS_OPTION))
    ).scalar_one()
    await db.refresh(option)
    return option.value


class TestSettingsService:
    """Tests for SettingsService."""

    @pytest.mark.asyncio
    async def test_defaults_without_stored_option(self, db_session: AsyncSession) -> None:
        config = await SettingsService(db_session).get()

        assert config.enabled is True
        assert config.abandon_time == 60
        assert config.email_subject == DEFAULT_EMAIL_SUBJECT
        assert config.smtp_enabled is False
        assert config.smtp_port == 587
        assert config.smtp_encryption == "tls"
        assert config.order_reconciliation == "paid"

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, db_session: AsyncSession) -> None:
        service = SettingsService(db_session)
        await service.update(RecoverySettingsUpdate(abandon_time=45, from_name="Shop Team"))

        await service.update(RecoverySettingsUpdate(enabled=False))
        config = await service.get()

        assert config.enabled is False
        assert config.abandon_time == 45
        assert config.from_name == "Shop Team"

    @pytest.mark.asyncio
    async def test_clamps_and_normalizes(self, db_session: AsyncSession) -> None:
        """Non-positive numbers fall back; unknown encryption means TLS."""
        config = await SettingsService(db_session).update(
            RecoverySettingsUpdate(
                abandon_time=0,
                smtp_port=0,
                smtp_encryption="starttls",
                from_email=" Sales@EXAMPLE.com ",
            )
        )

        assert config.abandon_time == 1
        assert config.smtp_port == 587
        assert config.smtp_encryption == "tls"
        assert config.from_email == normalize_email("Sales@EXAMPLE.com")
        assert config.from_email.lower() == "sales@example.com"

    @pytest.mark.asyncio
    async def test_invalid_from_email_is_cleared(self, db_session: AsyncSession) -> None:
        config = await SettingsService(db_session).update(
            RecoverySettingsUpdate(from_email="nope")
        )

        assert config.from_email == ""

    @pytest.mark.asyncio
    async def test_smtp_password_encrypted_at_rest(self, db_session: AsyncSession) -> None:
        service = SettingsService(db_session)
        await service.update(RecoverySettingsUpdate(smtp_password="hunter2"))

        stored = await _stored(db_session)

        assert stored["smtp_password"] != "hunter2"
        assert decrypt_secret(stored["smtp_password"]) == "hunter2"
        assert (await service.get()).smtp_password == "hunter2"

    @pytest.mark.asyncio
    async def test_password_survives_unrelated_update(self, db_session: AsyncSession) -> None:
        service = SettingsService(db_session)
        await service.update(RecoverySettingsUpdate(smtp_password="hunter2"))

        await service.update(RecoverySettingsUpdate(smtp_host="smtp.example.com"))

        assert (await service.get()).smtp_password == "hunter2"

    @pytest.mark.asyncio
    async def test_invalid_stored_blob_falls_back_to_defaults(
        self, db_session: AsyncSession
    ) -> None:
        db_session.add(Option(name=SETTINGS_OPTION, value={"abandon_time": "soon"}))
        await db_session.commit()

        config = await SettingsService(db_session).get()

        assert config.abandon_time == 60


class TestRecoverySettingsEndpoints:
    """Tests for GET/PATCH /api/v1/recovery/settings."""

    @pytest.mark.asyncio
    async def test_get_returns_defaults(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/recovery/settings")

        assert response.status_code == 200
        data = response.json()
        assert data["enabled"] is True
        assert data["abandon_time"] == 60
        assert data["smtp_password_set"] is False
        assert "smtp_password" not in data

    @pytest.mark.asyncio
    async def test_patch_updates_and_hides_password(self, client: AsyncClient) -> None:
        response = await client.patch(
            "/api/v1/recovery/settings",
            json={"abandon_time": 90, "smtp_enabled": True, "smtp_password": "hunter2"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["abandon_time"] == 90
        assert data["smtp_enabled"] is True
        assert data["smtp_password_set"] is True
        assert "smtp_password" not in data

        again = await client.get("/api/v1/recovery/settings")
        assert again.json()["abandon_time"] == 90

    @pytest.mark.asyncio
    async def test_patch_rejects_unknown_policy(self, client: AsyncClient) -> None:
        response = await client.patch(
            "/api/v1/recovery/settings", json={"order_reconciliation": "never"}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unauthenticated_returns_401(self, unauthed_client: AsyncClient) -> None:
        response = await unauthed_client.get("/api/v1/recovery/settings")

        assert response.status_code == 401

    @pytest.mark.asyncio
    @pytest.mark.parametrize("auth_user", [{"sub": "7", "roles": ["customer"]}])
    async def test_non_manager_returns_403(self, client: AsyncClient) -> None:
        response = await client.patch("/api/v1/recovery/settings", json={"enabled": False})

        assert response.status_code == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize("auth_user", [{"sub": "1", "role": "administrator"}])
    async def test_single_role_claim_accepted(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/recovery/settings")

        assert response.status_code == 200


class TestAbandonedCartListing:
    """Tests for GET /api/v1/recovery/carts."""

    @pytest.mark.asyncio
    async def test_lists_newest_first(
        self,
        client: AsyncClient,
        abandoned_cart_factory: Callable[..., Any],
    ) -> None:
        await abandoned_cart_factory(
            email="old@example.com", created_at=FROZEN_NOW - timedelta(hours=1)
        )
        await abandoned_cart_factory(email="new@example.com", lines=[(101, 2, "12.50")])

        response = await client.get("/api/v1/recovery/carts")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["pages"] == 1
        assert [item["email"] for item in data["items"]] == ["new@example.com", "old@example.com"]
        assert data["items"][0]["cart_total"] == 25.0
        assert data["items"][0]["items"][0]["quantity"] == 2

    @pytest.mark.asyncio
    async def test_filters_by_email_sent_and_paginates(
        self,
        client: AsyncClient,
        abandoned_cart_factory: Callable[..., Any],
    ) -> None:
        for n in range(3):
            await abandoned_cart_factory(email=f"open{n}@example.com")
        await abandoned_cart_factory(email="sent@example.com", email_sent=True)

        response = await client.get(
            "/api/v1/recovery/carts", params={"email_sent": "false", "page_size": 2}
        )

        data = response.json()
        assert data["total"] == 3
        assert data["pages"] == 2
        assert len(data["items"]) == 2
        assert all(item["email_sent"] is False for item in data["items"])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("auth_user", [{"sub": "7", "roles": ["customer"]}])
    async def test_non_manager_returns_403(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/recovery/carts")

        assert response.status_code == 403

"""Pytest configuration and fixtures for the Smart Cart Recovery test suite.

Provides:
- A throwaway SQLite database per test (aiosqlite)
- Fake Redis for live carts
- A frozen, advanceable clock
- A recovery plugin wired to a mocked mail transport
- Async HTTP clients with DB, Redis and auth overridden
- Disabled rate limiting
- Factories for abandoned carts and live carts
"""

from collections.abc import AsyncGenerator, Callable, Generator
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from scripts.sign_webhook import sign
from smart_cart_recovery.core.auth import get_current_user, get_optional_user
from smart_cart_recovery.core.config import settings
from smart_cart_recovery.core.database import get_async_session
from smart_cart_recovery.core.deps import get_db, get_redis
from smart_cart_recovery.core.hooks import HookRegistry
from smart_cart_recovery.core.rate_limit import limiter
from smart_cart_recovery.integrations.cart.redis_cart import RedisCart, RedisCartStore
from smart_cart_recovery.main import app
from smart_cart_recovery.models.abandoned_cart import AbandonedCart
from smart_cart_recovery.models.base import Base
from smart_cart_recovery.plugin import RecoveryPlugin
from smart_cart_recovery.schemas.recovery import CartLineItem
from smart_cart_recovery.services.cart_snapshot import build_snapshot

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
TEST_USER_ID = "42"
TEST_USER_EMAIL = "manager@example.com"
TEST_WEBHOOK_SECRET = "test-webhook-secret"
FROZEN_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


# ---------------------------------------------------------------------------
# Database: one SQLite file per test
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create the schema in a fresh SQLite database.

    Uses NullPool so every session gets its own connection, as the plugin
    handlers open sessions independently of the test's.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for test setup and assertions."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FROZEN_NOW)


# ---------------------------------------------------------------------------
# Fake Redis and live carts
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def cart_store(fake_redis: fakeredis.aioredis.FakeRedis) -> RedisCartStore:
    return RedisCartStore(fake_redis)


@pytest.fixture
def live_cart_factory(cart_store: RedisCartStore) -> Callable[..., Any]:
    """Factory that fills a live cart for a session.

    Usage:
        cart = await live_cart_factory("sess-1", [(101, 1, "10.00"), (202, 2, "25.00")])
    """

    async def _create(
        session_id: str = "test-session",
        lines: list[tuple[int, int, str]] | None = None,
    ) -> RedisCart:
        cart = cart_store(session_id)
        for product_id, quantity, price in lines or []:
            await cart.add_to_cart(
                product_id, quantity, name=f"Product {product_id}", price=Decimal(price)
            )
        return cart

    return _create


# ---------------------------------------------------------------------------
# Mail transport and plugin
# ---------------------------------------------------------------------------


@pytest.fixture
def mailer() -> MagicMock:
    """Mail transport whose ``send`` succeeds unless told otherwise."""
    transport = MagicMock()
    transport.send = AsyncMock(return_value=True)
    return transport


@pytest.fixture
def plugin(
    session_factory: async_sessionmaker[AsyncSession],
    mailer: MagicMock,
    clock: FrozenClock,
) -> RecoveryPlugin:
    return RecoveryPlugin(
        session_factory,
        settings,
        mailer_factory=lambda _config: mailer,
        clock=clock,
    )


@pytest.fixture
def hooks(plugin: RecoveryPlugin) -> HookRegistry:
    return plugin.register(HookRegistry())


# ---------------------------------------------------------------------------
# Auth mock
# ---------------------------------------------------------------------------


@pytest.fixture
def auth_user() -> dict[str, Any]:
    """Return the default shop manager payload (mimics decoded JWT)."""
    return {
        "sub": TEST_USER_ID,
        "email": TEST_USER_EMAIL,
        "given_name": "Morgan",
        "family_name": "Lee",
        "roles": ["shop_manager"],
    }


@pytest.fixture
def shopper() -> dict[str, Any] | None:
    """Identity seen by optional-auth endpoints; guests by default."""
    return None


# ---------------------------------------------------------------------------
# HTTP clients
# ---------------------------------------------------------------------------


@pytest.fixture
def _app_state(
    hooks: HookRegistry,
    plugin: RecoveryPlugin,
    cart_store: RedisCartStore,
) -> Generator[None, None, None]:
    """Point the app at the test plugin and fake cart store."""
    original = (app.state.hooks, app.state.plugin, app.state.cart_store)
    app.state.hooks = hooks
    app.state.plugin = plugin
    app.state.cart_store = cart_store
    yield
    app.state.hooks, app.state.plugin, app.state.cart_store = original


def _override_common(
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> None:
    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    async def _override_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
        yield fake_redis

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_db] = _override_session
    app.dependency_overrides[get_redis] = _override_redis


@pytest_asyncio.fixture
async def client(
    _app_state: None,
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: fakeredis.aioredis.FakeRedis,
    auth_user: dict[str, Any],
    shopper: dict[str, Any] | None,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with DB, Redis and auth overridden."""

    async def _override_user() -> dict[str, Any]:
        return auth_user

    async def _override_optional_user() -> dict[str, Any] | None:
        return shopper

    _override_common(session_factory, fake_redis)
    app.dependency_overrides[get_current_user] = _override_user
    app.dependency_overrides[get_optional_user] = _override_optional_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def unauthed_client(
    _app_state: None,
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated async test client. Auth is NOT overridden."""
    _override_common(session_factory, fake_redis)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def abandoned_cart_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates AbandonedCart rows directly."""

    async def _create(
        *,
        email: str | None = "shopper@example.com",
        user_id: str | None = None,
        customer_name: str | None = "Jane",
        lines: list[tuple[int, int, str]] | None = None,
        created_at: datetime = FROZEN_NOW,
        email_sent: bool = False,
    ) -> AbandonedCart:
        items = [
            CartLineItem(
                product_id=product_id,
                name=f"Product {product_id}",
                quantity=quantity,
                price=Decimal(price),
                line_subtotal=Decimal(price) * quantity,
            )
            for product_id, quantity, price in (lines or [(101, 1, "10.00")])
        ]
        cart = AbandonedCart(
            email=email,
            user_id=user_id,
            customer_name=customer_name,
            cart_data=build_snapshot(items),
            cart_total=sum((item.line_subtotal for item in items), Decimal("0")),
            created_at=created_at,
            email_sent=email_sent,
            recovered=False,
        )
        db_session.add(cart)
        await db_session.commit()
        await db_session.refresh(cart)
        return cart

    return _create


# ---------------------------------------------------------------------------
# WooCommerce webhooks
# ---------------------------------------------------------------------------


@pytest.fixture
def webhook_secret() -> Generator[str, None, None]:
    """Configure the WooCommerce webhook secret for the test."""
    with patch.object(settings, "woocommerce_webhook_secret", TEST_WEBHOOK_SECRET):
        yield TEST_WEBHOOK_SECRET


@pytest.fixture
def woocommerce_webhook_headers(webhook_secret: str) -> Callable[[bytes, str], dict[str, str]]:
    """Generate signed WooCommerce webhook headers for a body and topic."""

    def _headers(body: bytes, topic: str = "order.created") -> dict[str, str]:
        return {
            "X-WC-Webhook-Signature": sign(body, webhook_secret),
            "X-WC-Webhook-Topic": topic,
            "Content-Type": "application/json",
        }

    return _headers


@pytest.fixture
def mock_celery_recovery_tasks() -> Generator[dict[str, MagicMock], None, None]:
    """Patch Celery order tasks where the webhook routes import them."""
    with (
        patch(
            "smart_cart_recovery.api.v1.webhooks.woocommerce.process_order_created"
        ) as created,
        patch(
            "smart_cart_recovery.api.v1.webhooks.woocommerce.process_order_updated"
        ) as updated,
    ):
        yield {"process_order_created": created, "process_order_updated": updated}


@pytest.fixture
def mock_async_session_maker_recovery(
    session_factory: async_sessionmaker[AsyncSession],
) -> Generator[None, None, None]:
    """Patch async_session_maker so recovery tasks use the test database."""
    with patch(
        "smart_cart_recovery.workers.tasks.recovery.async_session_maker", session_factory
    ):
        yield

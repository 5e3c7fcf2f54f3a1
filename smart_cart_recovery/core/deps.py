"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

# Re-export auth dependencies for convenience
from smart_cart_recovery.core.auth import (
    CurrentUser,
    OptionalUser,
    ShopManager,
    get_current_user,
    get_optional_user,
)
from smart_cart_recovery.core.config import settings
from smart_cart_recovery.core.database import get_async_session
from smart_cart_recovery.core.hooks import HookRegistry
from smart_cart_recovery.core.logging_config import cart_session_var
from smart_cart_recovery.integrations.cart.redis_cart import (
    CART_TTL_SECONDS,
    SESSION_COOKIE,
    SESSION_HEADER,
    RedisCart,
    generate_session_id,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session."""
    async for session in get_async_session():
        yield session


# Shared Redis connection pool
_redis_pool: aioredis.ConnectionPool | None = None


def _get_redis_pool() -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            str(settings.redis_url), decode_responses=True
        )
    return _redis_pool


def get_redis_client() -> aioredis.Redis:
    """Redis client on the shared connection pool."""
    return aioredis.Redis(connection_pool=_get_redis_pool())


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Yield a Redis client from the shared connection pool."""
    r = get_redis_client()
    try:
        yield r
    finally:
        await r.aclose()


def get_hooks(request: Request) -> HookRegistry:
    """The application's hook registry."""
    hooks: HookRegistry = request.app.state.hooks
    return hooks


def resolve_session_id(request: Request) -> str:
    """Cart session from the cookie or header, or a fresh one."""
    return (
        request.cookies.get(SESSION_COOKIE)
        or request.headers.get(SESSION_HEADER)
        or generate_session_id()
    )


def set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        session_id,
        max_age=CART_TTL_SECONDS,
        httponly=True,
        samesite="lax",
    )


async def get_live_cart(request: Request, response: Response) -> RedisCart:
    """The shopper's live cart; (re)issues the session cookie."""
    session_id = resolve_session_id(request)
    cart_session_var.set(session_id)
    set_session_cookie(response, session_id)
    cart: RedisCart = request.app.state.cart_store(session_id)
    return cart


# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]
Hooks = Annotated[HookRegistry, Depends(get_hooks)]
LiveCart = Annotated[RedisCart, Depends(get_live_cart)]


__all__ = [
    "CurrentUser",
    "DBSession",
    "Hooks",
    "LiveCart",
    "OptionalUser",
    "ShopManager",
    "get_current_user",
    "get_db",
    "get_hooks",
    "get_live_cart",
    "get_optional_user",
    "get_redis",
    "get_redis_client",
    "resolve_session_id",
    "set_session_cookie",
]

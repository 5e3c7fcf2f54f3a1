"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from redis.exceptions import RedisError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from smart_cart_recovery.api.v1.router import api_router
from smart_cart_recovery.core.config import settings
from smart_cart_recovery.core.database import async_session_maker
from smart_cart_recovery.core.deps import get_redis_client, resolve_session_id, set_session_cookie
from smart_cart_recovery.core.hooks import HookEvent, HookRegistry
from smart_cart_recovery.core.logging_config import (
    cart_session_var,
    generate_request_id,
    request_id_var,
    setup_logging,
)
from smart_cart_recovery.core.rate_limit import limiter
from smart_cart_recovery.integrations.cart.redis_cart import RedisCartStore
from smart_cart_recovery.plugin import RecoveryPlugin
from smart_cart_recovery.services.recovery_link import has_recovery_params

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup fails with CommerceUnavailableError when the cart store is down.
    """
    setup_logging(debug=settings.debug)
    logger.info("Starting %s v%s", settings.project_name, settings.version)
    logger.info("Environment: %s", settings.environment)
    await app.state.plugin.activate(await app.state.cart_store.is_available())
    yield
    logger.info("Shutting down...")
    await app.state.cart_store.redis.aclose()


def create_app(plugin: RecoveryPlugin | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    # Sentry/GlitchTip init (before middleware)
    if settings.sentry_dsn:
        import sentry_sdk

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            traces_sample_rate=0.1,
        )

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        openapi_url=f"{settings.api_v1_prefix}/openapi.json",
        docs_url=f"{settings.api_v1_prefix}/docs",
        redoc_url=f"{settings.api_v1_prefix}/redoc",
        lifespan=lifespan,
    )

    # Recovery plugin wired to the lifecycle hooks
    app.state.plugin = plugin or RecoveryPlugin(async_session_maker)
    app.state.hooks = app.state.plugin.register(HookRegistry())
    app.state.cart_store = RedisCartStore(get_redis_client())

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]
    app.add_middleware(SlowAPIMiddleware)

    # CORS: the WooCommerce storefront and admin origins, with credentials for
    # the cart session cookie.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Cart-Session"],
    )

    # Recovery link middleware: any URL carrying the recovery parameters
    @app.middleware("http")
    async def recovery_link_middleware(request: Request, call_next: Any) -> Response:
        if not has_recovery_params(request.query_params):
            response: Response = await call_next(request)
            return response

        session_id = resolve_session_id(request)
        cart_session_var.set(session_id)
        cart = request.app.state.cart_store(session_id)
        try:
            results = await request.app.state.hooks.do_action(
                HookEvent.REQUEST_INIT, query=dict(request.query_params), cart=cart
            )
        except (SQLAlchemyError, RedisError):
            logger.exception("Recovery link handling failed")
            results = []

        redirect_url = next((r for r in results if r), None)
        if redirect_url is None:
            response = await call_next(request)
            return response

        redirect = RedirectResponse(url=redirect_url, status_code=302)
        set_session_cookie(redirect, session_id)
        return redirect

    # Request ID middleware
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next: Any) -> Response:
        rid = request.headers.get("X-Request-ID") or generate_request_id()
        request_id_var.set(rid)
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response

    # Include API routes
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    # Global exception handler to ensure CORS headers are present on 500 errors
    @app.exception_handler(Exception)
    async def global_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
        """Handle unhandled exceptions with proper JSON response."""
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # Redirect /docs to versioned docs URL
    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url=f"{settings.api_v1_prefix}/docs")

    # Root endpoint
    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "name": settings.project_name,
            "version": settings.version,
            "docs": f"{settings.api_v1_prefix}/docs",
            "health": f"{settings.api_v1_prefix}/health",
        }

    return app


app = create_app()

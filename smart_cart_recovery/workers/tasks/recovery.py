"""Celery tasks for cart recovery: the abandonment sweep and order reconciliation."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

from smart_cart_recovery.core.database import async_session_maker, engine
from smart_cart_recovery.core.hooks import HookEvent, HookRegistry
from smart_cart_recovery.plugin import RecoveryPlugin
from smart_cart_recovery.workers.celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a fresh event loop, disposing DB connections after.

    Each Celery prefork worker creates a new event loop per task. asyncpg connections
    are bound to the loop that created them; pooled connections from a previous
    (closed) loop raise RuntimeError("Event loop is closed") when reused.

    Disposing the engine after each task clears stale pooled connections so the next
    task gets fresh ones.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(engine.dispose())
        loop.close()


def _build_hooks() -> HookRegistry:
    """Hook registry with the recovery plugin subscribed, for one task run."""
    return RecoveryPlugin(async_session_maker).register(HookRegistry())


# ---------------------------------------------------------------------------
# Periodic sweep (Celery Beat)
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.recovery.check_abandoned_carts",
    base=BaseTask,
    bind=True,
)
def check_abandoned_carts(self: BaseTask) -> dict[str, Any]:  # noqa: ARG001
    """Email shoppers whose carts passed the abandonment threshold."""
    return _run_async(_check_abandoned_carts_async())


async def _check_abandoned_carts_async() -> dict[str, Any]:
    results = await _build_hooks().do_action(HookEvent.SWEEP)
    return results[0] if results else {"status": "skipped", "reason": "no handler"}


# ---------------------------------------------------------------------------
# Order webhooks: purge carts the shopper has since ordered
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.recovery.process_order_created",
    base=BaseTask,
    bind=True,
)
def process_order_created(
    self: BaseTask,  # noqa: ARG001
    payload: dict[str, Any],
) -> dict[str, Any]:
    """Reconcile tracked carts against a newly created order."""
    return _run_async(_process_order_async(HookEvent.ORDER_CREATED, payload))


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.recovery.process_order_updated",
    base=BaseTask,
    bind=True,
)
def process_order_updated(
    self: BaseTask,  # noqa: ARG001
    payload: dict[str, Any],
) -> dict[str, Any]:
    """Reconcile tracked carts against an order status change."""
    return _run_async(_process_order_async(HookEvent.ORDER_STATUS_CHANGED, payload))


async def _process_order_async(event: HookEvent, payload: dict[str, Any]) -> dict[str, Any]:
    order_id = payload.get("id")
    kwargs: dict[str, Any] = {"order": payload}
    if event is HookEvent.ORDER_STATUS_CHANGED:
        kwargs["status"] = payload.get("status")

    results = await _build_hooks().do_action(event, **kwargs)
    removed = sum(r for r in results if isinstance(r, int))
    logger.info(
        "Processed order webhook: order=%s event=%s removed=%d", order_id, event.value, removed
    )
    return {"status": "processed", "order_id": order_id, "removed": removed}

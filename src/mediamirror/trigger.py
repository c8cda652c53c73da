"""
Change-notification trigger.

A small aiohttp service the origin calls when the mirrored tree changes:
- GET /webhook?challenge=... - Verification handshake (echoes the challenge)
- POST /webhook - Change notification; starts a detached sync pass
- GET /health - Health check

The notification is acknowledged before the sync runs. A failing pass never
reaches the caller: it is logged and counted in
mediamirror_background_task_failures_total.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from aiohttp import web

from mediamirror.observability.metrics import MetricsRegistry, get_metrics_registry
from mediamirror.utils.logging import get_logger

logger = get_logger("mediamirror.trigger")

SyncFactory = Callable[[], Awaitable[Any]]

# Strong references to running detached tasks; the event loop only keeps weak ones
_background_tasks: set[asyncio.Task] = set()


def start_detached_sync(
    coro_factory: SyncFactory,
    *,
    name: str = "sync",
    metrics: Optional[MetricsRegistry] = None,
) -> asyncio.Task:
    """
    Start `coro_factory()` as a background task and return immediately.

    Must be called from a running event loop. The task is referenced until it
    finishes; its outcome goes to the log and the metrics registry only.
    """
    metrics = metrics or get_metrics_registry()

    async def _run() -> Any:
        try:
            result = await coro_factory()
        except asyncio.CancelledError:
            logger.info(f"Background task '{name}' cancelled")
            raise
        except Exception as e:
            logger.error(f"Background task '{name}' failed: {e}", exc_info=True)
            metrics.record_background_failure(name)
            return None
        logger.info(f"Background task '{name}' finished")
        return result

    task = asyncio.create_task(_run(), name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def pending_tasks() -> list[asyncio.Task]:
    """Detached tasks that have not finished yet."""
    return [task for task in _background_tasks if not task.done()]


async def cancel_pending_tasks() -> None:
    tasks = pending_tasks()
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


@web.middleware
async def request_id_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Tag every request and response with a request id."""
    request_id = f"req_{uuid.uuid4().hex[:12]}"
    request["request_id"] = request_id
    response = await handler(request)
    response.headers["X-Request-ID"] = request_id
    return response


class WebhookService:
    """Request handlers for the trigger endpoints."""

    def __init__(self, sync_factory: SyncFactory, *, task_name: str = "sync", metrics: Optional[MetricsRegistry] = None):
        self.sync_factory = sync_factory
        self.task_name = task_name
        self.metrics = metrics or get_metrics_registry()

    async def handle_challenge(self, request: web.Request) -> web.Response:
        """
        GET /webhook?challenge=...

        Echo the challenge as plain text so the origin accepts the endpoint.
        """
        challenge = request.query.get("challenge")
        if not challenge:
            return web.Response(status=400, text="missing challenge")
        return web.Response(
            text=challenge,
            content_type="text/plain",
            headers={"X-Content-Type-Options": "nosniff"},
        )

    async def handle_notification(self, request: web.Request) -> web.Response:
        """
        POST /webhook

        The body is not inspected: any notification means "something changed".
        """
        logger.info(f"Change notification received ({request['request_id']}), starting detached sync")
        start_detached_sync(self.sync_factory, name=self.task_name, metrics=self.metrics)
        return web.Response(status=200, text="OK")

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})


WEBHOOK_SERVICE_KEY = web.AppKey("webhook_service", WebhookService)


def create_webhook_app(
    sync_factory: SyncFactory,
    *,
    task_name: str = "sync",
    metrics: Optional[MetricsRegistry] = None,
) -> web.Application:
    """
    Build the trigger application.

    Args:
        sync_factory: Zero-argument callable returning the sync coroutine
        task_name: Label for logs and the background failure metric
        metrics: Metrics registry (defaults to the global one)
    """
    svc = WebhookService(sync_factory, task_name=task_name, metrics=metrics)

    app = web.Application(middlewares=[request_id_middleware])
    app[WEBHOOK_SERVICE_KEY] = svc
    app.add_routes(
        [
            web.get("/webhook", svc.handle_challenge),
            web.post("/webhook", svc.handle_notification),
            web.get("/health", svc.handle_health),
        ]
    )

    async def on_cleanup(app: web.Application) -> None:
        await cancel_pending_tasks()

    app.on_cleanup.append(on_cleanup)
    return app


def run_webhook_server(sync_factory: SyncFactory, *, host: str, port: int, task_name: str = "sync") -> None:
    """Run the trigger service (blocking)."""
    app = create_webhook_app(sync_factory, task_name=task_name)

    async def on_startup(app: web.Application) -> None:
        logger.info(f"Webhook trigger listening on http://{host}:{port}/webhook")

    app.on_startup.append(on_startup)
    web.run_app(app, host=host, port=port, access_log=None)

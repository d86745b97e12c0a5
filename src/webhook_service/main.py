"""aiohttp application entrypoint."""
from __future__ import annotations

from aiohttp import web

from webhook_service.db.pool import close_pool, init_pool
from webhook_service.logging_config import configure_logging
from webhook_service.settings import settings
from webhook_service.webhooks_dispatcher import start_webhook_dispatcher, stop_webhook_dispatcher


async def healthcheck(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "service": settings.app_name, "env": settings.env})


def create_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/health", healthcheck)

    app.on_startup.append(init_pool)
    app.on_startup.append(start_webhook_dispatcher)
    # reverse order: dispatcher drains in-flight attempts before the pool closes
    app.on_cleanup.append(stop_webhook_dispatcher)
    app.on_cleanup.append(close_pool)
    return app


def main() -> None:
    configure_logging(settings.log_level, service=settings.app_name)
    web.run_app(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

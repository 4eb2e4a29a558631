from __future__ import annotations

import logging

from aiohttp import web

from .services.stats import RuntimeStats

log = logging.getLogger("clobber.health")


def build_health_app(stats: RuntimeStats) -> web.Application:
    app = web.Application()

    async def health(_: web.Request) -> web.Response:
        return web.json_response({"ok": True, "service": "clobber", "stats": stats.snapshot()})

    app.router.add_get("/", health)
    app.router.add_get("/healthz", health)
    return app


async def start_health_server(stats: RuntimeStats, port: int) -> web.AppRunner:
    runner = web.AppRunner(build_health_app(stats))
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", port)
    await site.start()
    log.info("Health server listening on 0.0.0.0:%s", port)
    return runner

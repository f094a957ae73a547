"""
Same-origin passthrough proxy for the Treasury Fiscal Data endpoints.

Routes:
    GET /api/debt|mts|dts?<query>  -> <fiscal_base><path>?<query>
    OPTIONS /api/...               -> 200 preflight

Usage:
    python -m fiscal_clock.main proxy --port 8000
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp
import orjson
from aiohttp import web

from .config import FISCAL_DATA_BASE
from .datafeed.endpoints import TREASURY_PATHS

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

SESSION_KEY = web.AppKey("session", aiohttp.ClientSession)


def _json_response(payload: object, status: int = 200) -> web.Response:
    return web.Response(
        body=orjson.dumps(payload),
        status=status,
        content_type="application/json",
        headers=CORS_HEADERS,
    )


def create_app(fiscal_base: str = FISCAL_DATA_BASE, timeout: float = 15.0) -> web.Application:
    fiscal_base = fiscal_base.rstrip("/")

    async def proxy_handler(request: web.Request) -> web.Response:
        key = request.match_info["key"]
        path = TREASURY_PATHS.get(key)
        if path is None:
            return _json_response({"error": f"Unknown endpoint: {key}"}, status=404)
        if request.method == "OPTIONS":
            return web.Response(status=200, headers=CORS_HEADERS)
        if request.method != "GET":
            return web.Response(status=405, text="Method not allowed", headers=CORS_HEADERS)

        upstream = f"{fiscal_base}{path}"
        if request.query_string:
            upstream = f"{upstream}?{request.query_string}"

        session = request.app[SESSION_KEY]
        try:
            async with session.get(upstream, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
                raw = await resp.read()
                status = resp.status
            payload = orjson.loads(raw)
        except (aiohttp.ClientError, asyncio.TimeoutError, orjson.JSONDecodeError) as exc:
            logger.warning("Upstream %s failed: %s", upstream, exc)
            return _json_response(
                {"error": "Treasury API unavailable", "details": str(exc) or type(exc).__name__},
                status=502,
            )

        logger.debug("Proxied %s -> %d", upstream, status)
        return _json_response(payload, status=status)

    async def on_startup(app: web.Application) -> None:
        app[SESSION_KEY] = aiohttp.ClientSession()

    async def on_cleanup(app: web.Application) -> None:
        await app[SESSION_KEY].close()

    app = web.Application()
    app.router.add_route("*", "/api/{key}", proxy_handler)
    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app


def run_proxy(port: int = 8000, fiscal_base: str = FISCAL_DATA_BASE) -> None:
    """Run the proxy (blocking)."""
    logger.info("Proxy listening on http://localhost:%d/api/{%s}", port, ",".join(TREASURY_PATHS))
    web.run_app(create_app(fiscal_base), port=port, print=None)

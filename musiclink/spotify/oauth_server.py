import logging
from typing import Optional

from aiohttp import web

from .manager import TokenManager

logger = logging.getLogger(__name__)

MANAGER_KEY = web.AppKey("manager", TokenManager)


async def _callback(request: web.Request) -> web.Response:
    manager = request.app[MANAGER_KEY]

    params = request.rel_url.query
    error = params.get("error")
    if error:
        return web.Response(text=f"Authorization denied: {error}", status=400)

    code = params.get("code")
    if not code:
        return web.Response(text="Missing code", status=400)

    outcome = await manager.exchange_code(code)
    if not outcome.ok:
        return web.Response(text=f"OAuth error: {outcome}", status=502)

    return web.Response(text="✅ Spotify connected. You can close this window.")


def create_callback_app(manager: TokenManager) -> web.Application:
    app = web.Application()
    app[MANAGER_KEY] = manager
    app.router.add_get("/callback", _callback)
    return app


async def start_callback_server(
    manager: TokenManager,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> web.AppRunner:
    """Serve the redirect URI locally; the caller owns ``runner.cleanup()``."""
    host = host or manager.settings.callback_host
    port = int(port or manager.settings.callback_port)

    runner = web.AppRunner(create_callback_app(manager))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("OAuth callback server running on http://%s:%s/callback", host, port)
    return runner

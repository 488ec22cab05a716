"""
One-shot loopback server for the OAuth redirect.

When the registered redirect URI points at this machine, the CLI listens on
that host/port/path and captures the query of the first request, then shuts
the server down. The browser gets a short HTML page telling the user to go
back to the terminal.

Redirect URIs that are not loopback addresses cannot be served locally; the
caller falls back to asking the user to paste the redirected URL.
"""

import asyncio
from urllib.parse import urlparse

from aiohttp import web

from track_analyzer.core.exceptions import AuthenticationRequiredError, TransportError
from track_analyzer.core.logger import get_logger

logger = get_logger(__name__)


LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})
DEFAULT_CALLBACK_TIMEOUT = 300.0

SUCCESS_HTML = """
<html>
<head><title>Authorization Success</title></head>
<body style="font-family: Arial, sans-serif; text-align: center; margin-top: 50px;">
    <h1 style="color: #1DB954;">Authorization Successful!</h1>
    <p>You can now close this window and return to the terminal.</p>
</body>
</html>
"""

ERROR_HTML = """
<html>
<head><title>Authorization Error</title></head>
<body style="font-family: Arial, sans-serif; text-align: center; margin-top: 50px;">
    <h1 style="color: #E22134;">Authorization Failed</h1>
    <p>Error: {error}</p>
    <p>Return to the terminal and try again.</p>
</body>
</html>
"""


def is_loopback_redirect(redirect_uri: str) -> bool:
    """True when redirect_uri points at this machine over plain http."""
    parsed = urlparse(redirect_uri)
    return parsed.scheme == "http" and (parsed.hostname or "") in LOOPBACK_HOSTS


async def wait_for_callback(
    redirect_uri: str,
    timeout: float = DEFAULT_CALLBACK_TIMEOUT
) -> dict[str, str]:
    """
    Serve redirect_uri until the provider redirects back, then stop.

    Args:
        redirect_uri: Registered loopback redirect URI.
        timeout: Seconds to wait for the browser to come back.

    Returns:
        The callback query parameters (first value per key).

    Raises:
        AuthenticationRequiredError: No callback arrived within timeout.
        TransportError: The redirect port could not be bound.
    """
    parsed = urlparse(redirect_uri)
    host = parsed.hostname or "127.0.0.1"
    port = parsed.port or 80
    path = parsed.path or "/"

    loop = asyncio.get_running_loop()
    received: asyncio.Future[dict[str, str]] = loop.create_future()

    async def handle_callback(request: web.Request) -> web.Response:
        params = {key: request.query.getone(key) for key in request.query.keys()}
        if not received.done():
            received.set_result(params)

        if "error" in params:
            return web.Response(
                status=400,
                text=ERROR_HTML.format(error=params.get("error", "Unknown")),
                content_type="text/html",
            )
        return web.Response(text=SUCCESS_HTML, content_type="text/html")

    app = web.Application()
    app.router.add_get(path, handle_callback)
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()

    try:
        site = web.TCPSite(runner, host, port)
        try:
            await site.start()
        except OSError as e:
            raise TransportError(
                f"Cannot listen for the login callback on {host}:{port}: {e}",
                details={"redirect_uri": redirect_uri, "original_error": str(e)}
            ) from e

        logger.info(f"Waiting for authorization callback on {host}:{port}{path}")
        try:
            return await asyncio.wait_for(received, timeout)
        except asyncio.TimeoutError as e:
            raise AuthenticationRequiredError(
                "Timed out waiting for the authorization callback",
                details={"redirect_uri": redirect_uri, "timeout": timeout}
            ) from e
    finally:
        await runner.cleanup()

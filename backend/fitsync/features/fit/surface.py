"""
Authorization surfaces for the interactive consent step.

A surface shows the provider's consent page to the user and relays the
redirect result back as a message tagged with the origin it came from.
The authorization flow decides whether to trust that origin.

LoopbackSurface:
- Serves the redirect page on a loopback aiohttp listener
- Opens the consent URL in the system browser
- The redirect page moves the URL fragment (implicit grant) into a
  same-origin POST to /oauth/message
- A cancel button on the page posts to /oauth/cancel
"""

import asyncio
import logging
import webbrowser
from typing import Any, Awaitable, Callable, Optional, Protocol

from aiohttp import web

logger = logging.getLogger(__name__)


MessageHandler = Callable[[Optional[str], dict[str, Any]], None]
ClosedHandler = Callable[[], None]


class AuthorizationSurface(Protocol):
    """Anything that can host the consent page and relay its result."""

    @property
    def origin(self) -> str:
        """Origin trusted to deliver the redirect result."""
        ...

    @property
    def redirect_uri(self) -> str:
        ...

    async def start(self, on_message: MessageHandler, on_closed: ClosedHandler) -> None:
        """Begin accepting results. `origin` and `redirect_uri` are final afterwards."""
        ...

    async def launch(self, url: str) -> None:
        """Show the consent page. Results may arrive before this returns."""
        ...

    async def close(self) -> None:
        ...


CALLBACK_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>Fitness sync authorization</title></head>
<body>
<p id="status">Completing authorization...</p>
<button id="cancel" type="button">Cancel</button>
<script>
  function post(path, body) {
    return fetch(path, {
      method: "POST",
      headers: {"Content-Type": "application/json"},
      body: JSON.stringify(body || {})
    });
  }
  var params = {};
  var raw = (window.location.hash || "").replace(/^#/, "");
  if (!raw) { raw = (window.location.search || "").replace(/^\\?/, ""); }
  new URLSearchParams(raw).forEach(function (value, key) { params[key] = value; });
  history.replaceState(null, "", window.location.pathname);
  var finished = false;
  document.getElementById("cancel").onclick = function () {
    finished = true;
    post("/oauth/cancel").then(function () { window.close(); });
  };
  // Closing the tab counts as cancelling
  window.addEventListener("pagehide", function () {
    if (!finished) { navigator.sendBeacon("/oauth/cancel"); }
  });
  if (Object.keys(params).length) {
    finished = true;
    post("/oauth/message", params).then(function () {
      document.getElementById("status").textContent = "Done. You can close this window.";
      window.close();
    });
  }
</script>
</body>
</html>
"""


BrowserOpener = Callable[[str], Awaitable[None]]


async def open_system_browser(url: str) -> None:
    """Open url in the default browser without blocking the event loop."""
    loop = asyncio.get_running_loop()
    opened = await loop.run_in_executor(None, webbrowser.open, url)
    if not opened:
        logger.warning("No browser available; open the authorization URL manually")


class LoopbackSurface:
    """
    Consent surface backed by a loopback HTTP listener.

    Usage:
        surface = LoopbackSurface(port=8765)
        flow = AuthorizationFlow(surface=surface)
    """

    CALLBACK_PATH = "/oauth/callback"
    MESSAGE_PATH = "/oauth/message"
    CANCEL_PATH = "/oauth/cancel"

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8765,
        opener: BrowserOpener = open_system_browser,
    ):
        self.host = host
        self.port = port
        self._opener = opener
        self._runner: Optional[web.AppRunner] = None
        self._on_message: Optional[MessageHandler] = None
        self._on_closed: Optional[ClosedHandler] = None

    @property
    def origin(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def redirect_uri(self) -> str:
        return f"{self.origin}{self.CALLBACK_PATH}"

    @property
    def is_open(self) -> bool:
        return self._runner is not None

    def _build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(self.CALLBACK_PATH, self._handle_callback)
        app.router.add_post(self.MESSAGE_PATH, self._handle_message)
        app.router.add_post(self.CANCEL_PATH, self._handle_cancel)
        return app

    async def start(self, on_message: MessageHandler, on_closed: ClosedHandler) -> None:
        """Bind the listener. Handlers are live as soon as this returns."""
        if self._runner is not None:
            await self.close()

        self._on_message = on_message
        self._on_closed = on_closed

        runner = web.AppRunner(self._build_app())
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        self._runner = runner

        if self.port == 0:
            # Ephemeral port: report the real one so origin matches
            self.port = runner.addresses[0][1]

        logger.info(f"Authorization listener on {self.origin}")

    async def launch(self, url: str) -> None:
        """Open the consent URL in the browser."""
        if self._runner is None:
            raise RuntimeError("Authorization listener is not running")
        await self._opener(url)

    async def close(self) -> None:
        """Stop the listener. Safe to call more than once."""
        runner, self._runner = self._runner, None
        self._on_message = None
        self._on_closed = None
        if runner is not None:
            await runner.cleanup()
            logger.debug("Authorization listener stopped")

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _handle_callback(self, request: web.Request) -> web.Response:
        return web.Response(text=CALLBACK_PAGE, content_type="text/html")

    async def _handle_message(self, request: web.Request) -> web.Response:
        try:
            payload = await request.json()
        except ValueError:
            return web.Response(status=400)

        if not isinstance(payload, dict):
            return web.Response(status=400)

        if self._on_message is not None:
            self._on_message(request.headers.get("Origin"), payload)
        return web.Response(status=204)

    async def _handle_cancel(self, request: web.Request) -> web.Response:
        if request.headers.get("Origin") != self.origin:
            logger.debug("Ignoring cancel from foreign origin")
            return web.Response(status=204)

        if self._on_closed is not None:
            self._on_closed()
        return web.Response(status=204)

"""Local verification portal — a FastAPI page served by an in-process uvicorn.

The portal plays the browser-session role for a notifier test run:

* ``GET /`` renders the verification page, naming the notification reason,
  with a *confirm* button.
* ``POST /complete`` is hit by that button and raises the completion event.
* ``GET /health`` is a liveness check.

:class:`LocalPortalDriver` starts one server per session on a pre-bound
socket, so a busy port surfaces as :class:`PortalError` instead of
terminating the process.
"""

from __future__ import annotations

import asyncio
import socket
from datetime import timedelta
from urllib.parse import urljoin

import httpx
import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from fanout_notifier.config import WebPortalConfig
from fanout_notifier.models import NotificationReason
from fanout_notifier.notifications.errors import PortalError

logger = structlog.get_logger(__name__)

_STARTUP_POLL_SECONDS = 0.05

_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>Notification test</title></head>
<body>
  <h1>Notification test</h1>
  <p>Reason: <strong id="reason">__REASON__</strong></p>
  <p>If you reached this page from a notification, that channel works.</p>
  <p>Once every configured channel has delivered, confirm below.</p>
  <button id="confirm" type="button">All notifications received</button>
  <div id="complete" hidden>Notification test complete. You can close this page.</div>
  <script>
    document.getElementById("confirm").addEventListener("click", async () => {
      const resp = await fetch("complete", { method: "POST" });
      if (resp.ok) {
        document.getElementById("confirm").hidden = true;
        document.getElementById("complete").hidden = false;
      }
    });
  </script>
</body>
</html>
"""


def create_portal_app(
    completed: asyncio.Event,
    reason: NotificationReason = NotificationReason.TEST,
) -> FastAPI:
    """Build the portal app; ``POST /complete`` sets *completed*.

    The page names *reason*, the notification reason the operator is confirming.
    """
    page_html = _PAGE.replace("__REASON__", reason.value)
    app = FastAPI(title="Notifier test portal", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/", response_class=HTMLResponse)
    async def page() -> str:
        return page_html

    @app.post("/complete")
    async def complete() -> dict[str, bool]:
        if not completed.is_set():
            logger.info("portal.confirmed")
        completed.set()
        return {"complete": True}

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


class LocalPortalSession:
    """A running portal server and its completion signal."""

    def __init__(self, config: WebPortalConfig) -> None:
        self._config = config
        self.completed = asyncio.Event()
        self.app = create_portal_app(self.completed)
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None
        self._port: int | None = None

    @property
    def local_url(self) -> str:
        if self._port is None:
            raise PortalError("Portal server is not running")
        return f"http://localhost:{self._port}/"

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self._config.host, self._config.port))
        except OSError as exc:
            sock.close()
            raise PortalError(
                f"Cannot bind portal to {self._config.host}:{self._config.port}: {exc}"
            ) from exc
        self._port = sock.getsockname()[1]

        server = uvicorn.Server(uvicorn.Config(self.app, log_level="warning", log_config=None))
        self._server = server
        self._task = asyncio.create_task(server.serve(sockets=[sock]))
        while not server.started:
            if self._task.done():
                raise PortalError("Portal server stopped during startup")
            await asyncio.sleep(_STARTUP_POLL_SECONDS)
        logger.info("portal.started", url=self.local_url)

    async def close(self) -> None:
        if self._server is None or self._task is None:
            return
        self._server.should_exit = True
        await self._task
        self._server = None
        self._task = None
        logger.info("portal.stopped")

    # ── Session contract ──────────────────────────────────────

    async def navigate(self, url: str) -> None:
        """Load *url* (relative to the portal) and check that it renders."""
        page_url = urljoin(self.local_url, url)
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.get(page_url)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise PortalError(f"Verification page {page_url} failed to load: {exc}") from exc
        logger.debug("portal.page_loaded", url=page_url)

    async def open_portal(self) -> str:
        """Return the URL notifications should carry.

        With ``localtunnel`` set this is always the bound local URL, the one a
        tunnel can forward; otherwise ``base_url`` wins when configured.
        """
        if self._config.localtunnel:
            return self.local_url
        if self._config.base_url:
            return self._config.base_url
        return self.local_url

    async def wait_for_signal(self, timeout: timedelta) -> bool:
        try:
            await asyncio.wait_for(self.completed.wait(), timeout=timeout.total_seconds())
        except TimeoutError:
            return False
        return True


class LocalPortalDriver:
    """Opens :class:`LocalPortalSession` instances from the portal config."""

    def __init__(self, config: WebPortalConfig) -> None:
        self._config = config

    async def open_session(self) -> LocalPortalSession:
        session = LocalPortalSession(self._config)
        await session.start()
        return session

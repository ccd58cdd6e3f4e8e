"""Localtunnel wrapper — expose the portal through the ``lt`` client."""

from __future__ import annotations

import asyncio
import re
import shutil
from urllib.parse import urljoin, urlparse

import structlog

from fanout_notifier.notifications.errors import PortalError

logger = structlog.get_logger(__name__)

_URL_LINE = re.compile(r"your url is:\s*(?P<url>https?://\S+)", re.IGNORECASE)


def parse_tunnel_url(line: str) -> str | None:
    """Extract the public URL from one line of ``lt`` output."""
    match = _URL_LINE.search(line)
    return match.group("url") if match else None


class LocaltunnelTunnel:
    """Run ``lt --port <port>`` and map local URLs onto its public host.

    Integration::

        tunnel = LocaltunnelTunnel()
        public = await tunnel.expose("http://localhost:3000/")
        ...
        await tunnel.close()
    """

    def __init__(self, *, executable: str = "lt", startup_timeout: float = 30.0) -> None:
        self._executable = executable
        self._startup_timeout = startup_timeout
        self._proc: asyncio.subprocess.Process | None = None

    async def expose(self, local_url: str) -> str:
        parsed = urlparse(local_url)
        if parsed.port is None:
            raise PortalError(f"Cannot tunnel {local_url}: no explicit port")

        path = shutil.which(self._executable)
        if path is None:
            raise PortalError(f"Tunnel client {self._executable!r} not found on PATH")

        self._proc = await asyncio.create_subprocess_exec(
            path, "--port", str(parsed.port),
            stdout=asyncio.subprocess.PIPE,
        )
        try:
            public = await asyncio.wait_for(self._read_url(), timeout=self._startup_timeout)
        except (TimeoutError, PortalError) as exc:
            await self.close()
            raise PortalError("Tunnel client did not report a public URL") from exc

        exposed = urljoin(public.rstrip("/") + "/", parsed.path.lstrip("/"))
        logger.info("tunnel.exposed", local_url=local_url, public_url=exposed)
        return exposed

    async def _read_url(self) -> str:
        assert self._proc is not None and self._proc.stdout is not None
        while True:
            raw = await self._proc.stdout.readline()
            if not raw:
                raise PortalError("Tunnel client exited before reporting a URL")
            url = parse_tunnel_url(raw.decode("utf-8", errors="replace"))
            if url:
                return url

    async def close(self) -> None:
        if self._proc is None:
            return
        if self._proc.returncode is None:
            try:
                self._proc.terminate()
            except ProcessLookupError:
                pass  # exited on its own
            await self._proc.wait()
        self._proc = None
        logger.info("tunnel.closed")

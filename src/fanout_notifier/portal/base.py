"""Collaborator contracts for the notifier test run."""

from __future__ import annotations

from datetime import timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class PortalSession(Protocol):
    """One interactive page session, owned by a single test run."""

    async def navigate(self, url: str) -> None:
        """Load the verification page."""

    async def open_portal(self) -> str:
        """Return the URL recipients should open to confirm delivery."""

    async def wait_for_signal(self, timeout: timedelta) -> bool:
        """Return ``True`` once the page shows completion, ``False`` on timeout."""

    async def close(self) -> None:
        """Release the session.  Must be safe to call once on every path."""


@runtime_checkable
class BrowserDriver(Protocol):
    async def open_session(self) -> PortalSession: ...


@runtime_checkable
class Tunnel(Protocol):
    """Expose a locally bound URL on a public address."""

    async def expose(self, local_url: str) -> str: ...

    async def close(self) -> None: ...

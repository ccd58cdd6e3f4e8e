"""Notifier test run — prove every account's channels reach a human.

The run walks a fixed state machine::

    IDLE → BROWSER_OPENED → PAGE_NAVIGATED → PORTAL_OPENED → [TUNNEL_EXPOSED]
         → NOTIFICATIONS_SENT → AWAITING_SIGNAL → {COMPLETED | TIMED_OUT} → CLOSED

A ``TEST`` notification carrying the portal URL goes to every configured
account.  The operator follows it and confirms on the page; the run then
waits up to ``notification_timeout_hours`` for that confirmation.  A
timeout is only a warning.  The session is closed on every exit path.
"""

from __future__ import annotations

import asyncio
from enum import Enum

import structlog

from fanout_notifier.config import Settings, get_settings
from fanout_notifier.models import NotificationReason
from fanout_notifier.notifications.dispatcher import NotificationDispatcher
from fanout_notifier.notifications.errors import PortalError
from fanout_notifier.portal.base import BrowserDriver, PortalSession, Tunnel
from fanout_notifier.portal.server import LocalPortalDriver
from fanout_notifier.portal.tunnel import LocaltunnelTunnel

logger = structlog.get_logger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    BROWSER_OPENED = "browser_opened"
    PAGE_NAVIGATED = "page_navigated"
    PORTAL_OPENED = "portal_opened"
    TUNNEL_EXPOSED = "tunnel_exposed"
    NOTIFICATIONS_SENT = "notifications_sent"
    AWAITING_SIGNAL = "awaiting_signal"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CLOSED = "closed"


class NotifierTester:
    """Drive one interactive delivery test across all accounts.

    Integration::

        tester = NotifierTester(settings, LocalPortalDriver(settings.web_portal))
        outcome = await tester.run()   # RunState.COMPLETED or RunState.TIMED_OUT
    """

    def __init__(
        self,
        settings: Settings,
        driver: BrowserDriver,
        *,
        dispatcher: NotificationDispatcher | None = None,
        tunnel: Tunnel | None = None,
    ) -> None:
        self._settings = settings
        self._driver = driver
        self._dispatcher = dispatcher or NotificationDispatcher(settings)
        self._tunnel = tunnel
        self.states: list[RunState] = [RunState.IDLE]
        self.url: str | None = None

    @property
    def state(self) -> RunState:
        return self.states[-1]

    def _enter(self, state: RunState) -> None:
        self.states.append(state)
        logger.debug("verifier.state", state=state.value)

    async def run(self) -> RunState:
        """Run the test and return ``COMPLETED`` or ``TIMED_OUT``.

        Session, portal and tunnel failures propagate, as does the first
        failed delivery; the session is closed regardless.  A close failure is
        raised on a clean run and only logged when another error is in flight.
        """
        logger.info("verifier.started", accounts=len(self._settings.accounts))
        session = await self._driver.open_session()
        self._enter(RunState.BROWSER_OPENED)
        try:
            outcome = await self._drive(session)
        except BaseException:
            # keep the original error; a failing close is only logged here
            try:
                await session.close()
            except Exception:
                logger.exception("verifier.close_failed")
            self._enter(RunState.CLOSED)
            raise
        await session.close()
        self._enter(RunState.CLOSED)
        return outcome

    async def _drive(self, session: PortalSession) -> RunState:
        await session.navigate(self._settings.web_portal.test_page_url)
        self._enter(RunState.PAGE_NAVIGATED)

        url = await session.open_portal()
        self._enter(RunState.PORTAL_OPENED)

        if self._settings.web_portal.localtunnel:
            if self._tunnel is None:
                raise PortalError("localtunnel is enabled but no tunnel is available")
            url = await self._tunnel.expose(url)
            self._enter(RunState.TUNNEL_EXPOSED)
        self.url = url

        await asyncio.gather(*(
            self._dispatcher.send(url, account.id, NotificationReason.TEST)
            for account in self._settings.accounts
        ))
        self._enter(RunState.NOTIFICATIONS_SENT)
        logger.info("verifier.notifications_sent", url=url)

        self._enter(RunState.AWAITING_SIGNAL)
        timeout = self._settings.notification_timeout
        if await session.wait_for_signal(timeout):
            self._enter(RunState.COMPLETED)
            logger.info("verifier.completed")
        else:
            self._enter(RunState.TIMED_OUT)
            logger.warning(
                "verifier.timed_out",
                timeout_hours=self._settings.notification_timeout_hours,
                detail="Test notification timed out. Continuing...",
            )
        return self.states[-1]


async def run_notifier_test(
    settings: Settings | None = None,
    *,
    driver: BrowserDriver | None = None,
    tunnel: Tunnel | None = None,
) -> RunState:
    """Entry point: test every configured notifier with the local portal.

    The default collaborators are the local FastAPI portal and, when
    ``web_portal.localtunnel`` is set, the ``lt`` client.  A tunnel created
    here is closed here.
    """
    settings = settings or get_settings()
    driver = driver or LocalPortalDriver(settings.web_portal)
    owned_tunnel = None
    if tunnel is None and settings.web_portal.localtunnel:
        tunnel = owned_tunnel = LocaltunnelTunnel()

    try:
        return await NotifierTester(settings, driver, tunnel=tunnel).run()
    finally:
        if owned_tunnel is not None:
            await owned_tunnel.close()

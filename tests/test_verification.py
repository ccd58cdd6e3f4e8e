"""Tests for the interactive notifier test run."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from structlog.testing import capture_logs

from conftest import fake_channel
from fanout_notifier.models import NotificationReason
from fanout_notifier.notifications.dispatcher import NotificationDispatcher
from fanout_notifier.notifications.errors import DeliveryError, PortalError
from fanout_notifier.verification import NotifierTester, RunState, run_notifier_test

PORTAL_URL = "http://localhost:3000/"


class FakeSession:
    def __init__(
        self,
        *,
        signal_after: float | None = None,
        fail_on: str | None = None,
        fail_close: bool = False,
    ) -> None:
        self.signal_after = signal_after
        self.fail_on = fail_on
        self.fail_close = fail_close
        self.navigated: list[str] = []
        self.waited_for: timedelta | None = None
        self.close_calls = 0

    async def navigate(self, url: str) -> None:
        if self.fail_on == "navigate":
            raise PortalError("page did not load")
        self.navigated.append(url)

    async def open_portal(self) -> str:
        if self.fail_on == "portal":
            raise PortalError("portal unavailable")
        return PORTAL_URL

    async def wait_for_signal(self, timeout: timedelta) -> bool:
        self.waited_for = timeout
        completed = asyncio.Event()
        if self.signal_after is not None:
            asyncio.get_running_loop().call_later(self.signal_after, completed.set)
        try:
            await asyncio.wait_for(completed.wait(), timeout=timeout.total_seconds())
        except TimeoutError:
            return False
        return True

    async def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise RuntimeError("browser already gone")


class FakeDriver:
    def __init__(self, session: FakeSession | None = None, *, fail: bool = False) -> None:
        self.session = session or FakeSession()
        self.fail = fail

    async def open_session(self) -> FakeSession:
        if self.fail:
            raise PortalError("browser failed to launch")
        return self.session


class RecordingDispatcher(NotificationDispatcher):
    def __init__(self, settings, *, fail_for: str | None = None) -> None:
        super().__init__(settings)
        self.sent: list[tuple[str, str, NotificationReason]] = []
        self.fail_for = fail_for

    async def send(self, target, recipient_id, reason) -> None:
        self.sent.append((target, recipient_id, reason))
        if recipient_id == self.fail_for:
            raise DeliveryError("discord", "webhook gone")


class FakeTunnel:
    def __init__(self) -> None:
        self.exposed: list[str] = []

    async def expose(self, local_url: str) -> str:
        self.exposed.append(local_url)
        return "https://brave-fox.loca.lt/"

    async def close(self) -> None:
        pass


def with_timeout(settings, seconds: float):
    return settings.model_copy(update={"notification_timeout_hours": seconds / 3600})


class TestNotifierTester:
    @pytest.mark.asyncio
    async def test_sends_test_reason_once_per_account(self, settings):
        dispatcher = RecordingDispatcher(settings)
        driver = FakeDriver(FakeSession(signal_after=0.01))

        await NotifierTester(settings, driver, dispatcher=dispatcher).run()

        assert sorted(dispatcher.sent) == [
            (PORTAL_URL, "alice@example.com", NotificationReason.TEST),
            (PORTAL_URL, "bob@example.com", NotificationReason.TEST),
        ]
        assert driver.session.navigated == [settings.web_portal.test_page_url]

    @pytest.mark.asyncio
    async def test_signal_before_timeout_completes(self, settings):
        driver = FakeDriver(FakeSession(signal_after=0.05))
        tester = NotifierTester(settings, driver, dispatcher=RecordingDispatcher(settings))

        outcome = await tester.run()

        assert outcome is RunState.COMPLETED
        assert driver.session.waited_for == timedelta(hours=1)
        assert driver.session.close_calls == 1
        assert tester.states == [
            RunState.IDLE,
            RunState.BROWSER_OPENED,
            RunState.PAGE_NAVIGATED,
            RunState.PORTAL_OPENED,
            RunState.NOTIFICATIONS_SENT,
            RunState.AWAITING_SIGNAL,
            RunState.COMPLETED,
            RunState.CLOSED,
        ]

    @pytest.mark.asyncio
    async def test_timeout_is_not_fatal(self, settings):
        settings = with_timeout(settings, 0.01)
        driver = FakeDriver(FakeSession(signal_after=None))
        tester = NotifierTester(settings, driver, dispatcher=RecordingDispatcher(settings))

        outcome = await tester.run()

        assert outcome is RunState.TIMED_OUT
        assert tester.states[-2:] == [RunState.TIMED_OUT, RunState.CLOSED]
        assert driver.session.close_calls == 1

    @pytest.mark.asyncio
    async def test_localtunnel_wraps_portal_url(self, settings):
        settings = settings.model_copy(
            update={"web_portal": settings.web_portal.model_copy(update={"localtunnel": True})},
        )
        dispatcher = RecordingDispatcher(settings)
        tunnel = FakeTunnel()
        tester = NotifierTester(
            settings, FakeDriver(FakeSession(signal_after=0.01)), dispatcher=dispatcher, tunnel=tunnel,
        )

        await tester.run()

        assert tunnel.exposed == [PORTAL_URL]
        assert {sent[0] for sent in dispatcher.sent} == {"https://brave-fox.loca.lt/"}
        assert RunState.TUNNEL_EXPOSED in tester.states

    @pytest.mark.asyncio
    async def test_localtunnel_without_tunnel_fails_before_sending(self, settings):
        settings = settings.model_copy(
            update={"web_portal": settings.web_portal.model_copy(update={"localtunnel": True})},
        )
        dispatcher = RecordingDispatcher(settings)
        driver = FakeDriver()

        with pytest.raises(PortalError, match="no tunnel"):
            await NotifierTester(settings, driver, dispatcher=dispatcher).run()

        assert dispatcher.sent == []
        assert driver.session.close_calls == 1

    @pytest.mark.asyncio
    async def test_browser_launch_failure_sends_nothing(self, settings):
        dispatcher = RecordingDispatcher(settings)

        with pytest.raises(PortalError, match="launch"):
            await NotifierTester(settings, FakeDriver(fail=True), dispatcher=dispatcher).run()

        assert dispatcher.sent == []

    @pytest.mark.parametrize("step", ["navigate", "portal"])
    @pytest.mark.asyncio
    async def test_session_failure_closes_and_sends_nothing(self, settings, step):
        dispatcher = RecordingDispatcher(settings)
        driver = FakeDriver(FakeSession(fail_on=step))
        tester = NotifierTester(settings, driver, dispatcher=dispatcher)

        with pytest.raises(PortalError):
            await tester.run()

        assert dispatcher.sent == []
        assert driver.session.close_calls == 1
        assert tester.state is RunState.CLOSED

    @pytest.mark.asyncio
    async def test_delivery_failure_propagates_and_closes(self, settings):
        dispatcher = RecordingDispatcher(settings, fail_for="bob@example.com")
        driver = FakeDriver(FakeSession(signal_after=0.01))

        with pytest.raises(DeliveryError):
            await NotifierTester(settings, driver, dispatcher=dispatcher).run()

        assert len(dispatcher.sent) == 2  # alice's send was not blocked by bob's failure
        assert driver.session.close_calls == 1
        assert driver.session.waited_for is None

    @pytest.mark.asyncio
    async def test_close_failure_does_not_hide_session_error(self, settings):
        driver = FakeDriver(FakeSession(fail_on="navigate", fail_close=True))
        tester = NotifierTester(settings, driver, dispatcher=RecordingDispatcher(settings))

        with capture_logs() as logs, pytest.raises(PortalError, match="page did not load"):
            await tester.run()

        assert driver.session.close_calls == 1
        assert tester.state is RunState.CLOSED
        assert any(entry["event"] == "verifier.close_failed" for entry in logs)

    @pytest.mark.asyncio
    async def test_close_failure_on_clean_run_propagates(self, settings):
        driver = FakeDriver(FakeSession(signal_after=0.01, fail_close=True))
        tester = NotifierTester(settings, driver, dispatcher=RecordingDispatcher(settings))

        with pytest.raises(RuntimeError, match="browser already gone"):
            await tester.run()

        assert RunState.COMPLETED in tester.states


@pytest.mark.asyncio
async def test_run_notifier_test_uses_given_driver(settings, monkeypatch):
    factory_calls = []
    settings = settings.model_copy(update={"notifiers": [fake_channel("discord")], "accounts": []})
    monkeypatch.setattr(
        "fanout_notifier.notifications.dispatcher.build_handler",
        lambda config, **_: factory_calls.append(config),
    )
    driver = FakeDriver(FakeSession(signal_after=0.01))

    outcome = await run_notifier_test(settings, driver=driver)

    assert outcome is RunState.COMPLETED
    assert factory_calls == []  # no accounts, no dispatch
    assert driver.session.close_calls == 1

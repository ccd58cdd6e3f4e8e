"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from pydantic import BaseModel

from fanout_notifier.config import Settings, WebPortalConfig
from fanout_notifier.models import Account, DiscordConfig, NotificationReason
from fanout_notifier.notifications.base import ChannelHandler
from fanout_notifier.notifications.errors import DeliveryError
from fanout_notifier.notifications.factory import build_handler


# ── Fake channels ─────────────────────────────────────────────


def fake_channel(key: str) -> DiscordConfig:
    """A channel config the :class:`RecordingFactory` turns into a fake.

    Keys containing ``fail`` fail; keys containing ``slow`` sleep first.
    """
    return DiscordConfig(webhook_url=f"fake://{key}")


class CarrierPigeonConfig(BaseModel):
    """A channel kind nothing knows how to build."""
    type: str = "carrier_pigeon"


class RecordingHandler(ChannelHandler):
    def __init__(self, key: str, calls: list[tuple[str, str, str, NotificationReason]]) -> None:
        self.name = key
        self._calls = calls
        self.completed = False

    async def deliver(self, target: str, recipient_id: str, reason: NotificationReason) -> None:
        self._calls.append((self.name, target, recipient_id, reason))
        if "slow" in self.name:
            await asyncio.sleep(0.05)
        if "fail" in self.name:
            raise DeliveryError(self.name, "provider unavailable")
        self.completed = True


class RecordingFactory:
    """Handler factory that records every build and every delivery."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str, NotificationReason]] = []
        self.built: list[RecordingHandler] = []

    def __call__(self, config: Any) -> ChannelHandler:
        if isinstance(config, DiscordConfig) and config.webhook_url.startswith("fake://"):
            handler = RecordingHandler(config.webhook_url.removeprefix("fake://"), self.calls)
            self.built.append(handler)
            return handler
        return build_handler(config)


@pytest.fixture
def factory() -> RecordingFactory:
    return RecordingFactory()


# ── Settings ──────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    return Settings(
        accounts=[
            Account(id="alice@example.com"),
            Account(
                id="bob@example.com",
                notifiers=[fake_channel("bob-telegram")],
            ),
        ],
        notifiers=[fake_channel("discord"), fake_channel("email")],
        web_portal=WebPortalConfig(port=0),
        notification_timeout_hours=1.0,
    )


@pytest.fixture
def empty_settings() -> Settings:
    return Settings(accounts=[Account(id="nobody@example.com")], notifiers=[])

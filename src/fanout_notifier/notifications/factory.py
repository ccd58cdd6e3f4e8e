"""Channel factory — turn a tagged channel config into a handler."""

from __future__ import annotations

from typing import Any

import httpx

from fanout_notifier.models import (
    AppriseConfig,
    ChannelType,
    DiscordConfig,
    EmailConfig,
    LocalConfig,
    TelegramConfig,
)
from fanout_notifier.notifications.base import ChannelHandler
from fanout_notifier.notifications.channels import (
    AppriseHandler,
    DiscordHandler,
    EmailHandler,
    LocalHandler,
    TelegramHandler,
)
from fanout_notifier.notifications.errors import UnknownChannelError


def build_handler(
    config: Any,
    *,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ChannelHandler:
    """Instantiate the handler matching *config*'s channel kind.

    Adding a channel kind means extending both :class:`ChannelType` and the
    cases below.  Raises :class:`UnknownChannelError` for anything else.
    """
    match config:
        case DiscordConfig():
            return DiscordHandler(config, timeout=timeout, transport=transport)
        case EmailConfig():
            return EmailHandler(config, timeout=timeout)
        case LocalConfig():
            return LocalHandler(config)
        case TelegramConfig():
            return TelegramHandler(config, timeout=timeout, transport=transport)
        case AppriseConfig():
            return AppriseHandler(config, timeout=timeout, transport=transport)
        case _:
            raise UnknownChannelError(getattr(config, "type", type(config).__name__))


def available_channels() -> list[ChannelType]:
    """Return every channel kind :func:`build_handler` can construct."""
    return list(ChannelType)

"""Notification dispatcher — resolve an account's channels and fan out.

Flow for one :meth:`NotificationDispatcher.send` call:

1. :func:`resolve_channels` picks the account override or the global list.
2. Every handler is built before anything is sent; an unknown channel tag
   aborts the call with zero deliveries.
3. All deliveries run concurrently.  With the default ``first_failure``
   policy the first :class:`DeliveryError` propagates immediately while the
   sibling deliveries keep running unobserved.  ``collect_all`` waits for
   every delivery and raises a :class:`DeliveryFailures` group instead.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from functools import partial
from typing import Any

import structlog

from fanout_notifier.config import Settings, get_settings
from fanout_notifier.models import ChannelConfig, NotificationReason
from fanout_notifier.notifications.base import ChannelHandler
from fanout_notifier.notifications.errors import DeliveryFailures
from fanout_notifier.notifications.factory import build_handler

logger = structlog.get_logger(__name__)

HandlerFactory = Callable[[Any], ChannelHandler]


def resolve_channels(settings: Settings, recipient_id: str) -> list[ChannelConfig]:
    """Return the channel configs that apply to *recipient_id*.

    A known account with a non-empty ``notifiers`` list wins outright (it is
    never merged with the defaults); otherwise the global list is used.  An
    empty result is valid and means "nothing to do".
    """
    account = settings.find_account(recipient_id)
    if account is not None and account.notifiers:
        return list(account.notifiers)
    return list(settings.notifiers)


class NotificationDispatcher:
    """Fan a notification out to every channel configured for an account.

    Handlers are created fresh for each call and dropped afterwards.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        handler_factory: HandlerFactory | None = None,
    ) -> None:
        self._settings = settings
        self._factory = handler_factory or partial(
            build_handler, timeout=settings.http_timeout_seconds,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    async def send(self, target: str, recipient_id: str, reason: NotificationReason) -> None:
        """Deliver *reason* for *recipient_id*, pointing at *target*, on every channel."""
        configs = resolve_channels(self._settings, recipient_id)
        if not configs:
            logger.warning(
                "notification.no_channels",
                target=target,
                recipient=recipient_id,
                reason=reason.value,
                detail="No notifiers configured globally, or for the account. This log is all you'll get",
            )
            return

        handlers = [self._factory(config) for config in configs]
        deliveries = [h.deliver(target, recipient_id, reason) for h in handlers]

        if self._settings.delivery_policy == "collect_all":
            results = await asyncio.gather(*deliveries, return_exceptions=True)
            failures = [r for r in results if isinstance(r, Exception)]
            if failures:
                raise DeliveryFailures(
                    f"{len(failures)} of {len(handlers)} deliveries failed for {recipient_id}",
                    failures,
                )
            return

        await asyncio.gather(*deliveries)


async def send_notification(
    target: str,
    recipient_id: str,
    reason: NotificationReason,
    *,
    settings: Settings | None = None,
) -> None:
    """Module-level entry point used by the rest of the application."""
    dispatcher = NotificationDispatcher(settings or get_settings())
    await dispatcher.send(target, recipient_id, reason)

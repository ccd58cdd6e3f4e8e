"""Abstract channel handler shared by every delivery channel."""

from __future__ import annotations

from abc import ABC, abstractmethod

from fanout_notifier.models import NotificationReason


class ChannelHandler(ABC):
    """Contract for notification delivery channels.

    Subclasses implement :meth:`deliver`, which returns on success and
    raises :class:`~fanout_notifier.notifications.errors.DeliveryError` on
    failure.  Each handler logs its own delivery attempt.
    """

    name: str = "base"

    @abstractmethod
    async def deliver(self, target: str, recipient_id: str, reason: NotificationReason) -> None:
        """Deliver one notification pointing the recipient at *target*."""


def summary_line(target: str, recipient_id: str, reason: NotificationReason) -> str:
    """One plain-text line every channel can send as-is."""
    return f"Action needed ({reason.value}) for account {recipient_id}: {target}"

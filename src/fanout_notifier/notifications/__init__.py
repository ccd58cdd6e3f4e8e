"""Notification sub-package — multi-channel fan-out delivery."""

from fanout_notifier.notifications.base import ChannelHandler
from fanout_notifier.notifications.dispatcher import (
    NotificationDispatcher,
    resolve_channels,
    send_notification,
)
from fanout_notifier.notifications.errors import (
    DeliveryError,
    DeliveryFailures,
    NotifierError,
    PortalError,
    UnknownChannelError,
)
from fanout_notifier.notifications.factory import build_handler

__all__ = [
    "ChannelHandler",
    "DeliveryError",
    "DeliveryFailures",
    "NotificationDispatcher",
    "NotifierError",
    "PortalError",
    "UnknownChannelError",
    "build_handler",
    "resolve_channels",
    "send_notification",
]

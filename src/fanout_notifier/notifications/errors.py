"""Exceptions raised by the notification layer."""

from __future__ import annotations


class NotifierError(Exception):
    """Base class for every error raised by this package."""


class UnknownChannelError(NotifierError):
    """A channel config carries a tag no handler is registered for.

    This is a configuration/schema mismatch the operator has to fix; it is
    never treated as a skippable channel.
    """

    def __init__(self, tag: object) -> None:
        self.tag = tag
        super().__init__(f"Unexpected notifier config: {tag}")


class DeliveryError(NotifierError):
    """A single channel failed to deliver a notification.

    The transport error is chained as ``__cause__``.
    """

    def __init__(self, channel: str, message: str) -> None:
        self.channel = channel
        super().__init__(f"{channel}: {message}")


class DeliveryFailures(ExceptionGroup):
    """Every failed delivery of one dispatch (``collect_all`` policy)."""

    def derive(self, excs):
        return DeliveryFailures(self.message, excs)


class PortalError(NotifierError):
    """The verification portal, its session or its tunnel is unusable."""

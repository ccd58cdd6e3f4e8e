"""Verification portal — session contracts, local FastAPI portal, tunnel."""

from fanout_notifier.portal.base import BrowserDriver, PortalSession, Tunnel
from fanout_notifier.portal.server import LocalPortalDriver, LocalPortalSession, create_portal_app
from fanout_notifier.portal.tunnel import LocaltunnelTunnel

__all__ = [
    "BrowserDriver",
    "LocalPortalDriver",
    "LocalPortalSession",
    "LocaltunnelTunnel",
    "PortalSession",
    "Tunnel",
    "create_portal_app",
]

"""Concrete channel handlers — Discord, email, local, Telegram and Apprise.

Architecture
~~~~~~~~~~~~
* HTTP channels share :class:`_HttpChannel`, which opens a short-lived
  ``httpx.AsyncClient`` per delivery.  Tests inject a ``transport``.
* **EmailHandler** runs blocking ``smtplib`` in a worker thread.
* **LocalHandler** writes to the structured log and can raise a desktop
  popup through ``notify-send``.

Every handler logs ``notification.<channel>_sent`` on success and
``notification.<channel>_failed`` before raising :class:`DeliveryError`.
"""

from __future__ import annotations

import asyncio
import shutil
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any

import httpx
import structlog

from fanout_notifier.models import (
    AppriseConfig,
    DiscordConfig,
    EmailConfig,
    LocalConfig,
    NotificationReason,
    TelegramConfig,
)
from fanout_notifier.notifications.base import ChannelHandler, summary_line
from fanout_notifier.notifications.errors import DeliveryError

logger = structlog.get_logger(__name__)

_TITLE = "Fanout notifier"


# ── HTTP channels ─────────────────────────────────────────────


class _HttpChannel(ChannelHandler):
    def __init__(
        self,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    async def _post_json(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(url, json=payload)
            resp.raise_for_status()
            return resp

    def _fail(self, exc: Exception, **context: Any) -> DeliveryError:
        logger.error(f"notification.{self.name}_failed", error=str(exc), **context)
        return DeliveryError(self.name, str(exc))


class DiscordHandler(_HttpChannel):
    """POST a message to a Discord webhook, pinging configured users/roles."""

    name = "discord"

    def __init__(self, config: DiscordConfig, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._config = config

    def _payload(self, target: str, recipient_id: str, reason: NotificationReason) -> dict[str, Any]:
        mentions = [f"<@{u}>" for u in self._config.mentioned_users]
        mentions += [f"<@&{r}>" for r in self._config.mentioned_roles]
        content = summary_line(target, recipient_id, reason)
        if mentions:
            content = f"{' '.join(mentions)} {content}"
        return {
            "content": content,
            "allowed_mentions": {
                "users": self._config.mentioned_users,
                "roles": self._config.mentioned_roles,
            },
        }

    async def deliver(self, target: str, recipient_id: str, reason: NotificationReason) -> None:
        try:
            await self._post_json(self._config.webhook_url, self._payload(target, recipient_id, reason))
        except httpx.HTTPError as exc:
            raise self._fail(exc, recipient=recipient_id, reason=reason.value) from exc
        logger.info("notification.discord_sent", recipient=recipient_id, reason=reason.value)


class TelegramHandler(_HttpChannel):
    """Send a chat message through the Telegram Bot API."""

    name = "telegram"

    def __init__(self, config: TelegramConfig, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._config = config

    async def deliver(self, target: str, recipient_id: str, reason: NotificationReason) -> None:
        url = f"{self._config.api_url.rstrip('/')}/bot{self._config.token}/sendMessage"
        payload: dict[str, Any] = {
            "chat_id": self._config.chat_id,
            "text": summary_line(target, recipient_id, reason),
            "disable_web_page_preview": True,
        }
        if self._config.topic is not None:
            payload["message_thread_id"] = self._config.topic
        try:
            resp = await self._post_json(url, payload)
            body = resp.json()
            if not body.get("ok"):
                raise ValueError(f"Telegram API returned ok=false: {body.get('description')}")
        except (httpx.HTTPError, ValueError) as exc:
            raise self._fail(exc, recipient=recipient_id, reason=reason.value) from exc
        logger.info(
            "notification.telegram_sent",
            recipient=recipient_id,
            reason=reason.value,
            chat_id=self._config.chat_id,
        )


class AppriseHandler(_HttpChannel):
    """Hand the message to an Apprise API server's stateless ``/notify``."""

    name = "apprise"

    def __init__(self, config: AppriseConfig, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._config = config

    async def deliver(self, target: str, recipient_id: str, reason: NotificationReason) -> None:
        url = f"{self._config.api_url.rstrip('/')}/notify"
        payload = {
            "urls": self._config.urls,
            "title": f"{_TITLE}: {reason.value}",
            "body": summary_line(target, recipient_id, reason),
            "format": "text",
        }
        try:
            await self._post_json(url, payload)
        except httpx.HTTPError as exc:
            raise self._fail(exc, recipient=recipient_id, reason=reason.value, api_url=url) from exc
        logger.info("notification.apprise_sent", recipient=recipient_id, reason=reason.value)


# ── Email ─────────────────────────────────────────────────────


class EmailHandler(ChannelHandler):
    """Send a plain-text email via SMTP.

    ``smtplib`` blocks, so the whole exchange runs in a worker thread.
    """

    name = "email"

    def __init__(self, config: EmailConfig, *, timeout: float = 10.0) -> None:
        self._config = config
        self._timeout = timeout

    def _build_message(self, target: str, recipient_id: str, reason: NotificationReason) -> EmailMessage:
        cfg = self._config
        msg = EmailMessage()
        msg["Subject"] = f"{_TITLE}: {reason.value} ({recipient_id})"
        msg["From"] = formataddr((cfg.email_sender_name, cfg.email_sender_address))
        msg["To"] = cfg.email_recipient_address
        msg.set_content(summary_line(target, recipient_id, reason))
        return msg

    def _send_blocking(self, msg: EmailMessage) -> None:
        cfg = self._config
        smtp_cls = smtplib.SMTP_SSL if cfg.secure else smtplib.SMTP
        with smtp_cls(cfg.smtp_host, cfg.smtp_port, timeout=self._timeout) as server:
            if cfg.username:
                if not cfg.secure:
                    server.starttls()
                server.login(cfg.username, cfg.password)
            server.send_message(msg)

    async def deliver(self, target: str, recipient_id: str, reason: NotificationReason) -> None:
        msg = self._build_message(target, recipient_id, reason)
        try:
            await asyncio.to_thread(self._send_blocking, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(
                "notification.email_failed",
                host=self._config.smtp_host,
                recipient=recipient_id,
                error=str(exc),
            )
            raise DeliveryError(self.name, str(exc)) from exc
        logger.info(
            "notification.email_sent",
            to=self._config.email_recipient_address,
            recipient=recipient_id,
            reason=reason.value,
        )


# ── Local ─────────────────────────────────────────────────────


class LocalHandler(ChannelHandler):
    """Write the notification to the structured log (and the desktop)."""

    name = "local"

    def __init__(self, config: LocalConfig) -> None:
        self._config = config

    async def deliver(self, target: str, recipient_id: str, reason: NotificationReason) -> None:
        logger.info(
            "notification.local",
            target=target,
            recipient=recipient_id,
            reason=reason.value,
        )
        if not self._config.desktop:
            return

        notify_send = shutil.which("notify-send")
        if notify_send is None:
            logger.warning("notification.local_no_desktop", recipient=recipient_id)
            return
        try:
            proc = await asyncio.create_subprocess_exec(
                notify_send, _TITLE, summary_line(target, recipient_id, reason),
            )
            code = await proc.wait()
        except OSError as exc:
            logger.error("notification.local_failed", recipient=recipient_id, error=str(exc))
            raise DeliveryError(self.name, str(exc)) from exc
        if code != 0:
            logger.error("notification.local_failed", recipient=recipient_id, exit_code=code)
            raise DeliveryError(self.name, f"notify-send exited with {code}")

"""Shared Pydantic models used across the notifier."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

# ── Enums ─────────────────────────────────────────────────────


class ChannelType(str, Enum):
    """Supported notification channel kinds."""
    DISCORD = "discord"
    EMAIL = "email"
    LOCAL = "local"
    TELEGRAM = "telegram"
    APPRISE = "apprise"


class NotificationReason(str, Enum):
    """Why a notification is being sent.

    Handlers forward the value as-is; the dispatcher never interprets it.
    """

    PURCHASE = "PURCHASE"
    LOGIN = "LOGIN"
    CAPTCHA = "CAPTCHA"
    PRIVACY_POLICY_ACCEPTANCE = "PRIVACY_POLICY_ACCEPTANCE"
    TEST = "TEST"


# ── Channel configs ───────────────────────────────────────────


class DiscordConfig(BaseModel):
    """Post to a Discord channel webhook."""
    type: Literal["discord"] = "discord"
    webhook_url: str
    mentioned_users: list[str] = Field(default_factory=list)
    mentioned_roles: list[str] = Field(default_factory=list)


class EmailConfig(BaseModel):
    """Send a plain-text email over SMTP."""
    type: Literal["email"] = "email"
    smtp_host: str
    smtp_port: int = 587
    secure: bool = False  # implicit TLS; STARTTLS is used otherwise when credentials are set
    username: str = ""
    password: str = ""
    email_sender_address: str
    email_sender_name: str = "Fanout Notifier"
    email_recipient_address: str


class LocalConfig(BaseModel):
    """Log on the local machine, optionally raising a desktop popup."""
    type: Literal["local"] = "local"
    desktop: bool = False


class TelegramConfig(BaseModel):
    """Message a chat through a Telegram bot."""
    type: Literal["telegram"] = "telegram"
    token: str
    chat_id: str
    api_url: str = "https://api.telegram.org"
    topic: int | None = None


class AppriseConfig(BaseModel):
    """Forward to an Apprise API gateway, which fans out to its own URLs."""
    type: Literal["apprise"] = "apprise"
    api_url: str
    urls: str


ChannelConfig = Annotated[
    Union[DiscordConfig, EmailConfig, LocalConfig, TelegramConfig, AppriseConfig],
    Field(discriminator="type"),
]


# ── Accounts ──────────────────────────────────────────────────


class Account(BaseModel):
    """A notification recipient.

    ``id`` is opaque (usually the account email).  When ``notifiers`` is a
    non-empty list it replaces the global default list for this account.
    """
    id: str
    notifiers: list[ChannelConfig] | None = None

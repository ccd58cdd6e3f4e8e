"""Centralised notifier settings loaded from environment / .env / config.json."""

from __future__ import annotations

import os
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from fanout_notifier.models import Account, ChannelConfig

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

CONFIG_FILE_ENV = "FANOUT_CONFIG_FILE"

# camelCase top-level keys accepted in config.json, and the field each one fills
_CAMEL_CASE_KEYS = {
    "webPortalConfig": "web_portal",
    "notificationTimeoutHours": "notification_timeout_hours",
}


def config_file_path() -> Path:
    """Return the JSON config path, honouring ``FANOUT_CONFIG_FILE``."""
    return Path(os.getenv(CONFIG_FILE_ENV, str(_PROJECT_ROOT / "config.json")))


class WebPortalConfig(BaseModel):
    """Where the verification portal listens and how it is reached."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    host: str = "0.0.0.0"
    port: int = 3000
    base_url: str | None = None  # public URL of the portal, e.g. behind a reverse proxy
    localtunnel: bool = False
    test_page_url: str = "/"


class Settings(BaseSettings):
    """All runtime configuration for the notifier.

    Sources, highest priority first: init kwargs, ``FANOUT_*`` environment
    variables (nested keys joined with ``__``, lists as JSON), the *.env*
    file at the project root, then the JSON config file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FANOUT_",
        env_nested_delimiter="__",
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Recipients & channels ─────────────────────────────────
    accounts: list[Account] = Field(default_factory=list)
    notifiers: list[ChannelConfig] = Field(default_factory=list)

    # ── Delivery ──────────────────────────────────────────────
    delivery_policy: Literal["first_failure", "collect_all"] = "first_failure"
    http_timeout_seconds: float = 10.0

    # ── Test run ──────────────────────────────────────────────
    web_portal: WebPortalConfig = Field(default_factory=WebPortalConfig)
    notification_timeout_hours: float = 24.0

    # ── Logging ───────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool | None = None  # None: JSON unless stderr is a terminal

    @model_validator(mode="before")
    @classmethod
    def _accept_camel_case_keys(cls, data: Any) -> Any:
        """Fold ``webPortalConfig`` / ``notificationTimeoutHours`` into their fields.

        A snake_case value from a higher-priority source wins; nested portal
        keys from both spellings are merged.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for camel, field in _CAMEL_CASE_KEYS.items():
            if camel not in data:
                continue
            value = data.pop(camel)
            current = data.get(field)
            if current is None:
                data[field] = value
            elif isinstance(current, dict) and isinstance(value, dict):
                data[field] = {**value, **current}
        return data

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls, json_file=config_file_path()),
            file_secret_settings,
        )

    @property
    def notification_timeout(self) -> timedelta:
        return timedelta(hours=self.notification_timeout_hours)

    def find_account(self, account_id: str) -> Account | None:
        return next((a for a in self.accounts if a.id == account_id), None)


@lru_cache
def get_settings() -> Settings:
    """Return a cached :class:`Settings` singleton."""
    return Settings()

"""Application entrypoint — send one notification, test notifiers, check config."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

from pydantic import ValidationError

from fanout_notifier.config import CONFIG_FILE_ENV, Settings, get_settings
from fanout_notifier.logger import setup_logging
from fanout_notifier.models import NotificationReason
from fanout_notifier.notifications.dispatcher import NotificationDispatcher
from fanout_notifier.notifications.errors import NotifierError
from fanout_notifier.notifications.factory import build_handler
from fanout_notifier.verification import run_notifier_test


def check_config(settings: Settings) -> list[str]:
    """Build every configured handler and return one summary line per list."""
    lines = [
        "default: " + (", ".join(build_handler(c).name for c in settings.notifiers) or "(none)"),
    ]
    for account in settings.accounts:
        if account.notifiers:
            names = ", ".join(build_handler(c).name for c in account.notifiers)
        else:
            names = "(defaults)"
        lines.append(f"{account.id}: {names}")
    return lines


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="fanout-notifier",
        description="Fan notifications out to every channel configured for an account.",
    )
    parser.add_argument("--config", default=None, help=f"JSON config file (or ${CONFIG_FILE_ENV}).")
    sub = parser.add_subparsers(dest="command")

    # ── send ──────────────────────────────────────────────────
    send_parser = sub.add_parser("send", help="Send one notification.")
    send_parser.add_argument("--target", required=True, help="URL the recipient should open.")
    send_parser.add_argument("--recipient", required=True, help="Account id.")
    send_parser.add_argument(
        "--reason",
        choices=[r.value for r in NotificationReason],
        default=NotificationReason.TEST.value,
    )

    # ── test-notifiers ────────────────────────────────────────
    sub.add_parser("test-notifiers", help="Send a TEST notification to every account and wait for confirmation.")

    # ── check-config ──────────────────────────────────────────
    sub.add_parser("check-config", help="Validate config and build every handler.")

    args = parser.parse_args(argv)
    if args.config:
        os.environ[CONFIG_FILE_ENV] = args.config
        get_settings.cache_clear()

    try:
        settings = get_settings()
    except ValidationError as exc:
        print(f"Invalid configuration:\n{exc}", file=sys.stderr)
        sys.exit(1)
    setup_logging(settings.log_level, json_logs=settings.log_json)

    try:
        if args.command == "send":
            dispatcher = NotificationDispatcher(settings)
            asyncio.run(dispatcher.send(args.target, args.recipient, NotificationReason(args.reason)))
        elif args.command == "test-notifiers":
            outcome = asyncio.run(run_notifier_test(settings))
            print(f"Notifier test finished: {outcome.value}")
        elif args.command == "check-config":
            for line in check_config(settings):
                print(line)
        else:
            parser.print_help()
            sys.exit(1)
    except (NotifierError, ExceptionGroup) as exc:
        print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

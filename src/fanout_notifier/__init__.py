"""Fanout notifier — deliver account notifications to every configured channel."""

__version__ = "0.1.0"

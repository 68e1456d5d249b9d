"""Fraud alert notification: Notifier interface, webhook delivery, per-service subscriptions."""

from backend_trustscore.alerts.notifier import (
    Notifier,
    NullNotifier,
    WebhookNotifier,
    build_payload,
    get_notifier,
    sign_payload,
    subscribe,
)

__all__ = [
    "Notifier",
    "NullNotifier",
    "WebhookNotifier",
    "build_payload",
    "get_notifier",
    "sign_payload",
    "subscribe",
]

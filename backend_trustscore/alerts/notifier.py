"""
Fraud alert notification: one fire-and-forget call per newly stored fraud flag.

Notifier is the collaborator interface the aggregator calls. WebhookNotifier
POSTs a fraud_detected payload with an HMAC-SHA256 signature to the global
URLs and to the service's own subscriptions (registered via subscribe()).
Delivery failures are logged and never raised to the caller.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

import httpx

from backend_trustscore.config.settings import NotificationSettings
from backend_trustscore.core.exceptions import InvalidInputError, PersistenceError
from backend_trustscore.database.models import WebhookSubscription
from backend_trustscore.logging import get_logger
from backend_trustscore.utils.address_utils import normalize_address

if TYPE_CHECKING:
    from backend_trustscore.analysis_engine.findings import Finding
    from backend_trustscore.database.database import Database

logger = get_logger(__name__)

EVENT_FRAUD_DETECTED = "fraud_detected"
HEADER_EVENT = "X-TrustScore-Event"
HEADER_SIGNATURE = "X-TrustScore-Signature"


class Notifier(ABC):
    """Receives each newly created fraud flag's finding."""

    @abstractmethod
    def notify(self, subject_address: str, finding: Finding) -> None:
        ...

    def close(self) -> None:
        """Release resources (HTTP connections); default no-op."""


class NullNotifier(Notifier):
    """Drops every notification."""

    def notify(self, subject_address: str, finding: Finding) -> None:
        return None


def build_payload(subject_address: str, finding: Finding, now: float | None = None) -> dict[str, Any]:
    ts = time.time() if now is None else now
    return {
        "event": EVENT_FRAUD_DETECTED,
        "service": subject_address,
        "alert": {
            "type": finding.type.value,
            "severity": finding.severity,
            "details": finding.details,
            "timestamp": datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(),
        },
    }


def sign_payload(body: bytes, secret: str | None) -> str:
    """Hex HMAC-SHA256 of the exact request body; empty string when no secret is configured."""
    if not secret:
        return ""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class WebhookNotifier(Notifier):
    """
    POST fraud alerts to the global webhook URLs and to the subscriptions
    registered in the store for the flagged service.

    Each URL gets up to max_attempts tries with exponential backoff
    (backoff_base_sec * 2**attempt). The body is serialized once so the signature
    covers exactly the bytes sent. Subscription outcomes are written back
    (last_triggered_at on success, failure_count on exhaustion).
    """

    def __init__(
        self,
        settings: NotificationSettings,
        *,
        db: Database | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        settings.validate()
        self._settings = settings
        self._db = db
        self._client = client or httpx.Client(timeout=settings.timeout_sec)
        self._owns_client = client is None
        self._sleep = sleep

    def _subscriptions(self, subject_address: str) -> list[WebhookSubscription]:
        if self._db is None:
            return []
        try:
            return self._db.get_webhooks(subject_address)
        except PersistenceError as e:
            logger.error("webhook_lookup_failed", address=subject_address, error=str(e))
            return []

    def notify(self, subject_address: str, finding: Finding) -> None:
        subscriptions = self._subscriptions(subject_address)
        if not self._settings.webhook_urls and not subscriptions:
            return
        payload = build_payload(subject_address, finding)
        body = json.dumps(payload, default=str, separators=(",", ":")).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            HEADER_EVENT: EVENT_FRAUD_DETECTED,
        }
        signature = sign_payload(body, self._settings.webhook_secret)
        if signature:
            headers[HEADER_SIGNATURE] = signature
        for url in self._settings.webhook_urls:
            self._deliver(url, body, headers, subject_address, finding)
        for sub in subscriptions:
            delivered = self._deliver(sub.url, body, headers, subject_address, finding)
            self._record_outcome(sub, delivered)

    def _record_outcome(self, sub: WebhookSubscription, delivered: bool) -> None:
        try:
            if delivered:
                self._db.mark_webhook_triggered(sub.id)
            else:
                self._db.record_webhook_failure(sub.id, self._settings.deactivate_after_failures)
        except PersistenceError as e:
            logger.error("webhook_status_update_failed", webhook_id=sub.id, error=str(e))

    def _deliver(
        self,
        url: str,
        body: bytes,
        headers: dict[str, str],
        subject_address: str,
        finding: Finding,
    ) -> bool:
        attempts = self._settings.max_attempts
        for attempt in range(attempts):
            try:
                resp = self._client.post(url, content=body, headers=headers)
                resp.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(
                    "webhook_delivery_failed",
                    url=url,
                    address=subject_address,
                    flag_type=finding.type.value,
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    error=str(e),
                )
                if attempt + 1 < attempts:
                    self._sleep(self._settings.backoff_base_sec * (2 ** attempt))
                continue
            logger.info(
                "webhook_delivered",
                url=url,
                address=subject_address,
                flag_type=finding.type.value,
                attempt=attempt + 1,
            )
            return True
        logger.error("webhook_delivery_exhausted", url=url, address=subject_address, flag_type=finding.type.value)
        return False

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


def subscribe(db: Database, service_address: str, url: str) -> int:
    """Register url for one service's alerts. Raises InvalidInputError for a bad address or URL."""
    address = normalize_address(service_address)
    try:
        parsed = httpx.URL(url.strip())
    except (httpx.InvalidURL, TypeError, AttributeError) as e:
        raise InvalidInputError(f"invalid webhook url: {url!r}") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise InvalidInputError(f"webhook url must be an absolute http(s) URL: {url!r}")
    return db.register_webhook(address, url.strip())


def get_notifier(settings: NotificationSettings, db: Database | None = None) -> Notifier:
    """WebhookNotifier when URLs are configured or a store holds subscriptions, else NullNotifier."""
    if settings.webhook_urls or db is not None:
        return WebhookNotifier(settings, db=db)
    return NullNotifier()

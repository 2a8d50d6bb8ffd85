"""Operator notification routing (Telegram plus optional webhooks)."""

from __future__ import annotations

import json
import logging
import time
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"

EVENT_PREFIXES = {
    "error": "Conclave ERR",
    "crash": "Conclave ERR",
    "approval": "Conclave APPROVAL",
    "action": "Conclave ACT",
    "anomaly": "Conclave WARN",
}

# Telegram rejects messages longer than 4096 characters.
TELEGRAM_MAX_LENGTH = 4000


@dataclass
class AlertPayload:
    """Structured payload for operator notifications."""

    event: str
    message: str
    severity: str
    metadata: Optional[Dict[str, Any]] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def text(self) -> str:
        prefix = EVENT_PREFIXES.get(self.event, "Conclave")
        return f"{prefix} {self.message}"


class Notifier:
    """Routes notifications to Telegram and any configured webhooks.

    Delivery is fire-and-forget: failures are logged and reported through the
    return value, never raised.
    """

    def __init__(
        self,
        *,
        telegram_bot_token: Optional[str] = None,
        telegram_chat_id: Optional[str] = None,
        webhook_urls: Optional[Iterable[str]] = None,
        muted_events: Optional[Iterable[str]] = None,
        timeout: float = 10.0,
        telegram_api_base: str = TELEGRAM_API_BASE,
    ) -> None:
        self._telegram_bot_token = telegram_bot_token
        self._telegram_chat_id = telegram_chat_id
        self._webhook_urls = [value for value in (webhook_urls or []) if value]
        self._muted_events = set(muted_events or [])
        self._timeout = timeout
        self._telegram_api_base = telegram_api_base.rstrip("/")

    @classmethod
    def from_settings(cls, settings) -> "Notifier":
        return cls(
            telegram_bot_token=settings.telegram_bot_token,
            telegram_chat_id=settings.telegram_chat_id,
            webhook_urls=settings.alert_webhook_urls,
            muted_events=settings.muted_events,
        )

    def notify(
        self,
        *,
        event: str,
        message: str,
        severity: str = "info",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Send a notification to every configured output."""

        if event in self._muted_events:
            logger.debug("Notification event '%s' is muted; skipping", event)
            return False

        payload = AlertPayload(
            event=event, message=message, severity=severity, metadata=metadata
        )
        sent = False
        if self._telegram_bot_token and self._telegram_chat_id:
            sent = self._send_telegram(payload) or sent
        for webhook in self._webhook_urls:
            sent = self._post_webhook(payload, webhook) or sent

        if not sent:
            logger.warning(
                "Notification emitted without external routing: %s | %s",
                event,
                message,
            )
        return sent

    def _send_telegram(self, payload: AlertPayload) -> bool:
        url = f"{self._telegram_api_base}/bot{self._telegram_bot_token}/sendMessage"
        body = {"chat_id": self._telegram_chat_id, "text": payload.text[:TELEGRAM_MAX_LENGTH]}
        return self._post_json(url, body, payload.event, "telegram")

    def _post_webhook(self, payload: AlertPayload, webhook_url: str) -> bool:
        body = {
            "event": payload.event,
            "severity": payload.severity,
            "message": payload.message,
            "metadata": payload.metadata or {},
            "timestamp": payload.timestamp,
        }

        # Generic fields for Slack/Discord compatibility.
        body.setdefault("text", payload.text)
        body.setdefault("content", payload.text)
        body.setdefault("username", "Conclave Tick")
        return self._post_json(webhook_url, body, payload.event, "webhook")

    def _post_json(self, url: str, body: Dict[str, Any], event: str, channel: str) -> bool:
        request = urllib.request.Request(
            url,
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                status = int(getattr(response, "status", 200))
                logger.debug("%s response %s for event %s", channel, status, event)
                return 200 <= status < 300
        except Exception:  # network errors are logged for ops visibility
            logger.exception("Failed to deliver %s notification for event %s", channel, event)
            return False


__all__ = ["AlertPayload", "Notifier", "EVENT_PREFIXES"]

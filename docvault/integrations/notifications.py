"""
DocVault Notifications — Change-notification dispatch to collaborators.

notify(recipient, event, payload) → True on success, False on failure.
Called once per resolved collaborator after a version event. Callers log
failures and never escalate them.

Implementations:
- WebhookNotificationDispatcher: POSTs JSON to an HTTP endpoint (httpx)
  with retry and exponential backoff on transient failures
- LoggingNotificationDispatcher: records notifications in the log only
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger("docvault.integrations.notifications")

EVENT_VERSION_UPLOAD = "version_upload"
EVENT_VERSION_RESTORE = "version_restore"

# 408 / 429 / 5xx are transient
RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class Recipient:
    """Resolved contact identity of a collaborator."""
    user_id: str
    email: str
    name: Optional[str] = None


class NotificationDispatcher(ABC):
    """Notification dispatcher interface."""

    @abstractmethod
    async def notify(self, recipient: Recipient, event: str, payload: Dict[str, Any]) -> bool:
        ...

    async def close(self) -> None:
        return None


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Logs each notification and keeps it for inspection."""

    def __init__(self):
        self.sent: List[Tuple[Recipient, str, Dict[str, Any]]] = []

    async def notify(self, recipient: Recipient, event: str, payload: Dict[str, Any]) -> bool:
        logger.info(f"Notification {event} → {recipient.email} ({payload.get('document_id')})")
        self.sent.append((recipient, event, payload))
        return True


class WebhookNotificationDispatcher(NotificationDispatcher):
    """
    POST {recipient, event, payload} to a webhook URL.

    Usage:
        dispatcher = WebhookNotificationDispatcher("https://mailer.internal/notify")
        ok = await dispatcher.notify(recipient, "version_upload", {...})
        await dispatcher.close()
    """

    def __init__(
        self,
        webhook_url: str,
        timeout: int = 15,
        retries: int = 2,
        base_delay: float = 0.5,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._url = webhook_url
        self._timeout = timeout
        self._retries = retries
        self._base_delay = base_delay
        self._api_key = api_key
        self._client = client

    @classmethod
    def from_config(cls, config=None) -> "WebhookNotificationDispatcher":
        if config is None:
            from docvault.engine.config import get_config
            config = get_config()
        cfg = config.notifications
        if not cfg.webhook_url:
            raise ValueError("notifications.webhook_url is required for webhook dispatch")
        return cls(
            webhook_url=cfg.webhook_url,
            timeout=cfg.timeout,
            retries=cfg.retries,
            api_key=cfg.api_key,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                follow_redirects=True,
            )
            logger.info(f"Created httpx client for notifications ({self._url})")
        return self._client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def notify(self, recipient: Recipient, event: str, payload: Dict[str, Any]) -> bool:
        body = {
            "recipient": {"user_id": recipient.user_id, "email": recipient.email, "name": recipient.name},
            "event": event,
            "payload": payload,
        }
        client = self._get_client()

        for attempt in range(self._retries + 1):
            try:
                response = await client.post(self._url, json=body, headers=self._headers())
            except httpx.HTTPError as e:
                if attempt < self._retries:
                    delay = self._calc_delay(attempt)
                    logger.warning(
                        f"Notification to {recipient.email} error: {e}, retrying in {delay}s "
                        f"(attempt {attempt + 1}/{self._retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.warning(f"Notification to {recipient.email} failed: {e}")
                return False

            if 200 <= response.status_code < 300:
                return True

            if response.status_code in RETRYABLE_STATUS and attempt < self._retries:
                delay = self._calc_delay(attempt)
                logger.info(
                    f"Notification to {recipient.email} got {response.status_code}, "
                    f"retrying in {delay}s (attempt {attempt + 1}/{self._retries})"
                )
                await asyncio.sleep(delay)
                continue

            logger.warning(f"Notification to {recipient.email} failed with HTTP {response.status_code}")
            return False

        return False

    def _calc_delay(self, attempt: int) -> float:
        return self._base_delay * (2 ** attempt)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Closed notification httpx client")


def create_dispatcher(config=None) -> NotificationDispatcher:
    """Webhook dispatcher when notifications are enabled, logging otherwise."""
    if config is None:
        from docvault.engine.config import get_config
        config = get_config()
    if config.notifications.enabled and config.notifications.webhook_url:
        return WebhookNotificationDispatcher.from_config(config)
    return LoggingNotificationDispatcher()

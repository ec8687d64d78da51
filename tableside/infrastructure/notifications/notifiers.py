import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, event: str, payload: dict) -> None:
        ...


class LoggingNotifier:
    """Default notifier when no delivery endpoint is configured."""

    def notify(self, event: str, payload: dict) -> None:
        logger.info("notification event=%s payload=%s", event, payload)


class WebhookNotifier:
    """Posts each event to a notification service (email, SMS, ...)."""

    def __init__(self, url: str, timeout_seconds: float = 5.0):
        self.url = url
        self.timeout_seconds = timeout_seconds

    def notify(self, event: str, payload: dict) -> None:
        with httpx.Client(timeout=self.timeout_seconds) as client:
            response = client.post(self.url, json={"event": event, "payload": payload})
            response.raise_for_status()

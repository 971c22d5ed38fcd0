from typing import Dict, Any, Iterable, Optional, Protocol
from datetime import datetime, timezone
from enum import Enum
import asyncio

import httpx
import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)


class NotificationType(str, Enum):
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    ERROR = "error"


class NotificationEvent(BaseModel):
    """Payload delivered to notification sinks"""
    event_type: str
    role: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier(Protocol):
    async def notify(self, event_type: str, role: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        ...


class LogNotifier:
    """Writes notifications to the structured log"""

    async def notify(self, event_type: str, role: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        logger.info("notification", event_type=event_type, role=role, message=message, details=details or {})


class WebhookNotifier:
    """POSTs notifications as JSON to a webhook, retrying with linear backoff"""

    def __init__(
        self,
        url: str,
        notify_on: Optional[Iterable[str]] = None,
        timeout: float = 5.0,
        retry_count: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.notify_on = set(notify_on) if notify_on is not None else None
        self.retry_count = max(retry_count, 1)
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def notify(self, event_type: str, role: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        if self.notify_on is not None and event_type not in self.notify_on:
            return

        event = NotificationEvent(event_type=event_type, role=role, message=message, details=details or {})
        payload = event.model_dump(mode="json")

        last_error: Optional[Exception] = None
        for attempt in range(self.retry_count):
            try:
                response = await self._client.post(self.url, json=payload)
                response.raise_for_status()
                return
            except httpx.HTTPError as e:
                last_error = e
                logger.warning("Webhook delivery failed", url=self.url, attempt=attempt + 1, error=str(e))
                if attempt < self.retry_count - 1:
                    await asyncio.sleep(attempt + 1)

        raise last_error

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


async def notify_safely(
    notifier: Optional[Notifier],
    event_type: str,
    role: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Deliver a notification; delivery failures are logged, never raised"""

    if notifier is None:
        return
    try:
        await notifier.notify(event_type, role, message, details or {})
    except Exception as e:
        logger.error("Notification failed", event_type=event_type, role=role, error=str(e))

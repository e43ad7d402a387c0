"""
Approval notifications to a human-facing channel.

Forwards newly created approval requests to a webhook (e.g. a messaging bot
bridge) as {"text": ..., "request": {...}}. Delivery is best effort: a failed
notification is logged, the request itself is already durable.
"""

import asyncio
import logging
from typing import Optional

import httpx

from .approvals import ApprovalRequest
from .channel_commands import format_approval_notification

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """Posts approval requests to a webhook URL."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport
        self._tasks: set = set()

    async def send(self, request: ApprovalRequest):
        payload = {
            "text": format_approval_notification(request),
            "request": request.to_dict(),
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
            logger.debug(f"Notified {self.url} of request {request.id}")
        except httpx.HTTPError as e:
            logger.error(f"Failed to send approval notification for {request.id}: {e}")

    def on_approval_event(self, request: ApprovalRequest, event_type: str):
        """ApprovalStore callback; schedules delivery for new requests."""
        if event_type != "requested":
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No event loop, skipping notification for {request.id}")
            return
        task = loop.create_task(self.send(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


def build_notifier(url: Optional[str]) -> Optional[WebhookNotifier]:
    return WebhookNotifier(url) if url else None

"""NotificationQueue — at-least-once channel between decisions and webhook sends.

Backed by a Redis list: producers LPUSH JSON messages, the worker BRPOPs them.
"""

import json
import logging

import redis.asyncio as aioredis

from app.config import Settings

logger = logging.getLogger("verification.notifications")


class NotificationQueue:
    def __init__(self, client: aioredis.Redis, queue_name: str):
        self.client = client
        self.queue_name = queue_name

    async def send(self, message: dict) -> None:
        await self.client.lpush(self.queue_name, json.dumps(message))

    async def receive(self, timeout: int = 5) -> dict | None:
        item = await self.client.brpop([self.queue_name], timeout=timeout)
        if item is None:
            return None
        _, raw = item
        return json.loads(raw)

    async def close(self) -> None:
        await self.client.aclose()


def build_notification_queue(settings: Settings) -> NotificationQueue | None:
    """Returns None when no Redis URL is configured; callers skip enqueueing."""
    if not settings.redis_url:
        return None
    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    return NotificationQueue(client, settings.notification_queue_name)

"""WebhookDispatcher — fire-and-forget webhook delivery after a committed write.

Each delivery runs as its own task with its own DB session, so a slow or
failing receiver for one case never stalls another, and never reaches the
caller that changed the case status.
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.verification_case import VerificationCase
from app.webhooks.payloads import WebhookEvent
from app.webhooks.service import WebhookService

logger = logging.getLogger("verification.webhooks")


class WebhookDispatcher:
    def __init__(
        self,
        webhook_service: WebhookService,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.webhook_service = webhook_service
        self.session_factory = session_factory
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, case_id: str, event: WebhookEvent) -> asyncio.Task:
        task = asyncio.create_task(self._deliver(case_id, event), name=f"webhook:{case_id}:{event.value}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, case_id: str, event: WebhookEvent) -> None:
        try:
            async with self.session_factory() as db:
                case = await db.get(VerificationCase, case_id)
                if case is None:
                    logger.warning("Case %s vanished before %s could be sent", case_id, event.value)
                    return
                await self.webhook_service.send_webhook(db, case, event)
        except Exception:
            logger.exception("Webhook dispatch failed for case %s (event=%s)", case_id, event.value)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for in-flight deliveries, e.g. on shutdown."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

"""Notification worker — turns queued case decisions into webhook deliveries.

Up to max_concurrency messages are handled at once, each in its own task with
its own session, so one slow client endpoint does not hold up the rest of the
queue. Stopping the worker waits for in-flight deliveries.

The worker also purges expired idempotency records every
purge_interval_seconds.

Run with: python -m app.notifications.worker
"""

import asyncio
import logging
import time

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings
from app.idempotency.guard import IdempotencyGuard
from app.models.verification_case import VerificationCase
from app.notifications.queue import NotificationQueue, build_notification_queue
from app.webhooks.payloads import WebhookEvent
from app.webhooks.service import WebhookService

logger = logging.getLogger("verification.notifications")

MESSAGE_EVENTS = {
    "CASE_BULK_APPROVED": WebhookEvent.APPROVED,
    "CASE_BULK_REJECTED": WebhookEvent.REJECTED,
}

MAX_REDELIVERIES = 3


class NotificationWorker:
    def __init__(
        self,
        queue: NotificationQueue,
        webhook_service: WebhookService,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_concurrency: int = 10,
        idempotency_guard: IdempotencyGuard | None = None,
        purge_interval_seconds: float = 3600.0,
    ):
        self.queue = queue
        self.webhook_service = webhook_service
        self.session_factory = session_factory
        self.idempotency_guard = idempotency_guard
        self.purge_interval_seconds = purge_interval_seconds
        self._slots = asyncio.Semaphore(max_concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._last_purge: float | None = None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def handle(self, message: dict) -> None:
        event = MESSAGE_EVENTS.get(message.get("type"))
        if event is None:
            logger.warning("Ignoring notification of unknown type %r", message.get("type"))
            return

        case_id = message.get("caseId")
        async with self.session_factory() as db:
            case = await db.get(VerificationCase, case_id)
            if case is None:
                logger.warning("Notification for unknown case %s dropped", case_id)
                return
            await self.webhook_service.send_webhook(db, case, event)

    async def process_one(self, message: dict) -> None:
        """Handle a message; put it back on the queue if handling raised."""
        try:
            await self.handle(message)
        except Exception:
            redeliveries = message.get("redeliveries", 0)
            if redeliveries >= MAX_REDELIVERIES:
                logger.exception(
                    "Giving up on notification for case %s after %d redeliveries",
                    message.get("caseId"), redeliveries,
                )
                return
            logger.exception("Notification for case %s failed, requeueing", message.get("caseId"))
            await self.queue.send({**message, "redeliveries": redeliveries + 1})

    async def run(self, stop: asyncio.Event | None = None) -> None:
        stop = stop or asyncio.Event()
        logger.info("Notification worker listening on %s", self.queue.queue_name)
        try:
            while not stop.is_set():
                await self.purge_if_due()
                message = await self._next_message()
                if message is not None:
                    self._spawn(message)
        finally:
            await self.drain()

    async def drain(self) -> None:
        """Wait for in-flight messages, e.g. on shutdown."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def purge_if_due(self) -> int:
        """Delete expired idempotency records if the purge interval has passed."""
        if self.idempotency_guard is None:
            return 0
        now = time.monotonic()
        if self._last_purge is not None and now - self._last_purge < self.purge_interval_seconds:
            return 0
        self._last_purge = now

        try:
            async with self.session_factory() as db:
                removed = await self.idempotency_guard.purge_expired(db)
                await db.commit()
        except Exception:
            logger.exception("Purging expired idempotency records failed")
            return 0
        if removed:
            logger.info("Purged %d expired idempotency records", removed)
        return removed

    async def _next_message(self) -> dict | None:
        # A slot stays held only when a message arrived
        await self._slots.acquire()
        try:
            message = await self.queue.receive()
        except BaseException:
            self._slots.release()
            raise
        if message is None:
            self._slots.release()
        return message

    def _spawn(self, message: dict) -> asyncio.Task:
        task = asyncio.create_task(self._process_in_slot(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _process_in_slot(self, message: dict) -> None:
        try:
            await self.process_one(message)
        except Exception:
            logger.exception("Could not requeue notification for case %s", message.get("caseId"))
        finally:
            self._slots.release()


async def main(settings: Settings) -> None:
    from app.database import async_session_factory

    queue = build_notification_queue(settings)
    if queue is None:
        raise SystemExit("REDIS_URL is not configured; nothing to consume")
    worker = NotificationWorker(
        queue,
        WebhookService(settings),
        async_session_factory,
        max_concurrency=settings.notification_worker_concurrency,
        idempotency_guard=IdempotencyGuard(settings),
        purge_interval_seconds=settings.idempotency_purge_interval_seconds,
    )
    try:
        await worker.run()
    finally:
        await queue.close()


if __name__ == "__main__":
    from app.config import settings

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )
    asyncio.run(main(settings))

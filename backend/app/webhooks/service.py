"""WebhookService — signs and delivers case events to the client's endpoint.

Delivery policy:
- 2xx: delivered, stop.
- 4xx: the receiver rejected the payload, stop without retrying.
- 5xx, timeouts and network errors: retry on the configured delay schedule
  until max attempts, then abandon and record the failure.

Every attempt is written to webhook_delivery_attempts and committed before
the next one starts, so the trail survives a crash mid-chain.
"""

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.audit.service import AuditService
from app.config import Settings
from app.models.base import utcnow
from app.models.verification_case import VerificationCase
from app.models.webhook import ClientWebhookConfig, WebhookDeliveryAttempt
from app.webhooks.payloads import WebhookEvent, build_payload
from app.webhooks.signing import signature_header

logger = logging.getLogger("verification.webhooks")


@dataclass
class WebhookDeliveryResult:
    webhook_id: str
    delivered: bool
    attempts: int
    status_code: int | None = None
    error: str | None = None


class WebhookService:
    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.max_attempts = settings.webhook_max_attempts
        self.retry_delays = list(settings.webhook_retry_delays)
        self.timeout = settings.webhook_timeout_seconds
        self.body_limit = settings.webhook_response_body_limit
        self.retention = timedelta(days=settings.webhook_attempt_retention_days)
        self.user_agent = settings.webhook_user_agent
        self.transport = transport

    async def get_config(self, db: AsyncSession, client_id: str) -> ClientWebhookConfig | None:
        result = await db.execute(
            select(ClientWebhookConfig).where(ClientWebhookConfig.client_id == client_id)
        )
        return result.scalar_one_or_none()

    async def send_webhook(
        self,
        db: AsyncSession,
        case: VerificationCase,
        event: WebhookEvent | str,
    ) -> WebhookDeliveryResult | None:
        """Deliver one event for one case. Returns None when nothing was sent."""
        event = WebhookEvent(event)
        config = await self.get_config(db, case.client_id)
        url = case.webhook_url or (config.webhook_url if config else None)

        if config is None or not config.webhook_enabled:
            logger.info("Webhooks disabled for client %s, skipping %s", case.client_id, event.value)
            return None
        if not url:
            logger.info("No webhook URL for client %s, skipping %s", case.client_id, event.value)
            return None
        if event.value not in (config.webhook_events or []):
            logger.info("Client %s not subscribed to %s, skipping", case.client_id, event.value)
            return None
        if not config.webhook_secret:
            logger.warning("No webhook secret for client %s, skipping %s", case.client_id, event.value)
            return None

        webhook_id = f"whk_{uuid.uuid4().hex}"
        payload = build_payload(case, event, utcnow())
        body = json.dumps(payload, separators=(",", ":"))

        result = WebhookDeliveryResult(webhook_id=webhook_id, delivered=False, attempts=0)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(1, self.max_attempts + 1):
                result.attempts = attempt
                # Fresh timestamp and signature on every attempt
                headers = self._headers(body, event, webhook_id, config.webhook_secret)
                status_code, response_body, error = await self._post(client, url, body, headers)
                result.status_code, result.error = status_code, error

                if status_code is not None and 200 <= status_code < 300:
                    await self._record_attempt(
                        db, case, event, webhook_id, attempt, url,
                        status_code=status_code, response_body=response_body, delivered=True,
                    )
                    await AuditService.log_event(
                        db,
                        event_type="WEBHOOK_DELIVERED",
                        entity_type="verification_case",
                        entity_id=case.id,
                        action="deliver",
                        event_data={
                            "webhookId": webhook_id,
                            "event": event.value,
                            "statusCode": status_code,
                            "attempts": attempt,
                        },
                    )
                    await db.commit()
                    result.delivered = True
                    logger.info(
                        "Webhook %s delivered for case %s (event=%s, attempt=%d)",
                        webhook_id, case.id, event.value, attempt,
                    )
                    return result

                permanent = status_code is not None and 400 <= status_code < 500
                retrying = not permanent and attempt < self.max_attempts
                delay = self._delay_for(attempt) if retrying else None

                await self._record_attempt(
                    db, case, event, webhook_id, attempt, url,
                    status_code=status_code,
                    response_body=response_body,
                    error=error or f"HTTP {status_code}",
                    next_retry_in=delay,
                )
                await db.commit()

                if not retrying:
                    break

                logger.warning(
                    "Webhook %s attempt %d/%d failed (%s), retrying in %.1fs",
                    webhook_id, attempt, self.max_attempts, error or f"HTTP {status_code}", delay,
                )
                await asyncio.sleep(delay)

        logger.error(
            "Webhook %s abandoned for case %s after %d attempt(s) (event=%s, last=%s)",
            webhook_id, case.id, result.attempts, event.value,
            result.error or f"HTTP {result.status_code}",
        )
        await AuditService.log_event(
            db,
            event_type="WEBHOOK_FAILED",
            entity_type="verification_case",
            entity_id=case.id,
            action="deliver",
            event_data={
                "webhookId": webhook_id,
                "event": event.value,
                "statusCode": result.status_code,
                "error": result.error,
                "attempts": result.attempts,
            },
        )
        await db.commit()
        return result

    def _headers(
        self,
        body: str,
        event: WebhookEvent,
        webhook_id: str,
        secret: str,
    ) -> dict[str, str]:
        timestamp = int(time.time())
        return {
            "Content-Type": "application/json",
            "X-Webhook-Signature": signature_header(body, timestamp, secret),
            "X-Webhook-Event": event.value,
            "X-Webhook-Id": webhook_id,
            "X-Webhook-Timestamp": str(timestamp),
            "User-Agent": self.user_agent,
        }

    async def _post(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: str,
        headers: dict[str, str],
    ) -> tuple[int | None, str | None, str | None]:
        """Returns (status_code, truncated body, error)."""
        try:
            response = await client.post(url, content=body.encode("utf-8"), headers=headers)
        except httpx.TimeoutException:
            return None, None, "Request timed out"
        except httpx.HTTPError as e:
            return None, None, str(e) or type(e).__name__
        return response.status_code, response.text[: self.body_limit], None

    def _delay_for(self, attempt: int) -> float:
        if not self.retry_delays:
            return 0.0
        return self.retry_delays[min(attempt - 1, len(self.retry_delays) - 1)]

    async def _record_attempt(
        self,
        db: AsyncSession,
        case: VerificationCase,
        event: WebhookEvent,
        webhook_id: str,
        attempt: int,
        url: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        error: str | None = None,
        delivered: bool = False,
        next_retry_in: float | None = None,
    ) -> WebhookDeliveryAttempt:
        now = utcnow()
        record = WebhookDeliveryAttempt(
            webhook_id=webhook_id,
            attempt_number=attempt,
            case_id=case.id,
            client_id=case.client_id,
            event_type=event.value,
            url=url,
            status_code=status_code,
            response_body=response_body,
            error=None if delivered else error,
            delivered_at=now if delivered else None,
            failed_at=None if delivered else now,
            next_retry_at=now + timedelta(seconds=next_retry_in) if next_retry_in is not None else None,
            created_at=now,
            expires_at=now + self.retention,
        )
        db.add(record)
        await db.flush()
        return record

"""Tests for webhook signing, payloads and WebhookService delivery."""

import json
from datetime import datetime, timezone
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy import select

from app.models.audit import AuditEvent
from app.models.verification_case import CaseStatus
from app.models.webhook import WebhookDeliveryAttempt
from app.webhooks.payloads import (
    WebhookEvent,
    build_payload,
    mask_extracted_fields,
    mask_identifier,
)
from app.webhooks.service import WebhookService
from app.webhooks.signing import compute_signature, signature_header, verify_signature

OMANG_FIELDS = {
    "idNumber": "059016012",
    "surname": "MOEPSWA",
    "forenames": "MOTLOTLEGI EDMOND",
    "dateOfBirth": "25/08/1994",
    "sex": "M",
    "dateOfExpiry": "22/05/2032",
    "placeOfBirth": "FRANCISTOWN",
}


class Receiver:
    """MockTransport handler that replays a scripted list of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, httpx.Response):
            return outcome
        return httpx.Response(outcome, text="ok")


def _service(test_settings, receiver: Receiver) -> WebhookService:
    return WebhookService(test_settings, transport=httpx.MockTransport(receiver))


async def _attempts(db, case_id: str) -> list[WebhookDeliveryAttempt]:
    result = await db.execute(
        select(WebhookDeliveryAttempt)
        .where(WebhookDeliveryAttempt.case_id == case_id)
        .order_by(WebhookDeliveryAttempt.attempt_number)
    )
    return list(result.scalars().all())


async def _audit_types(db, case_id: str) -> list[str]:
    result = await db.execute(select(AuditEvent.event_type).where(AuditEvent.entity_id == case_id))
    return list(result.scalars().all())


class TestSigning:
    def test_signature_covers_timestamp_and_body(self):
        sig = compute_signature('{"a":1}', 1700000000, "secret")
        assert len(sig) == 64
        assert sig != compute_signature('{"a":1}', 1700000001, "secret")
        assert sig != compute_signature('{"a":2}', 1700000000, "secret")
        assert sig != compute_signature('{"a":1}', 1700000000, "other")

    def test_header_format_and_verify(self):
        header = signature_header("{}", 1700000000, "secret")
        assert header.startswith("sha256=")
        assert verify_signature("{}", 1700000000, "secret", header) is True
        assert verify_signature("{} ", 1700000000, "secret", header) is False


class TestPayloads:
    @pytest.mark.parametrize("value,expected", [
        ("059016012", "***6012"),
        ("1234", "***1234"),
        ("123", "***"),
        ("", ""),
        (None, ""),
    ])
    def test_mask_identifier(self, value, expected):
        assert mask_identifier(value) == expected

    def test_mask_extracted_fields(self):
        masked = mask_extracted_fields({
            "idNumber": "059016012",
            "surname": "MOEPSWA",
            "mrzLine1": "P<BWA...",
            "mrzLine2": "BN0221546...",
        })
        assert masked == {"idNumber": "***6012", "surname": "MOEPSWA"}

    async def test_approved_payload(self, make_case):
        case = await make_case(
            status=CaseStatus.APPROVED,
            customer_name="Thabo Mokoena",
            customer_email="thabo@example.com",
            extracted_data=OMANG_FIELDS,
            biometric_summary={"similarityScore": 97.5},
            completed_at=datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
        )
        payload = build_payload(case, WebhookEvent.APPROVED, datetime(2026, 10, 19, tzinfo=timezone.utc))

        assert payload["event"] == "verification.approved"
        data = payload["data"]
        assert data["verificationId"] == case.id
        assert data["status"] == "approved"
        assert data["documentType"] == "omang"
        assert data["customer"]["omangNumber"] == "***6012"
        assert data["extractedData"] == {
            "fullName": "MOTLOTLEGI EDMOND MOEPSWA",
            "dateOfBirth": "25/08/1994",
            "sex": "M",
            "dateOfExpiry": "22/05/2032",
        }
        assert data["biometricScore"] == 97.5
        assert "059016012" not in json.dumps(payload)
        assert "FRANCISTOWN" not in json.dumps(payload)

    async def test_rejected_payload_carries_no_biographics(self, make_case):
        case = await make_case(
            status=CaseStatus.REJECTED,
            customer_name="Thabo Mokoena",
            customer_email="thabo@example.com",
            extracted_data=OMANG_FIELDS,
            rejection_reason="Document is blurry",
            rejection_code="POOR_IMAGE_QUALITY",
        )
        data = build_payload(case, WebhookEvent.REJECTED, datetime.now(timezone.utc))["data"]

        assert data["customer"] == {"email": "thabo@example.com"}
        assert data["rejectionReason"] == "Document is blurry"
        assert data["rejectionCode"] == "POOR_IMAGE_QUALITY"
        assert "extractedData" not in data
        assert "MOEPSWA" not in json.dumps(data)


class TestSendWebhookSkips:
    async def test_no_config(self, db_session, make_case, test_settings):
        receiver = Receiver(200)
        case = await make_case(status=CaseStatus.APPROVED)
        assert await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED) is None
        assert receiver.requests == []

    async def test_disabled(self, db_session, make_case, make_webhook_config, test_settings):
        await make_webhook_config(enabled=False)
        receiver = Receiver(200)
        case = await make_case(status=CaseStatus.APPROVED)
        assert await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED) is None
        assert receiver.requests == []

    async def test_not_subscribed(self, db_session, make_case, make_webhook_config, test_settings):
        await make_webhook_config(events=["verification.rejected"])
        receiver = Receiver(200)
        case = await make_case(status=CaseStatus.APPROVED)
        assert await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED) is None

    async def test_empty_subscription_list(self, db_session, make_case, make_webhook_config, test_settings):
        await make_webhook_config(events=[])
        receiver = Receiver(200)
        case = await make_case(status=CaseStatus.APPROVED)
        assert await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED) is None

    async def test_missing_secret(self, db_session, make_case, make_webhook_config, test_settings):
        await make_webhook_config(secret=None)
        receiver = Receiver(200)
        case = await make_case(status=CaseStatus.APPROVED)
        assert await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED) is None
        assert receiver.requests == []

    async def test_missing_url(self, db_session, make_case, make_webhook_config, test_settings):
        await make_webhook_config(url=None)
        receiver = Receiver(200)
        case = await make_case(status=CaseStatus.APPROVED)
        assert await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED) is None


class TestSendWebhookDelivery:
    async def test_delivered_first_attempt(self, db_session, make_case, make_webhook_config, test_settings):
        await make_webhook_config()
        receiver = Receiver(200)
        case = await make_case(status=CaseStatus.APPROVED, extracted_data=OMANG_FIELDS)

        result = await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED)

        assert result.delivered is True
        assert result.attempts == 1
        assert result.status_code == 200

        request = receiver.requests[0]
        assert str(request.url) == "https://client.example.com/hooks"
        assert request.headers["X-Webhook-Event"] == "verification.approved"
        assert request.headers["X-Webhook-Id"] == result.webhook_id
        assert request.headers["User-Agent"] == test_settings.webhook_user_agent
        body = request.content.decode("utf-8")
        timestamp = int(request.headers["X-Webhook-Timestamp"])
        assert verify_signature(body, timestamp, "whsec_test", request.headers["X-Webhook-Signature"])
        assert json.loads(body)["data"]["verificationId"] == case.id

        attempts = await _attempts(db_session, case.id)
        assert len(attempts) == 1
        assert attempts[0].delivered_at is not None
        assert attempts[0].error is None
        assert "WEBHOOK_DELIVERED" in await _audit_types(db_session, case.id)

    async def test_case_url_overrides_config_url(self, db_session, make_case, make_webhook_config, test_settings):
        await make_webhook_config()
        receiver = Receiver(200)
        case = await make_case(status=CaseStatus.APPROVED, webhook_url="https://override.example.com/cb")

        await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED)
        assert str(receiver.requests[0].url) == "https://override.example.com/cb"

    async def test_server_errors_retry_until_max_attempts(
        self, db_session, make_case, make_webhook_config, test_settings
    ):
        await make_webhook_config()
        receiver = Receiver(500)
        case = await make_case(status=CaseStatus.REJECTED)

        result = await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.REJECTED)

        assert result.delivered is False
        assert result.attempts == 3
        assert len(receiver.requests) == 3
        # Every attempt of a chain shares the webhook id
        assert {r.headers["X-Webhook-Id"] for r in receiver.requests} == {result.webhook_id}

        attempts = await _attempts(db_session, case.id)
        assert [a.attempt_number for a in attempts] == [1, 2, 3]
        assert all(a.status_code == 500 for a in attempts)
        assert attempts[0].next_retry_at is not None
        assert attempts[-1].next_retry_at is None
        assert "WEBHOOK_FAILED" in await _audit_types(db_session, case.id)

    async def test_recovers_after_server_error(self, db_session, make_case, make_webhook_config, test_settings):
        await make_webhook_config()
        receiver = Receiver(503, 200)
        case = await make_case(status=CaseStatus.APPROVED)

        result = await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED)

        assert result.delivered is True
        assert result.attempts == 2
        attempts = await _attempts(db_session, case.id)
        assert attempts[0].failed_at is not None
        assert attempts[1].delivered_at is not None

    async def test_client_error_is_not_retried(self, db_session, make_case, make_webhook_config, test_settings):
        await make_webhook_config()
        receiver = Receiver(400)
        case = await make_case(status=CaseStatus.APPROVED)

        result = await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED)

        assert result.delivered is False
        assert result.attempts == 1
        assert len(receiver.requests) == 1
        attempts = await _attempts(db_session, case.id)
        assert attempts[0].error == "HTTP 400"
        assert attempts[0].next_retry_at is None

    async def test_timeout_is_retried(self, db_session, make_case, make_webhook_config, test_settings):
        await make_webhook_config()
        receiver = Receiver(httpx.ReadTimeout("read timed out"), 200)
        case = await make_case(status=CaseStatus.APPROVED)

        result = await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED)

        assert result.delivered is True
        assert result.attempts == 2
        attempts = await _attempts(db_session, case.id)
        assert attempts[0].error == "Request timed out"
        assert attempts[0].status_code is None

    async def test_connection_error_exhausts_attempts(
        self, db_session, make_case, make_webhook_config, test_settings
    ):
        await make_webhook_config()
        receiver = Receiver(httpx.ConnectError("connection refused"))
        case = await make_case(status=CaseStatus.APPROVED)

        result = await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED)

        assert result.delivered is False
        assert result.attempts == 3
        assert result.error == "connection refused"

    async def test_response_body_is_truncated(self, db_session, make_case, make_webhook_config, test_settings):
        await make_webhook_config()
        receiver = Receiver(httpx.Response(200, text="x" * 5000))
        case = await make_case(status=CaseStatus.APPROVED)

        await _service(test_settings, receiver).send_webhook(db_session, case, WebhookEvent.APPROVED)

        attempts = await _attempts(db_session, case.id)
        assert len(attempts[0].response_body) == test_settings.webhook_response_body_limit

    async def test_each_attempt_is_signed_with_its_own_timestamp(
        self, db_session, make_case, make_webhook_config, test_settings
    ):
        await make_webhook_config()
        receiver = Receiver(500, 200)
        case = await make_case(status=CaseStatus.APPROVED)

        with patch("app.webhooks.service.time") as clock:
            clock.time.side_effect = [1700000000.0, 1700000031.0]
            result = await _service(test_settings, receiver).send_webhook(
                db_session, case, WebhookEvent.APPROVED,
            )

        assert result.delivered is True
        first, second = receiver.requests
        assert first.headers["X-Webhook-Timestamp"] == "1700000000"
        assert second.headers["X-Webhook-Timestamp"] == "1700000031"
        for request in (first, second):
            assert verify_signature(
                request.content.decode("utf-8"),
                int(request.headers["X-Webhook-Timestamp"]),
                "whsec_test",
                request.headers["X-Webhook-Signature"],
            )
        assert first.headers["X-Webhook-Signature"] != second.headers["X-Webhook-Signature"]

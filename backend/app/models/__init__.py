from app.models.base import Base, TimestampMixin
from app.models.verification_case import (
    DECIDABLE_STATUSES,
    TERMINAL_STATUSES,
    CaseStatus,
    DocumentType,
    VerificationCase,
)
from app.models.idempotency import IdempotencyRecord
from app.models.webhook import ClientWebhookConfig, WebhookDeliveryAttempt
from app.models.audit import AuditEvent

__all__ = [
    "Base",
    "TimestampMixin",
    "VerificationCase",
    "CaseStatus",
    "DocumentType",
    "TERMINAL_STATUSES",
    "DECIDABLE_STATUSES",
    "IdempotencyRecord",
    "ClientWebhookConfig",
    "WebhookDeliveryAttempt",
    "AuditEvent",
]

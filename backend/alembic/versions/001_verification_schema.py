"""Verification case pipeline schema

Revision ID: 001_verification_schema
Revises:
Create Date: 2026-10-19

Creates verification_cases, idempotency_records, client_webhook_configs,
webhook_delivery_attempts and audit_events.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import ENUM as PgENUM, UUID

revision: str = "001_verification_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

DOCUMENT_TYPES = ("omang", "passport", "drivers_licence", "id_card")
CASE_STATUSES = (
    "created", "documents_uploading", "documents_complete", "submitted", "processing",
    "pending_review", "in_review", "approved", "rejected", "auto_rejected",
    "resubmission_required", "expired",
)


def upgrade() -> None:
    # ── Enum types ──
    document_type = PgENUM(*DOCUMENT_TYPES, name="document_type")
    case_status = PgENUM(*CASE_STATUSES, name="case_status")
    document_type.create(op.get_bind(), checkfirst=True)
    case_status.create(op.get_bind(), checkfirst=True)

    # ── Cases ──
    op.create_table(
        "verification_cases",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("client_id", sa.String(100), nullable=False),
        sa.Column("document_type", PgENUM(name="document_type", create_type=False), nullable=False),
        sa.Column("status", PgENUM(name="case_status", create_type=False), nullable=False),
        sa.Column("customer_name", sa.String(200), nullable=True),
        sa.Column("customer_email", sa.String(320), nullable=True),
        sa.Column("customer_phone", sa.String(50), nullable=True),
        sa.Column("redirect_url", sa.String(2048), nullable=True),
        sa.Column("webhook_url", sa.String(2048), nullable=True),
        sa.Column("case_metadata", sa.JSON, nullable=True),
        sa.Column("extracted_data", sa.JSON, nullable=True),
        sa.Column("field_confidence", sa.JSON, nullable=True),
        sa.Column("overall_confidence", sa.Float, nullable=True),
        sa.Column("requires_manual_review", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("extraction_warnings", sa.JSON, nullable=True),
        sa.Column("biometric_summary", sa.JSON, nullable=True),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("rejection_code", sa.String(50), nullable=True),
        sa.Column("decision_notes", sa.Text, nullable=True),
        sa.Column("decided_by", sa.String(200), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_verification_cases_client_id", "verification_cases", ["client_id"])
    op.create_index("ix_verification_cases_status", "verification_cases", ["status"])

    # ── Idempotency ──
    op.create_table(
        "idempotency_records",
        sa.Column("client_id", sa.String(100), primary_key=True),
        sa.Column("idempotency_key", sa.String(255), primary_key=True),
        sa.Column("case_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_idempotency_records_expires_at", "idempotency_records", ["expires_at"])

    # ── Webhooks ──
    op.create_table(
        "client_webhook_configs",
        sa.Column("client_id", sa.String(100), primary_key=True),
        sa.Column("webhook_url", sa.String(2048), nullable=True),
        sa.Column("webhook_secret", sa.String(255), nullable=True),
        sa.Column("webhook_enabled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("webhook_events", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "webhook_delivery_attempts",
        sa.Column("webhook_id", sa.String(64), primary_key=True),
        sa.Column("attempt_number", sa.Integer, primary_key=True),
        sa.Column("case_id", sa.String(64), nullable=False),
        sa.Column("client_id", sa.String(100), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("status_code", sa.Integer, nullable=True),
        sa.Column("response_body", sa.Text, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_webhook_delivery_attempts_case_id", "webhook_delivery_attempts", ["case_id"])

    # ── Audit ──
    op.create_table(
        "audit_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=True),
        sa.Column("event_data", sa.JSON, nullable=True),
        sa.Column("entity_type", sa.String(100), nullable=True),
        sa.Column("entity_id", sa.String(64), nullable=True),
        sa.Column("action", sa.String(100), nullable=True),
        sa.Column("actor", sa.String(200), nullable=True),
        sa.Column("actor_type", sa.String(50), nullable=True, server_default="system"),
        sa.Column("previous_state", sa.JSON, nullable=True),
        sa.Column("new_state", sa.JSON, nullable=True),
        sa.Column("rationale", sa.Text, nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("webhook_delivery_attempts")
    op.drop_table("client_webhook_configs")
    op.drop_table("idempotency_records")
    op.drop_table("verification_cases")
    op.execute("DROP TYPE IF EXISTS case_status")
    op.execute("DROP TYPE IF EXISTS document_type")

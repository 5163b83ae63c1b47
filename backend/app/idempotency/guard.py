"""IdempotencyGuard — deduplicates case creation by client-supplied key.

store() is a single atomic insert-if-absent statement. Losing the race raises
IdempotencyConflictError; the caller re-reads with check() and treats the
existing mapping as authoritative.
"""

import logging
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.errors import IdempotencyConflictError
from app.models.base import utcnow
from app.models.idempotency import IdempotencyRecord

logger = logging.getLogger("verification.idempotency")

_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class IdempotencyGuard:
    def __init__(self, settings: Settings):
        self.ttl = timedelta(hours=settings.idempotency_ttl_hours)

    async def check(self, db: AsyncSession, client_id: str, key: str) -> str | None:
        """Return the case id stored for (client_id, key), if unexpired."""
        result = await db.execute(
            select(IdempotencyRecord.case_id).where(
                IdempotencyRecord.client_id == client_id,
                IdempotencyRecord.idempotency_key == key,
                IdempotencyRecord.expires_at > utcnow(),
            )
        )
        return result.scalar_one_or_none()

    async def store(self, db: AsyncSession, client_id: str, key: str, case_id: str) -> None:
        """Insert (client_id, key) -> case_id unless the key already exists."""
        now = utcnow()
        table = IdempotencyRecord.__table__

        # Expired rows would otherwise block reuse of the key until purged
        await db.execute(
            delete(table).where(
                table.c.client_id == client_id,
                table.c.idempotency_key == key,
                table.c.expires_at <= now,
            )
        )

        insert = _DIALECT_INSERTS.get(db.get_bind().dialect.name)
        if insert is None:
            raise RuntimeError(
                f"Unsupported database dialect for idempotency: {db.get_bind().dialect.name}"
            )

        stmt = (
            insert(table)
            .values(
                client_id=client_id,
                idempotency_key=key,
                case_id=case_id,
                created_at=now,
                expires_at=now + self.ttl,
            )
            .on_conflict_do_nothing(index_elements=["client_id", "idempotency_key"])
        )
        result = await db.execute(stmt)
        if result.rowcount == 0:
            logger.info("Idempotency key collision for client %s", client_id)
            raise IdempotencyConflictError(key)

    async def purge_expired(self, db: AsyncSession) -> int:
        table = IdempotencyRecord.__table__
        result = await db.execute(delete(table).where(table.c.expires_at <= utcnow()))
        return result.rowcount

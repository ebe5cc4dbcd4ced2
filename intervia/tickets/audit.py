from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import asyncpg

from .models import TicketAuditEntry
from .state import TicketState


class TicketAuditRepository:
    """Append-only log of committed ticket operations.

    The ledger stays the system of record; this table exists for reporting
    and for spotting tickets whose graph mirror is missing.
    """

    _CREATE_AUDIT_SQL = """
    CREATE TABLE IF NOT EXISTS ticket_audit_logs (
        id TEXT PRIMARY KEY,
        ticket_id TEXT NOT NULL,
        action TEXT NOT NULL,
        actor TEXT NOT NULL,
        from_state TEXT NULL,
        to_state TEXT NULL,
        metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """

    _CREATE_INDEX_SQL = """
    CREATE INDEX IF NOT EXISTS ticket_audit_logs_ticket_idx ON ticket_audit_logs (ticket_id, created_at)
    """

    _INSERT_AUDIT_SQL = """
    INSERT INTO ticket_audit_logs (id, ticket_id, action, actor, from_state, to_state, metadata, created_at)
    VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8)
    """

    _SELECT_BY_TICKET_SQL = """
    SELECT id, ticket_id, action, actor, from_state, to_state, metadata, created_at
    FROM ticket_audit_logs
    WHERE ticket_id = $1
    ORDER BY created_at ASC
    """

    _SELECT_BY_ACTION_SQL = """
    SELECT id, ticket_id, action, actor, from_state, to_state, metadata, created_at
    FROM ticket_audit_logs
    WHERE action = $1
    ORDER BY created_at DESC
    LIMIT $2
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    @classmethod
    async def connect(cls, dsn: str) -> "TicketAuditRepository":
        pool = await asyncpg.create_pool(dsn=dsn, min_size=1, max_size=5)
        return cls(pool)

    async def close(self) -> None:
        await self._pool.close()

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(self._CREATE_AUDIT_SQL)
            await connection.execute(self._CREATE_INDEX_SQL)

    async def record(self, entry: TicketAuditEntry) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(
                self._INSERT_AUDIT_SQL,
                entry.id,
                entry.ticket_id,
                entry.action,
                entry.actor,
                None if entry.from_state is None else entry.from_state.value,
                None if entry.to_state is None else entry.to_state.value,
                json.dumps(entry.metadata),
                entry.created_at,
            )

    async def list_for_ticket(self, ticket_id: str) -> list[TicketAuditEntry]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._SELECT_BY_TICKET_SQL, ticket_id)
        return [self._row_to_entry(row) for row in rows]

    async def list_by_action(self, action: str, *, limit: int = 100) -> list[TicketAuditEntry]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._SELECT_BY_ACTION_SQL, action, limit)
        return [self._row_to_entry(row) for row in rows]

    @staticmethod
    def _row_to_entry(row: Any) -> TicketAuditEntry:
        metadata = row["metadata"]
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        from_state = row["from_state"]
        to_state = row["to_state"]
        return TicketAuditEntry(
            id=str(row["id"]),
            ticket_id=str(row["ticket_id"]),
            action=str(row["action"]),
            actor=str(row["actor"]),
            from_state=TicketState(from_state) if from_state else None,
            to_state=TicketState(to_state) if to_state else None,
            created_at=_ensure_datetime(row["created_at"]),
            metadata=dict(metadata or {}),
        )


def _ensure_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    return datetime.fromisoformat(str(value))

"""
Per-document run locks.

At most one pipeline run per document id may be in flight. Both backends
expose the same non-blocking ``hold(document_id)`` context manager that
yields True when the lock was acquired and False when another run holds
it; the orchestrator turns False into DocumentBusyError.

  PostgresDocumentLocks  session-level advisory lock on a dedicated
                         connection; works across Celery processes/hosts.
  InMemoryDocumentLocks  asyncio.Lock registry; one event loop only
                         (tests, single-process deployments).
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol
from uuid import UUID

from sqlalchemy import text

from compliance_ingest.db.session import Database

logger = logging.getLogger(__name__)


def advisory_key(document_id: UUID) -> int:
    """Signed 64-bit key derived from the first 8 bytes of the UUID."""
    return int.from_bytes(document_id.bytes[:8], "big", signed=True)


class DocumentLocks(Protocol):
    def hold(self, document_id: UUID) -> "AsyncIterator[bool]": ...


class PostgresDocumentLocks:
    def __init__(self, db: Database) -> None:
        self._db = db

    @asynccontextmanager
    async def hold(self, document_id: UUID) -> AsyncIterator[bool]:
        key = advisory_key(document_id)
        async with self._db.engine.connect() as conn:
            acquired = bool(
                (await conn.execute(text("SELECT pg_try_advisory_lock(:key)"), {"key": key})).scalar()
            )
            if not acquired:
                logger.info("Document lock busy | doc=%s", document_id)
            try:
                yield acquired
            finally:
                if acquired:
                    await conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": key})


class InMemoryDocumentLocks:
    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}

    @asynccontextmanager
    async def hold(self, document_id: UUID) -> AsyncIterator[bool]:
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        if lock.locked():
            logger.info("Document lock busy | doc=%s", document_id)
            yield False
            return

        # hold() never waits on a lock, so nothing queues behind this one
        async with lock:
            try:
                yield True
            finally:
                self._locks.pop(document_id, None)

"""
Celery Tasks — Document Processing Pipeline

Task: process_document
  Runs JobOrchestrator for one document (download → extract → language →
  chunk → embed → persist → status). Pipeline failures are recorded on the
  document by the orchestrator and the task still succeeds; only a busy
  per-document lock makes the task retry.

Task: poll_pending_documents
  Pull trigger, fired by Celery Beat every poll_interval_secs. Enqueues the
  oldest pending/queued documents with require_queued=True.

Every task body runs on a fresh event loop, so each one builds and disposes
its own Database (asyncpg connections cannot cross loops).
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import uuid
from typing import Any

from celery import Task

from compliance_ingest.core.config import get_settings
from compliance_ingest.core.exceptions import DocumentBusyError
from compliance_ingest.db.session import Database
from compliance_ingest.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    # Called from inside a running loop (eager mode under an async caller)
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


# ---------------------------------------------------------------------------
# Main processing task
# ---------------------------------------------------------------------------

@celery_app.task(
    name="compliance_ingest.workers.tasks.process_document",
    bind=True,
    max_retries=20,
    acks_late=True,
    reject_on_worker_lost=True,
)
def process_document(
    self: Task,
    *,
    document_id:    str,
    storage_url:    str,
    mime_type:      str | None = None,
    file_type:      str | None = None,
    require_queued: bool = False,
) -> dict[str, Any]:
    """
    Full async document processing pipeline for one document.
    """
    from compliance_ingest.services.orchestrator import ProcessingJob

    job = ProcessingJob(
        document_id=uuid.UUID(document_id),
        storage_url=storage_url,
        mime_type=mime_type,
        file_type=file_type,
        require_queued=require_queued,
    )
    try:
        return run_async(_process_document_async(job))
    except DocumentBusyError as exc:
        countdown = get_settings().busy_retry_countdown
        logger.info("Document busy, retrying in %ds | doc=%s", countdown, document_id)
        raise self.retry(exc=exc, countdown=countdown)


async def _process_document_async(job) -> dict[str, Any]:
    from compliance_ingest.services.factory import build_orchestrator

    settings = get_settings()
    db = Database.from_settings(settings)
    try:
        outcome = await build_orchestrator(settings, db).run(job)
    finally:
        await db.dispose()
    return outcome.as_dict()


# ---------------------------------------------------------------------------
# Pull trigger — runs every poll_interval_secs via Celery Beat
# ---------------------------------------------------------------------------

@celery_app.task(
    name="compliance_ingest.workers.tasks.poll_pending_documents",
    bind=False,
    acks_late=True,
    soft_time_limit=55,
    time_limit=60,
)
def poll_pending_documents() -> dict[str, Any]:
    """Enqueue documents still waiting in pending/queued, oldest first."""
    return run_async(_poll_pending_documents_async())


async def _poll_pending_documents_async() -> dict[str, Any]:
    from compliance_ingest.repositories.documents import DocumentRepository
    from compliance_ingest.services.dispatch import CeleryTaskPublisher, PendingPoller

    settings = get_settings()
    db = Database.from_settings(settings)
    try:
        poller = PendingPoller(
            DocumentRepository(db),
            CeleryTaskPublisher(),
            limit=settings.poll_batch_size,
        )
        queued = await poller.poll()
    finally:
        await db.dispose()

    return {"queued": len(queued), "document_ids": [str(doc_id) for doc_id in queued]}


# ---------------------------------------------------------------------------
# Health check task
# ---------------------------------------------------------------------------

@celery_app.task(name="compliance_ingest.workers.tasks.health_check")
def health_check() -> dict[str, str]:
    return {"status": "ok", "worker": "healthy"}

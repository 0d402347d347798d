"""
Trigger-side dispatch: hand jobs to the Celery queue and return.

Both triggers end here:
  push  (POST /process-document)  → TaskPublisher.publish(job)
  pull  (POST /poll-pending, Beat) → PendingPoller.poll() → publish per document

Nothing in this module waits for a pipeline run; the queue decouples the
HTTP response from processing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, Sequence
from uuid import UUID

from compliance_ingest.core.exceptions import DispatchError
from compliance_ingest.services.orchestrator import ProcessingJob

logger = logging.getLogger(__name__)

INGEST_QUEUE = "documents.ingest"


class TaskPublisher(Protocol):
    async def publish(self, job: ProcessingJob) -> None: ...


class CeleryTaskPublisher:
    """
    Sends process_document to the broker.
    Import is deferred so the broker connection is not required at module load time.
    """

    async def publish(self, job: ProcessingJob) -> None:
        """
        Dispatch process_document.apply_async() in a thread executor so the
        broker round-trip never blocks the event loop.

        Raises:
            DispatchError if the broker rejects or cannot be reached.
        """
        from compliance_ingest.workers.tasks import process_document

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: process_document.apply_async(
                    kwargs=job.to_task_kwargs(),
                    queue=INGEST_QUEUE,
                ),
            )
        except Exception as exc:
            logger.error("Task publish failed | doc=%s error=%s", job.document_id, exc)
            raise DispatchError(
                f"Failed to queue document {job.document_id}: {exc}",
                {"document_id": str(job.document_id)},
            ) from exc

        logger.info(
            "Processing task published | doc=%s require_queued=%s",
            job.document_id, job.require_queued,
        )


class PendingSource(Protocol):
    async def get_pending_documents(self, limit: int = 10) -> Sequence[Any]: ...


class PendingPoller:
    """
    Pull trigger: enqueue the oldest documents still waiting for a worker.

    Jobs carry require_queued=True, so a document polled twice before a
    worker picks it up is processed once; the second run sees 'processing'
    (or a terminal status) and skips.
    """

    def __init__(self, source: PendingSource, publisher: TaskPublisher, limit: int = 10) -> None:
        self._source    = source
        self._publisher = publisher
        self._limit     = limit

    async def poll(self) -> list[UUID]:
        documents = await self._source.get_pending_documents(limit=self._limit)
        if not documents:
            logger.info("Poll | no pending documents")
            return []

        queued: list[UUID] = []
        for doc in documents:
            job = ProcessingJob(
                document_id=doc.id,
                storage_url=doc.file_path,
                mime_type=doc.mime_type,
                file_type=doc.file_type,
                require_queued=True,
            )
            await self._publisher.publish(job)
            queued.append(doc.id)

        logger.info("Poll | queued=%d", len(queued))
        return queued

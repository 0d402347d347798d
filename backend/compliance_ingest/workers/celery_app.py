"""
Celery Application Factory

Configures the Celery app for async document processing.
Broker: Redis by default (CELERY_BROKER_URL); any kombu broker works.
Result backend: Redis (optional — document state is tracked in PostgreSQL).

Queue topology:
  documents.ingest   — process_document, one run per document
  documents.poll     — poll_pending_documents, fired by Beat every 60s
  system.health      — internal health-check tasks

Do not pass raw file bytes in task payloads; tasks carry the storage URL
and download inside the worker.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun, task_retry
from kombu import Exchange, Queue

from compliance_ingest.core.config import get_settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queue and exchange definitions
# ---------------------------------------------------------------------------

DOCUMENTS_EXCHANGE = Exchange("documents", type="direct", durable=True)

TASK_QUEUES = (
    Queue(
        "documents.ingest",
        exchange=DOCUMENTS_EXCHANGE,
        routing_key="documents.ingest",
        durable=True,
    ),
    Queue(
        "documents.poll",
        exchange=DOCUMENTS_EXCHANGE,
        routing_key="documents.poll",
        durable=True,
    ),
    Queue(
        "system.health",
        Exchange("system", type="direct"),
        routing_key="system.health",
        durable=True,
    ),
)

TASK_ROUTES = {
    "compliance_ingest.workers.tasks.process_document":       {"queue": "documents.ingest"},
    "compliance_ingest.workers.tasks.poll_pending_documents": {"queue": "documents.poll"},
    "compliance_ingest.workers.tasks.health_check":           {"queue": "system.health"},
}

# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app() -> Celery:
    settings = get_settings()
    app = Celery("compliance_ingest")

    app.conf.update(
        # --- Broker / Backend ---
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        # --- Serialization (reject non-JSON messages) ---
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        # --- Queues ---
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue="documents.ingest",
        task_default_exchange="documents",
        task_default_routing_key="documents.ingest",

        # --- Reliability ---
        task_acks_late=True,         # ack only after task completes (prevents message loss on crash)
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,  # one document at a time per worker process

        # --- Timeouts ---
        task_soft_time_limit=900,   # large spreadsheets + rate-limit backoff can take minutes
        task_time_limit=960,

        # --- Result TTL ---
        result_expires=3600,   # state lives in PostgreSQL, not Celery results

        # --- Timezone ---
        timezone="UTC",
        enable_utc=True,

        # --- Beat schedule (pull trigger) ---
        beat_schedule={
            "poll-pending-documents": {
                "task":     "compliance_ingest.workers.tasks.poll_pending_documents",
                "schedule": float(settings.poll_interval_secs),
                "options":  {"queue": "documents.poll"},
            },
        },

        # --- Worker ---
        worker_max_tasks_per_child=200,   # recycle workers to prevent memory bloat
    )

    app.autodiscover_tasks(["compliance_ingest.workers"])

    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals — task lifecycle logging
# ---------------------------------------------------------------------------

@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s doc=%s",
        task_id, task.name, kwargs.get("document_id", "-"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s doc=%s",
        task_id, task.name, state, kwargs.get("document_id", "-"),
    )


@task_retry.connect
def on_task_retry(request, reason, einfo, **_):
    logger.warning(
        "Task retry | task_id=%s doc=%s reason=%s",
        request.id, (request.kwargs or {}).get("document_id", "-"), reason,
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s doc=%s error=%s",
        task_id, (kwargs or {}).get("document_id", "-"), exception,
        exc_info=True,
    )

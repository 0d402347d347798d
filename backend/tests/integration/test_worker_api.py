"""
Integration Tests — Worker HTTP surface
════════════════════════════════════════
Exercises the FULL FastAPI routing stack:
  - Bearer-secret guard on the trigger, document and search routes
  - camelCase request parsing (incl. the cloudinaryUrl alias)
  - Dependency injection chain (publisher, repository, services overridden)
  - Error envelope for 401 / 404 / 422 / 502 / 503

What is mocked vs real
──────────────────────
  ✅ Real: FastAPI routing, Pydantic validation, PendingPoller,
           DocumentService, SimilaritySearch
  🔲 Mock: PostgreSQL      (FakeRepository)
  🔲 Mock: Celery broker   (AsyncMock publisher)
  🔲 Mock: S3              (AsyncMock object store)
  🔲 Mock: Azure OpenAI    (make_provider)

How to run
──────────
  pytest -m integration tests/integration/test_worker_api.py -v
"""

from __future__ import annotations

import uuid
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from compliance_ingest.core.exceptions import DispatchError
from compliance_ingest.processing.embeddings import ChunkRecord, EmbeddingClient
from compliance_ingest.rag.similarity import SimilaritySearch
from compliance_ingest.services.documents import DocumentService

from conftest import TEST_WORKER_SECRET, RateLimited, fake_vector

AUTH = {"Authorization": f"Bearer {TEST_WORKER_SECRET}"}


# ─────────────────────────────────────────────────────────────────────────────
# App + client
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def publisher() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def object_store() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def provider(make_provider):
    return make_provider()


@pytest.fixture
def app_with_overrides(fake_repository, publisher, object_store, provider, embedding_config):
    """
    FastAPI app with every external dependency overridden:
      - get_repository        → FakeRepository (no PostgreSQL)
      - get_task_publisher    → AsyncMock (no broker)
      - get_document_service  → DocumentService over the fake + mocked S3
      - get_similarity_search → SimilaritySearch over a mocked provider
    """
    from compliance_ingest.auth.dependencies import (
        get_document_service,
        get_repository,
        get_similarity_search,
        get_task_publisher,
    )
    from compliance_ingest.main import create_app

    app = create_app()
    app.dependency_overrides[get_repository]        = lambda: fake_repository
    app.dependency_overrides[get_task_publisher]    = lambda: publisher
    app.dependency_overrides[get_document_service]  = lambda: DocumentService(fake_repository, object_store)
    app.dependency_overrides[get_similarity_search] = lambda: SimilaritySearch(
        EmbeddingClient(embedding_config, provider=provider, sleep=AsyncMock()),
        fake_repository,
    )

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app_with_overrides) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def _push_body(document_id: uuid.UUID, **overrides) -> dict:
    body = {
        "documentId": str(document_id),
        "storageUrl": "https://files.example.com/uploads/manual.pdf",
        "mimeType":   "application/pdf",
        "fileType":   "pdf",
    }
    body.update(overrides)
    return body


# ─────────────────────────────────────────────────────────────────────────────
# Authentication
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestWorkerAuth:

    @pytest.mark.parametrize("path", ["/process-document", "/poll-pending"])
    async def test_missing_bearer_is_401(self, client, publisher, path, test_document_id):
        response = await client.post(path, json=_push_body(test_document_id))

        assert response.status_code == 401
        assert response.json()["detail"]["error_code"] == "UNAUTHORIZED"
        assert response.headers["WWW-Authenticate"] == "Bearer"
        publisher.publish.assert_not_called()

    async def test_wrong_secret_is_401(self, client, publisher, test_document_id):
        response = await client.post(
            "/process-document",
            json=_push_body(test_document_id),
            headers={"Authorization": "Bearer not-the-secret"},
        )

        assert response.status_code == 401
        publisher.publish.assert_not_called()

    async def test_unset_secret_rejects_everything(self, app_with_overrides, client, test_document_id):
        from compliance_ingest.core.config import Settings, get_settings

        app_with_overrides.dependency_overrides[get_settings] = lambda: Settings(worker_secret="")

        response = await client.post("/process-document", json=_push_body(test_document_id), headers=AUTH)

        assert response.status_code == 401

    async def test_status_without_bearer_is_401(self, client, fake_repository, make_document, test_user_id):
        doc = make_document()
        fake_repository.add(doc)

        response = await client.get(f"/api/v1/documents/{doc.id}/status", params={"user_id": str(test_user_id)})

        assert response.status_code == 401
        assert response.json()["detail"]["error_code"] == "UNAUTHORIZED"

    async def test_delete_without_bearer_is_401_and_keeps_document(
        self, client, fake_repository, make_document, object_store, test_user_id,
    ):
        doc = make_document()
        fake_repository.add(doc)

        response = await client.delete(f"/api/v1/documents/{doc.id}", params={"user_id": str(test_user_id)})

        assert response.status_code == 401
        assert doc.id in fake_repository.documents
        object_store.delete.assert_not_called()

    async def test_search_with_wrong_secret_is_401(self, client, provider):
        response = await client.post(
            "/api/v1/search",
            json={"query": "lockout", "documentIds": [str(uuid.uuid4())]},
            headers={"Authorization": "Bearer not-the-secret"},
        )

        assert response.status_code == 401
        provider.embeddings.create.assert_not_called()


# ─────────────────────────────────────────────────────────────────────────────
# Push trigger
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestProcessDocument:

    async def test_acknowledges_and_enqueues(self, client, publisher, test_document_id):
        response = await client.post("/process-document", json=_push_body(test_document_id), headers=AUTH)

        assert response.status_code == 202
        assert response.json() == {
            "status":     "processing started",
            "documentId": str(test_document_id),
            "message":    "Document processing has been queued",
        }
        job = publisher.publish.await_args.args[0]
        assert job.document_id == test_document_id
        assert job.file_type == "pdf"
        assert job.require_queued is False

    async def test_cloudinary_url_alias_is_accepted(self, client, publisher, test_document_id):
        body = _push_body(test_document_id)
        body["cloudinaryUrl"] = body.pop("storageUrl")

        response = await client.post("/process-document", json=body, headers=AUTH)

        assert response.status_code == 202
        assert publisher.publish.await_args.args[0].storage_url == body["cloudinaryUrl"]

    async def test_response_does_not_wait_for_processing(self, client, fake_repository, test_document_id):
        await client.post("/process-document", json=_push_body(test_document_id), headers=AUTH)

        assert fake_repository.status_history == []

    @pytest.mark.parametrize("body", [
        {"storageUrl": "https://files.example.com/a.pdf"},
        {"documentId": "not-a-uuid", "storageUrl": "https://files.example.com/a.pdf"},
        {"documentId": str(uuid.uuid4())},
        {"documentId": str(uuid.uuid4()), "storageUrl": ""},
    ])
    async def test_invalid_body_is_422_envelope(self, client, publisher, body):
        response = await client.post("/process-document", json=body, headers=AUTH)

        assert response.status_code == 422
        payload = response.json()
        assert payload["error_code"] == "VALIDATION_ERROR"
        assert payload["details"]
        publisher.publish.assert_not_called()

    async def test_broker_failure_is_503(self, client, publisher, test_document_id):
        publisher.publish.side_effect = DispatchError("broker down")

        response = await client.post("/process-document", json=_push_body(test_document_id), headers=AUTH)

        assert response.status_code == 503
        assert response.json()["detail"]["error_code"] == "QUEUE_ERROR"


# ─────────────────────────────────────────────────────────────────────────────
# Pull trigger
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestPollPending:

    async def test_nothing_pending(self, client, publisher):
        response = await client.post("/poll-pending", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"message": "No pending documents", "count": 0, "documentIds": []}
        publisher.publish.assert_not_called()

    async def test_queues_pending_documents_oldest_first(self, client, publisher, fake_repository, make_document):
        newer = make_document(minutes_ago=1)
        older = make_document(minutes_ago=30)
        fake_repository.add(newer)
        fake_repository.add(older)
        fake_repository.add(make_document(status="failed", minutes_ago=90))

        response = await client.post("/poll-pending", headers=AUTH)

        body = response.json()
        assert response.status_code == 200
        assert body["message"] == "Queued 2 document(s) for processing"
        assert body["count"] == 2
        assert body["documentIds"] == [str(older.id), str(newer.id)]
        assert all(c.args[0].require_queued for c in publisher.publish.await_args_list)


# ─────────────────────────────────────────────────────────────────────────────
# Documents
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestDocumentRoutes:

    async def test_status(self, client, fake_repository, make_document, test_user_id):
        doc = make_document(status="failed")
        doc.processing_error = "Text file is empty"
        fake_repository.add(doc)

        response = await client.get(
            f"/api/v1/documents/{doc.id}/status", params={"user_id": str(test_user_id)}, headers=AUTH,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "failed"
        assert body["error"] == "Text file is empty"
        assert body["chunkCount"] == 0

    async def test_status_unknown_document_is_404(self, client, test_user_id):
        response = await client.get(
            f"/api/v1/documents/{uuid.uuid4()}/status", params={"user_id": str(test_user_id)}, headers=AUTH,
        )

        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "DOCUMENT_NOT_FOUND"

    async def test_delete(self, client, fake_repository, make_document, object_store, test_user_id):
        doc = make_document()
        fake_repository.add(doc)

        response = await client.delete(
            f"/api/v1/documents/{doc.id}", params={"user_id": str(test_user_id)}, headers=AUTH,
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "documentId": str(doc.id),
            "storageDeleted": True,
        }
        object_store.delete.assert_awaited_once_with(doc.storage_key)

    async def test_delete_requires_owner(self, client, fake_repository, make_document):
        doc = make_document()
        fake_repository.add(doc)

        response = await client.delete(
            f"/api/v1/documents/{doc.id}", params={"user_id": str(uuid.uuid4())}, headers=AUTH,
        )

        assert response.status_code == 404
        assert doc.id in fake_repository.documents

    async def test_delete_without_user_is_422(self, client):
        response = await client.delete(f"/api/v1/documents/{uuid.uuid4()}", headers=AUTH)

        assert response.status_code == 422


# ─────────────────────────────────────────────────────────────────────────────
# Search
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestSearch:

    async def test_ranked_results(self, client, fake_repository):
        doc_id = uuid.uuid4()
        await fake_repository.insert_chunks([
            ChunkRecord(doc_id, i, f"Respirator fit test record {i}", 1, "en", fake_vector(str(i)))
            for i in range(8)
        ])

        response = await client.post(
            "/api/v1/search",
            json={"query": "respirator fit testing", "documentIds": [str(doc_id)], "topK": 3},
            headers=AUTH,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 3
        scores = [r["similarity"] for r in body["results"]]
        assert scores == sorted(scores, reverse=True)

    async def test_empty_document_list(self, client, provider):
        response = await client.post(
            "/api/v1/search", json={"query": "anything", "documentIds": []}, headers=AUTH,
        )

        assert response.json() == {"results": [], "count": 0}
        provider.embeddings.create.assert_not_called()

    async def test_top_k_bounds(self, client):
        response = await client.post("/api/v1/search", json={"query": "q", "topK": 0}, headers=AUTH)
        assert response.status_code == 422

    async def test_provider_failure_is_502(self, client, provider):
        provider.embeddings.create.side_effect = [RateLimited("429")] * 4

        response = await client.post(
            "/api/v1/search", json={"query": "lockout", "documentIds": [str(uuid.uuid4())]}, headers=AUTH,
        )

        assert response.status_code == 502
        assert response.json()["detail"]["error_code"] == "EMBEDDING_ERROR"


# ─────────────────────────────────────────────────────────────────────────────
# Operations
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestOperations:

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["uptime"] >= 0
        assert "timestamp" in body

    async def test_descriptor_lists_endpoints(self, client):
        response = await client.get("/")

        endpoints = response.json()["endpoints"]
        assert endpoints["processDocument"] == "POST /process-document"
        assert endpoints["pollPending"] == "POST /poll-pending"

"""
Unit Tests — StorageFetcher (HTTP download) + ObjectStore (S3 delete)

httpx.MockTransport stands in for the file host; the aioboto3 session is a
MagicMock whose client() is an async context manager.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from compliance_ingest.core.exceptions import StorageFetchError
from compliance_ingest.storage.fetcher import FetchConfig, StorageFetcher
from compliance_ingest.storage.s3 import ObjectStore, ObjectStoreConfig, ObjectStoreError

FILE_URL = "https://files.example.com/uploads/manual.pdf"


def _fetcher(handler, timeout: float = 60.0) -> StorageFetcher:
    return StorageFetcher(FetchConfig(timeout=timeout), transport=httpx.MockTransport(handler))


@pytest.mark.unit
class TestStorageFetcher:

    async def test_returns_body_bytes(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, content=b"%PDF-1.7 body")

        data = await _fetcher(handler).fetch(FILE_URL)

        assert data == b"%PDF-1.7 body"
        assert seen == [FILE_URL]

    async def test_follows_redirects(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(302, headers={"location": FILE_URL})
            return httpx.Response(200, content=b"moved")

        assert await _fetcher(handler).fetch("https://files.example.com/old") == b"moved"

    @pytest.mark.parametrize("status", [403, 404, 500])
    async def test_non_2xx_raises_with_status(self, status):
        fetcher = _fetcher(lambda request: httpx.Response(status))

        with pytest.raises(StorageFetchError, match=f"HTTP {status}") as exc_info:
            await fetcher.fetch(FILE_URL)

        assert exc_info.value.details["status_code"] == status

    async def test_timeout_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(StorageFetchError, match="Timed out downloading file after 60s"):
            await _fetcher(handler).fetch(FILE_URL)

    async def test_connection_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(StorageFetchError, match="Failed to download file"):
            await _fetcher(handler).fetch(FILE_URL)


# ─────────────────────────────────────────────────────────────────────────────
# ObjectStore
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def s3_client() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def object_store(s3_client) -> ObjectStore:
    session = MagicMock()
    session.client.return_value.__aenter__.return_value = s3_client
    config = ObjectStoreConfig(bucket="compliance-uploads", region="eu-west-1")
    return ObjectStore(config, session=session)


@pytest.mark.unit
class TestObjectStore:

    async def test_delete_calls_s3_with_bucket_and_key(self, object_store, s3_client):
        await object_store.delete("uploads/u1/manual.pdf")

        s3_client.delete_object.assert_awaited_once_with(
            Bucket="compliance-uploads", Key="uploads/u1/manual.pdf",
        )

    async def test_client_uses_configured_region_and_endpoint(self, s3_client):
        session = MagicMock()
        session.client.return_value.__aenter__.return_value = s3_client
        config = ObjectStoreConfig(bucket="b", region="us-west-2", endpoint_url="http://minio:9000")

        await ObjectStore(config, session=session).delete("k")

        session.client.assert_called_once_with(
            "s3", region_name="us-west-2", endpoint_url="http://minio:9000",
        )

    async def test_client_error_is_wrapped(self, object_store, s3_client):
        s3_client.delete_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject",
        )

        with pytest.raises(ObjectStoreError) as exc_info:
            await object_store.delete("uploads/u1/manual.pdf")

        assert exc_info.value.reason == "AccessDenied"
        assert exc_info.value.key == "uploads/u1/manual.pdf"

    async def test_transport_error_is_wrapped(self, object_store, s3_client):
        s3_client.delete_object.side_effect = EndpointConnectionError(endpoint_url="https://s3.example")

        with pytest.raises(ObjectStoreError, match="uploads/k"):
            await object_store.delete("uploads/k")

    def test_config_from_settings(self):
        from compliance_ingest.core.config import Settings

        settings = Settings(s3_bucket="docs", aws_region="ap-south-1", s3_endpoint_url="")
        config = ObjectStoreConfig.from_settings(settings)

        assert config == ObjectStoreConfig(bucket="docs", region="ap-south-1", endpoint_url="")

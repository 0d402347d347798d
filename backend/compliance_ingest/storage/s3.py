"""
S3 Object Store — stored-file deletion

Uploaded files live in one bucket under the key recorded on the document
row (documents.storage_key). The worker never writes to the store: files
arrive before a trigger fires and are downloaded over HTTP by URL (see
fetcher.py). The only write is removing the object when its document is
deleted.

Deletion is best-effort from the caller's point of view: delete() raises
on failure and DocumentService decides to log and continue, so a flaky
store never blocks removing the database record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObjectStoreConfig:
    bucket:       str
    region:       str = "us-east-1"
    endpoint_url: str = ""   # empty = AWS; set for S3-compatible stores

    @classmethod
    def from_settings(cls, settings) -> "ObjectStoreConfig":
        return cls(
            bucket=settings.s3_bucket,
            region=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
        )


class ObjectStoreError(Exception):
    """The object store rejected or failed an operation."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Object store operation failed for {key}: {reason}")


class ObjectStore:
    """
    Async S3 operations against the uploads bucket.

    Usage:
        store = ObjectStore(ObjectStoreConfig.from_settings(settings))
        await store.delete("uploads/3f2a.../manual.pdf")
    """

    def __init__(self, config: ObjectStoreConfig, session: aioboto3.Session | None = None) -> None:
        self._cfg = config
        self._session = session or aioboto3.Session()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self):
        """Return a scoped async S3 client context manager."""
        kwargs = {"region_name": self._cfg.region}
        if self._cfg.endpoint_url:
            kwargs["endpoint_url"] = self._cfg.endpoint_url
        # Credentials: IAM role in production, AWS_* env vars in local dev.
        return self._session.client("s3", **kwargs)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def delete(self, key: str) -> None:
        """
        Permanently remove ``key`` from the bucket.

        S3 reports success for keys that do not exist, so deleting twice is
        harmless.

        Raises:
            ObjectStoreError on any client or transport error.
        """
        async with self._client() as s3:
            try:
                await s3.delete_object(Bucket=self._cfg.bucket, Key=key)
            except ClientError as exc:
                code = exc.response.get("Error", {}).get("Code", "Unknown")
                raise ObjectStoreError(key, code) from exc
            except BotoCoreError as exc:
                raise ObjectStoreError(key, str(exc)) from exc

        logger.info("S3 delete | bucket=%s key=%s", self._cfg.bucket, key)

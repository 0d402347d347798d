"""
Stored-file download over HTTP.

The upload service hands the worker a public URL; the file is read as
binary in one GET with a hard timeout. Any transport failure or non-2xx
answer becomes StorageFetchError, which fails the document.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx

from compliance_ingest.core.exceptions import StorageFetchError

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 60.0   # seconds


@dataclass(frozen=True)
class FetchConfig:
    timeout: float = DEFAULT_FETCH_TIMEOUT

    @classmethod
    def from_settings(cls, settings) -> "FetchConfig":
        return cls(timeout=settings.storage_fetch_timeout)


class StorageFetcher:
    """
    Usage:
        fetcher = StorageFetcher(FetchConfig(timeout=60))
        data = await fetcher.fetch("https://.../manual.pdf")

    ``transport`` is forwarded to httpx.AsyncClient (tests pass a
    MockTransport).
    """

    def __init__(
        self,
        config:    FetchConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._cfg = config or FetchConfig()
        self._transport = transport

    async def fetch(self, url: str) -> bytes:
        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(
                timeout=self._cfg.timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise StorageFetchError(
                f"Timed out downloading file after {self._cfg.timeout:.0f}s",
                {"url": url},
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise StorageFetchError(
                f"Failed to download file: HTTP {exc.response.status_code}",
                {"url": url, "status_code": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise StorageFetchError(f"Failed to download file: {exc}", {"url": url}) from exc

        data = response.content
        logger.info(
            "Fetched file | bytes=%d elapsed_ms=%.0f",
            len(data), (time.monotonic() - t0) * 1000,
        )
        return data

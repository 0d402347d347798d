"""
Worker trigger authentication.

The upload service and the cron poller call the trigger endpoints with a
shared secret: ``Authorization: Bearer <WORKER_SECRET>``. There are no
user identities on this surface. An unset secret rejects every call.
"""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from compliance_ingest.core.config import Settings, get_settings
from compliance_ingest.schemas.documents import WorkerErrors

logger = logging.getLogger(__name__)

# auto_error=False so a missing header is a 401 with our envelope, not FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status.HTTP_401_UNAUTHORIZED,
        detail=WorkerErrors.unauthorized().model_dump(),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def verify_worker_secret(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    settings:    Annotated[Settings, Depends(get_settings)],
) -> None:
    """FastAPI dependency: 401 unless the bearer token equals the worker secret."""
    expected = settings.worker_secret
    if not expected:
        logger.error("WORKER_SECRET is not configured; rejecting trigger call")
        raise _unauthorized()

    if credentials is None or not hmac.compare_digest(
        credentials.credentials.encode(), expected.encode(),
    ):
        logger.warning("Rejected trigger call with invalid bearer token")
        raise _unauthorized()


WorkerAuth = Depends(verify_worker_secret)

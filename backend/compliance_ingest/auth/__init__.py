from compliance_ingest.auth.worker import WorkerAuth, verify_worker_secret
from compliance_ingest.auth.dependencies import Documents, Poller, Publisher, Search

__all__ = [
    "WorkerAuth", "verify_worker_secret",
    "Documents", "Poller", "Publisher", "Search",
]

from typing import Protocol

from app.database.models import PreprocessStatus
from app.database.repositories.documents_repository import DocumentsRepository
from app.logging.logger import Log

ORPHAN_STATUSES = (PreprocessStatus.PENDING.value, PreprocessStatus.PROCESSING.value)


class Enqueuer(Protocol):
    def enqueue(self, document_id: str) -> None: ...


class OrphanRecoverySweep:
    """Re-enqueue documents stuck in a non-terminal preprocessing state.

    Runs when the worker starts and whenever the broker connection comes back
    after a drop. Enqueue is idempotent, so documents whose job is still
    live are left alone by the broker.
    """

    def __init__(self, doc_repo: DocumentsRepository, queue: Enqueuer) -> None:
        self._doc_repo = doc_repo
        self._queue = queue

    def run(self) -> list[str]:
        orphaned = self._doc_repo.find_ids_by_status(ORPHAN_STATUSES)
        if not orphaned:
            Log.info("No orphaned documents found")
            return []

        Log.info(f"Found {len(orphaned)} orphaned document(s), re-enqueuing")
        for document_id in orphaned:
            Log.debug(f"Re-enqueuing document {document_id}")
            self._queue.enqueue(document_id)
        Log.info(f"Recovered {len(orphaned)} orphaned document(s)")
        return orphaned

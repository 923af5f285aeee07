from concurrent.futures import ThreadPoolExecutor

from app.database.models import DocumentRecord, DocumentStatusView, PreprocessStatus
from app.database.repositories.chunks_repository import ChunksRepository
from app.database.repositories.documents_repository import DocumentsRepository
from app.logging.logger import Log
from app.processor.exceptions import DocumentNotFoundError
from app.queue.job_queue import JobQueue
from app.storage.base import BaseBlobStore


class DocumentService:
    """Upload, delete and status operations called by the request layer.

    Upload answers as soon as the pending record exists; the enqueue runs on
    a background thread. If it fails the document stays ``pending`` and the
    orphan sweep queues it later.
    """

    def __init__(
        self,
        blob_store: BaseBlobStore,
        doc_repo: DocumentsRepository,
        chunks_repo: ChunksRepository,
        queue: JobQueue,
    ) -> None:
        self._blob_store = blob_store
        self._doc_repo = doc_repo
        self._chunks_repo = chunks_repo
        self._queue = queue
        self._background = ThreadPoolExecutor(max_workers=1, thread_name_prefix="enqueue")

    def upload(self, owner_id: str, data: bytes, name: str) -> DocumentRecord:
        blob = self._blob_store.upload(data, name)
        document = DocumentRecord(
            id=blob.key,
            owner_id=owner_id,
            url=blob.url,
            original_name=name,
            size_bytes=blob.size_bytes,
        )
        try:
            self._doc_repo.create(document)
        except Exception:
            self._blob_store.delete(blob.key)
            raise
        Log.info(f"Document {document.id} uploaded by {owner_id}, preprocessing pending")
        self._background.submit(self._enqueue_quietly, document.id)
        return document

    def delete(self, document_id: str, owner_id: str) -> None:
        """Delete a document, cancelling its preprocessing cooperatively.

        Raises:
            DocumentNotFoundError: if the owner has no such document.
        """
        document = self._doc_repo.find_by_id(document_id)
        if document is None or document.owner_id != owner_id:
            raise DocumentNotFoundError(f"Document {document_id} not found")

        # running jobs see this flag before writing chunks
        self._doc_repo.transition(document_id, PreprocessStatus.DELETING.value)
        try:
            if self._queue.remove_if_waiting(document_id):
                Log.info(f"Removed queued job for document {document_id}")
        except Exception as exc:
            Log.warning(f"Could not remove queued job for {document_id}: {exc}")

        self._blob_store.delete(document_id)
        self._chunks_repo.delete_by_document(document_id)
        self._doc_repo.delete(document_id)
        Log.info(f"Document {document_id} deleted")

    def get_status(self, document_id: str) -> DocumentStatusView:
        return self._doc_repo.get_status(document_id)

    def close(self) -> None:
        """Wait for scheduled enqueues to finish."""
        self._background.shutdown(wait=True)

    def _enqueue_quietly(self, document_id: str) -> None:
        try:
            self._queue.enqueue(document_id)
        except Exception as exc:
            Log.error(f"Failed to enqueue preprocessing for {document_id}: {exc}")
